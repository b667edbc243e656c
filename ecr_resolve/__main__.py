from .cli import main

main(prog_name="ecr-resolve")
