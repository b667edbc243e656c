"""Resolve an ECR image from an ordered list of tag/digest candidates.

Usage:
    ecr-resolve [OPTIONS] <repo_name> <candidate>...

Prints the matched image as JSON (or just its tag with --format tag-only).
Exits non-zero with specific codes on failure:
    1 - no candidate matches an image in the repo
    2 - repository not found
    3 - auth/permissions error
    4 - registry unavailable or unexpected error
    5 - cancelled or timed out
"""
import json
import logging
import signal
import sys
import threading
from contextlib import contextmanager

import boto3
import click

from . import __version__
from .config import ResolverConfig
from .errors import Cancelled, RegistryUnavailable, RepositoryAccessError
from .matcher import resolve
from .models import RepositoryRef
from .registry import ECRRegistry, ecr_client

EXIT_NO_MATCH = 1
EXIT_REPOSITORY_NOT_FOUND = 2
EXIT_ACCESS_DENIED = 3
EXIT_UNEXPECTED = 4
EXIT_CANCELLED = 5


def _setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = ("%(asctime)s [%(levelname)s] %(name)s: %(message)s" if verbose
           else "%(message)s")

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
    root.addHandler(handler)

    for name in ("botocore", "boto3", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def _cancel_on_signals(event: threading.Event):
    """Set ``event`` on SIGINT/SIGTERM for the duration of the block."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame):
        event.set()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def _fail(message: str, code: int):
    click.echo(f"::error::{message}", err=True)
    sys.exit(code)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("repository")
@click.argument("candidates", nargs=-1, required=True)
@click.option("-f", "--format", "output_format", type=click.Choice(["json", "tag-only"]),
              default="json", show_default=True, help="Output format")
@click.option("--registry-id", default=None, help="AWS account id owning the registry")
@click.option("--region", default=None, help="AWS region (defaults to the boto3 chain)")
@click.option("--profile", default=None, help="AWS shared config profile")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Give up after this many seconds")
@click.option("--max-attempts", type=click.IntRange(min=1), default=5, show_default=True,
              help="Attempts per registry request before giving up")
@click.option("--max-workers", type=click.IntRange(min=1), default=4, show_default=True,
              help="Concurrent point lookups")
@click.option("--list-only", is_flag=True, help="Scan the repository listing instead of point lookups")
@click.option("-V", "--verbose", is_flag=True, help="Enable verbose/debug output")
@click.version_option(__version__, "-v", "--version", prog_name="ecr-resolve")
def main(repository, candidates, output_format, registry_id, region, profile,
         timeout, max_attempts, max_workers, list_only, verbose):
    """Print the first of CANDIDATES (tags or sha256 digests) that exists in REPOSITORY.

    A leading ':' on a candidate is ignored, so ":v1" and "v1" are the same.
    """
    _setup_logging(verbose)
    repo = RepositoryRef(repository, registry_id)
    cancel = threading.Event()

    try:
        config = ResolverConfig(max_attempts=max_attempts, max_workers=max_workers, timeout=timeout)
        session = boto3.Session(profile_name=profile, region_name=region)
        client = ecr_client(session, timeout=config.timeout)
        registry = ECRRegistry(client, page_size=config.page_size, point_lookups=not list_only)
        with _cancel_on_signals(cancel):
            outcome = resolve(repo, candidates, registry=registry, config=config, cancel=cancel)

    except RepositoryAccessError as e:
        if e.not_found:
            _fail(str(e), EXIT_REPOSITORY_NOT_FOUND)
        _fail(f"{e} — check IAM permissions", EXIT_ACCESS_DENIED)

    except RegistryUnavailable as e:
        _fail(str(e), EXIT_UNEXPECTED)

    except Cancelled as e:
        _fail(f"{e} while resolving {repo}", EXIT_CANCELLED)

    except ValueError as e:
        _fail(str(e), EXIT_UNEXPECTED)

    except Exception as e:
        _fail(f"Unexpected error resolving {repo}: {e}", EXIT_UNEXPECTED)

    if not outcome:
        _fail(f"{outcome.message} — tags may have been deleted or never built", EXIT_NO_MATCH)

    if output_format == "tag-only":
        click.echo(outcome.tag or outcome.digest)
    else:
        click.echo(json.dumps(outcome.to_dict(), indent=2))


if __name__ == "__main__":
    main()
