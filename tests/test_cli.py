import json
import logging
import signal

import pytest
from click.testing import CliRunner

from conftest import FakeRegistry, throttled
from ecr_resolve import __version__, cli
from ecr_resolve.errors import RepositoryAccessError
from ecr_resolve.models import RepositoryRef


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def run(monkeypatch, two_images):
    """Invoke the CLI against an in-memory registry."""
    built = {}

    def fake_registry(client, page_size, point_lookups):
        kinds = ("digest", "tag") if point_lookups else ()
        registry = FakeRegistry(two_images, point_lookups=kinds, **built.get("kwargs", {}))
        built["registry"] = registry
        return registry

    monkeypatch.setattr(cli, "ecr_client", lambda session, **kwargs: None)
    monkeypatch.setattr(cli, "ECRRegistry", fake_registry)

    def invoke(*args, **registry_kwargs):
        built["kwargs"] = registry_kwargs
        result = CliRunner().invoke(cli.main, list(args))
        result.registry = built.get("registry")
        return result

    return invoke


def test_json_output(run):
    result = run("app", ":v2", "v1")
    assert result.exit_code == 0, result.output
    body = json.loads(result.stdout)
    assert body["imageId"] == {"imageDigest": "sha256:d2", "imageTag": "v2"}
    assert body["repositoryName"] == "app"
    assert body["imageSizeInBytes"] == 1000
    assert body["imageTags"] == ["latest", "v2"]


def test_tag_only_output(run):
    result = run("--format", "tag-only", "app", "v9", "latest")
    assert result.exit_code == 0
    assert result.stdout.strip() == "latest"


def test_tag_only_prints_digest_for_digest_match(run):
    result = run("-f", "tag-only", "app", "sha256:d1")
    assert result.stdout.strip() == "sha256:d1"


def test_no_match_exit_code(run):
    result = run("app", "v9")
    assert result.exit_code == cli.EXIT_NO_MATCH
    assert result.stderr.startswith("::error::No image in app matches any of: v9")


def test_list_only_flag_scans_listing(run):
    result = run("--list-only", "app", "v1")
    assert result.exit_code == 0
    assert result.registry.lookup_calls == []
    assert result.registry.page_calls == ["page:0"]


def test_repository_not_found_exit_code(run):
    missing = RepositoryAccessError(RepositoryRef("app"), "RepositoryNotFoundException")
    result = run("app", "v1", failures={"lookup:v1": [missing]})
    assert result.exit_code == cli.EXIT_REPOSITORY_NOT_FOUND
    assert "does not exist" in result.stderr


def test_access_denied_exit_code(run):
    denied = RepositoryAccessError(RepositoryRef("app"), "AccessDeniedException")
    result = run("app", "v1", failures={"lookup:v1": [denied]})
    assert result.exit_code == cli.EXIT_ACCESS_DENIED
    assert "check IAM permissions" in result.stderr


def test_registry_unavailable_exit_code(run):
    result = run("--max-attempts", "2", "app", "v1", failures={"lookup:v1": throttled(2)})
    assert result.exit_code == cli.EXIT_UNEXPECTED
    assert "Registry unavailable" in result.stderr


def test_throttling_within_bound_succeeds(run):
    result = run("--max-attempts", "3", "app", "v1", failures={"lookup:v1": throttled(2)})
    assert result.exit_code == 0
    assert json.loads(result.stdout)["imageId"]["imageDigest"] == "sha256:d1"


def test_empty_candidate_is_rejected(run):
    result = run("app", ":")
    assert result.exit_code == cli.EXIT_UNEXPECTED
    assert "empty" in result.stderr


def test_candidates_required(run):
    result = run("app")
    assert result.exit_code == 2


def test_version(run):
    result = run("--version")
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_signal_handlers_restored(run):
    before = signal.getsignal(signal.SIGTERM)
    run("app", "v1")
    assert signal.getsignal(signal.SIGTERM) is before


def test_short_v_is_version(run):
    result = run("-v")
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_capital_v_is_verbose(run):
    result = run("-V", "app", "v1")
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["imageId"]["imageDigest"] == "sha256:d1"
