"""Shared fixtures: an in-memory registry the engine can run against."""
import threading
from datetime import datetime, timezone

import pytest

from ecr_resolve.errors import TransientRegistryError
from ecr_resolve.models import DIGEST, TAG, ImageDescriptor

PUSHED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def image(digest, *tags, size=1000):
    return ImageDescriptor(
        digest=digest,
        tags=frozenset(tags),
        pushed_at=PUSHED,
        size_bytes=size,
        repository="app",
        registry_id="123456789012",
    )


class FakeRegistry:
    """Thread-safe registry over a fixed image list.

    ``failures`` maps an operation key (``"page:<n>"`` or
    ``"lookup:<value>"``) to a list of exceptions raised, one per call,
    before the real answer is returned.
    """

    def __init__(self, images=(), page_size=2, point_lookups=(DIGEST, TAG), failures=None):
        self.images = list(images)
        self.page_size = page_size
        self.point_lookup_kinds = frozenset(point_lookups)
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, key):
        with self._lock:
            self.calls.append(key)
            pending = self.failures.get(key)
            if pending:
                raise pending.pop(0)

    def list_page(self, repository, token=None):
        start = int(token or 0)
        self._record(f"page:{start // self.page_size}")
        end = start + self.page_size
        next_token = str(end) if end < len(self.images) else None
        return self.images[start:end], next_token

    def lookup(self, repository, candidate):
        self._record(f"lookup:{candidate.value}")
        for img in self.images:
            if img.matches(candidate):
                return img
        return None

    @property
    def page_calls(self):
        return [c for c in self.calls if c.startswith("page:")]

    @property
    def lookup_calls(self):
        return [c for c in self.calls if c.startswith("lookup:")]


def throttled(n):
    return [TransientRegistryError("ThrottlingException: Rate exceeded") for _ in range(n)]


@pytest.fixture
def two_images():
    return [image("sha256:d1", "v1"), image("sha256:d2", "v2", "latest")]
