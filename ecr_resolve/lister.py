"""Lazy repository listing and point lookups with bounded retries."""
import logging
import random
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TypeVar

from .cancel import CancelScope
from .errors import RegistryUnavailable, TransientRegistryError
from .models import Candidate, ImageDescriptor, RepositoryRef
from .registry import Registry

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 0.2
    max_delay: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")

    def delay(self, attempt: int) -> float:
        """Full-jitter backoff before retry number ``attempt`` (1-based)."""
        ceiling = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return random.uniform(0, ceiling)

    def call(self, fn: Callable[[], T], scope: CancelScope, what: str, repository: RepositoryRef) -> T:
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            scope.check()
            try:
                return fn()
            except TransientRegistryError as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    what, attempt, self.max_attempts, e, wait,
                )
                scope.sleep(wait)
        raise RegistryUnavailable(repository, self.max_attempts, last_error)


class ImageListing:
    """Restartable view over a repository's images.

    Every iteration starts again from the first page, and a page is only
    requested once the previous one has been consumed.
    """

    def __init__(self, lister: "RegistryLister", repository: RepositoryRef, scope: CancelScope):
        self.lister = lister
        self.repository = repository
        self.scope = scope

    def __iter__(self) -> Iterator[ImageDescriptor]:
        return self.lister.iter_images(self.repository, self.scope)


class RegistryLister:
    def __init__(self, registry: Registry, retry: Optional[RetryPolicy] = None):
        self.registry = registry
        self.retry = retry or RetryPolicy()

    @property
    def point_lookup_kinds(self):
        return self.registry.point_lookup_kinds

    def list(self, repository: RepositoryRef, scope: Optional[CancelScope] = None) -> ImageListing:
        return ImageListing(self, repository, scope or CancelScope())

    def iter_images(self, repository: RepositoryRef, scope: CancelScope) -> Iterator[ImageDescriptor]:
        token = None
        page_no = 0
        while True:
            page_no += 1
            images, token = self.retry.call(
                lambda: self.registry.list_page(repository, token),
                scope,
                f"Listing page {page_no} of {repository}",
                repository,
            )
            yield from images
            if not token:
                return

    def lookup(self, repository: RepositoryRef, candidate: Candidate,
               scope: Optional[CancelScope] = None) -> Optional[ImageDescriptor]:
        return self.retry.call(
            lambda: self.registry.lookup(repository, candidate),
            scope or CancelScope(),
            f"Looking up {repository}:{candidate.value}",
            repository,
        )
