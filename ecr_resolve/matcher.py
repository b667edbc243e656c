"""Pick the highest-priority candidate that names an existing image.

Candidates the registry can look up directly are checked with point
lookups on worker threads; the rest are matched while paging through the
repository listing. Only the calling thread records outcomes. It walks
them in priority order and stops at the first candidate that is either
found or failed, provided every candidate ahead of it is known missing.
"""
import logging
import queue
import threading
from functools import partial
from typing import Dict, Iterable, Optional, Sequence, Union

from .cancel import CancelScope
from .config import ResolverConfig
from .lister import RegistryLister
from .models import (
    Candidate,
    ImageDescriptor,
    NoMatchingImage,
    RepositoryRef,
    ResolutionResult,
    parse_candidates,
)
from .registry import ECRRegistry, Registry, ecr_client

logger = logging.getLogger(__name__)

Outcome = Union[ResolutionResult, NoMatchingImage]

# value -> descriptor, None once known missing, or the error that settled it
Settled = Dict[str, Union[ImageDescriptor, None, Exception]]

POLL_INTERVAL = 0.1


class CandidateMatcher:
    def __init__(self, lister: RegistryLister, max_workers: int = 4):
        self.lister = lister
        self.max_workers = max_workers

    def match(self, repository: RepositoryRef, candidates: Sequence[Candidate],
              scope: Optional[CancelScope] = None) -> Outcome:
        candidates = tuple(sorted(candidates, key=lambda c: c.priority))
        scope = scope or CancelScope()
        scope.check()
        if not candidates:
            return NoMatchingImage(repository, candidates)

        kinds = self.lister.point_lookup_kinds
        direct = _unique_values(c for c in candidates if c.kind in kinds)
        scanned = _unique_values(c for c in candidates if c.kind not in kinds)

        jobs: queue.Queue = queue.Queue()
        if scanned:
            jobs.put(([c.value for c in scanned], partial(self._scan, repository, scanned)))
        for candidate in direct:
            jobs.put(([candidate.value], partial(self._lookup, repository, candidate)))

        found: Settled = {}
        results: queue.Queue = queue.Queue()
        work = scope.child()
        remaining = jobs.qsize()
        for n in range(min(self.max_workers, remaining)):
            # Daemon threads so an abandoned request cannot keep the process alive
            threading.Thread(target=_worker, args=(jobs, results, work),
                             name=f"ecr-resolve-{n}", daemon=True).start()
        try:
            while remaining:
                try:
                    outcome = results.get(timeout=POLL_INTERVAL)
                except queue.Empty:
                    scope.check()
                    continue
                scope.check()
                remaining -= 1
                found.update(outcome)

                winner = _settled_winner(candidates, found)
                if winner is not None:
                    logger.debug("Matched %s:%s -> %s", repository, winner.value, found[winner.value].digest)
                    return ResolutionResult(winner, found[winner.value])
            return NoMatchingImage(repository, candidates)
        finally:
            work.cancel()

    def _lookup(self, repository: RepositoryRef, candidate: Candidate, scope: CancelScope) -> Settled:
        return {candidate.value: self.lister.lookup(repository, candidate, scope)}

    def _scan(self, repository: RepositoryRef, candidates: Sequence[Candidate],
              scope: CancelScope) -> Settled:
        """Match ``candidates`` against the listing.

        Candidates ranked below the best match are reported missing, which is
        safe because they can no longer win.
        """
        best: Optional[Candidate] = None
        best_image = None
        for image in self.lister.list(repository, scope):
            for candidate in candidates:
                if best is not None and candidate.priority >= best.priority:
                    break
                if image.matches(candidate):
                    best, best_image = candidate, image
                    break
            if best is candidates[0]:
                break

        found = {c.value: None for c in candidates}
        if best is not None:
            found[best.value] = best_image
        return found


def _unique_values(candidates: Iterable[Candidate]):
    seen = set()
    out = []
    for candidate in candidates:
        if candidate.value not in seen:
            seen.add(candidate.value)
            out.append(candidate)
    return out


def _worker(jobs: queue.Queue, results: queue.Queue, scope: CancelScope) -> None:
    while not scope.cancelled:
        try:
            values, job = jobs.get_nowait()
        except queue.Empty:
            return
        try:
            outcome = job(scope)
        except Exception as e:
            # Handed to the coordinator, which raises it if it decides the call
            outcome = {value: e for value in values}
        results.put(outcome)


def _settled_winner(candidates: Sequence[Candidate], found: Settled) -> Optional[Candidate]:
    for candidate in candidates:
        if candidate.value not in found:
            return None
        outcome = found[candidate.value]
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return candidate
    return None


def resolve(
    repository: Union[RepositoryRef, str],
    candidates: Sequence[str],
    *,
    registry: Optional[Registry] = None,
    config: Optional[ResolverConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> Outcome:
    """Resolve the first of ``candidates`` that exists in ``repository``.

    Returns a ``ResolutionResult`` or ``NoMatchingImage``. Raises
    ``RepositoryAccessError``, ``RegistryUnavailable`` or ``Cancelled``.
    """
    config = config or ResolverConfig()
    if isinstance(repository, str):
        repository = RepositoryRef(repository)
    if registry is None:
        registry = ECRRegistry(ecr_client(timeout=config.timeout), page_size=config.page_size)
    parsed = parse_candidates(candidates)
    scope = CancelScope(event=cancel, timeout=config.timeout)

    lister = RegistryLister(registry, config.retry_policy())
    return CandidateMatcher(lister, max_workers=config.max_workers).match(repository, parsed, scope)
