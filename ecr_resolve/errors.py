"""Failures that abort a resolution call.

A candidate not existing is not one of them; see ``models.NoMatchingImage``.
"""
from typing import Optional


class ResolveError(Exception):
    pass


class RepositoryAccessError(ResolveError):
    """The repository is missing or the caller may not read it. Never retried."""

    def __init__(self, repository, code: str, message: str = ""):
        self.repository = repository
        self.code = code
        self.message = message
        super().__init__(self._describe())

    @property
    def not_found(self) -> bool:
        return self.code == "RepositoryNotFoundException"

    def _describe(self) -> str:
        if self.not_found:
            return f"ECR repository '{self.repository}' does not exist"
        detail = f" ({self.message})" if self.message else ""
        return f"Access denied to ECR repository '{self.repository}' [{self.code}]{detail}"


class RegistryUnavailable(ResolveError):
    """Transient registry failures outlasted the retry bound."""

    def __init__(self, repository, attempts: int, last_error: Optional[BaseException] = None):
        self.repository = repository
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Registry unavailable for '{repository}' after {attempts} attempts: {last_error}"
        )


class Cancelled(ResolveError):
    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Resolution {reason}")


class TransientRegistryError(ResolveError):
    """A single registry request failed in a way worth retrying.

    Raised by registry adapters and absorbed by the lister's retry loop;
    callers only ever see ``RegistryUnavailable``.
    """
