"""Resolve an ordered list of tag/digest candidates to one ECR image."""
from .cancel import CancelScope
from .config import ResolverConfig
from .errors import Cancelled, RegistryUnavailable, RepositoryAccessError, ResolveError
from .lister import RegistryLister, RetryPolicy
from .matcher import CandidateMatcher, resolve
from .models import (
    Candidate,
    ImageDescriptor,
    NoMatchingImage,
    RepositoryRef,
    ResolutionResult,
    parse_candidates,
)
from .registry import ECRRegistry, Registry

__version__ = "0.1.0"

__all__ = [
    "CancelScope",
    "Cancelled",
    "Candidate",
    "CandidateMatcher",
    "ECRRegistry",
    "ImageDescriptor",
    "NoMatchingImage",
    "Registry",
    "RegistryLister",
    "RegistryUnavailable",
    "RepositoryAccessError",
    "RepositoryRef",
    "ResolutionResult",
    "ResolveError",
    "ResolverConfig",
    "RetryPolicy",
    "parse_candidates",
    "resolve",
]
