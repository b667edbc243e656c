"""Value types shared by the lister, the matcher and the CLI."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, Tuple

DIGEST = "digest"
TAG = "tag"


@dataclass(frozen=True)
class RepositoryRef:
    name: str
    registry_id: Optional[str] = None

    def __str__(self) -> str:
        if self.registry_id:
            return f"{self.registry_id}/{self.name}"
        return self.name


@dataclass(frozen=True)
class Candidate:
    """One caller-supplied identifier; lower priority index wins."""

    value: str
    priority: int

    @classmethod
    def parse(cls, raw: str, priority: int) -> "Candidate":
        # "repo:tag" split leftovers arrive as ":tag"
        value = raw[1:] if raw.startswith(":") else raw
        if not value:
            raise ValueError(f"candidate #{priority} is empty: {raw!r}")
        return cls(value=value, priority=priority)

    @property
    def kind(self) -> str:
        # Tags cannot contain ':', digests always do (algorithm:hex)
        return DIGEST if ":" in self.value else TAG

    @property
    def is_digest(self) -> bool:
        return self.kind == DIGEST

    def image_id(self) -> dict:
        if self.is_digest:
            return {"imageDigest": self.value}
        return {"imageTag": self.value}


def parse_candidates(raw: Sequence[str]) -> Tuple[Candidate, ...]:
    return tuple(Candidate.parse(value, i) for i, value in enumerate(raw))


@dataclass(frozen=True)
class ImageDescriptor:
    digest: str
    tags: frozenset = field(default_factory=frozenset)
    pushed_at: Optional[datetime] = None
    size_bytes: Optional[int] = None
    repository: Optional[str] = None
    registry_id: Optional[str] = None

    @classmethod
    def from_image_detail(cls, detail: dict) -> "ImageDescriptor":
        """Build a descriptor from one entry of ``describe_images`` ``imageDetails``."""
        return cls(
            digest=detail["imageDigest"],
            tags=frozenset(detail.get("imageTags") or ()),
            pushed_at=detail.get("imagePushedAt"),
            size_bytes=detail.get("imageSizeInBytes"),
            repository=detail.get("repositoryName"),
            registry_id=detail.get("registryId"),
        )

    def matches(self, candidate: Candidate) -> bool:
        if candidate.is_digest:
            return candidate.value == self.digest
        return candidate.value in self.tags


@dataclass(frozen=True)
class ResolutionResult:
    candidate: Candidate
    descriptor: ImageDescriptor

    def __bool__(self) -> bool:
        return True

    @property
    def digest(self) -> str:
        return self.descriptor.digest

    @property
    def tag(self) -> Optional[str]:
        if self.candidate.is_digest:
            return None
        return self.candidate.value

    @property
    def pushed_at(self) -> Optional[datetime]:
        return self.descriptor.pushed_at

    @property
    def size_bytes(self) -> Optional[int]:
        return self.descriptor.size_bytes

    def to_dict(self) -> dict:
        """Render with the key casing ``aws ecr describe-images`` uses."""
        image_id = {"imageDigest": self.digest}
        if self.tag is not None:
            image_id["imageTag"] = self.tag
        out = {
            "registryId": self.descriptor.registry_id,
            "repositoryName": self.descriptor.repository,
            "imageId": image_id,
            "imageTags": sorted(self.descriptor.tags) or None,
            "imagePushedAt": self.pushed_at.isoformat() if self.pushed_at else None,
            "imageSizeInBytes": self.size_bytes,
            "matchedCandidate": self.candidate.value,
        }
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class NoMatchingImage:
    """Returned, never raised, when no candidate exists in the repository."""

    repository: RepositoryRef
    candidates: Tuple[Candidate, ...]

    def __bool__(self) -> bool:
        return False

    @property
    def message(self) -> str:
        tried = ", ".join(c.value for c in self.candidates) or "(none)"
        return f"No image in {self.repository} matches any of: {tried}"
