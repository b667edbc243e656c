"""Registry capability and the Amazon ECR implementation of it.

A registry always supports paging through a repository's images. It may
also support point lookups for some identifier kinds; ``point_lookup_kinds``
says which. Adapters translate their own failures into
``RepositoryAccessError`` (fatal) and ``TransientRegistryError`` (retried
by the lister). Anything else propagates untouched.
"""
import logging
from typing import FrozenSet, List, Optional, Protocol, Tuple

import boto3
from aws_error_utils import catch_aws_error, get_aws_error_info
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .errors import RepositoryAccessError, TransientRegistryError
from .models import DIGEST, TAG, Candidate, ImageDescriptor, RepositoryRef

logger = logging.getLogger(__name__)

Page = Tuple[List[ImageDescriptor], Optional[str]]

ACCESS_ERROR_CODES = (
    "RepositoryNotFoundException",
    "AccessDenied*",
    "UnauthorizedAccess*",
    "UnrecognizedClientException",
    "InvalidSignatureException",
    "ExpiredToken*",
)

TRANSIENT_ERROR_CODES = (
    "Throttling*",
    "ThrottledException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "ServerException",
    "InternalFailure",
    "ServiceUnavailable*",
    "RequestTimeout*",
)

MISSING_IMAGE_CODES = ("ImageNotFoundException", "InvalidParameterException")

NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

MAX_PAGE_SIZE = 1000


class Registry(Protocol):
    point_lookup_kinds: FrozenSet[str]

    def list_page(self, repository: RepositoryRef, token: Optional[str] = None) -> Page:
        """Fetch one page of images and the continuation token for the next."""
        ...

    def lookup(self, repository: RepositoryRef, candidate: Candidate) -> Optional[ImageDescriptor]:
        """Return the image ``candidate`` names, or None if it does not exist."""
        ...


DEFAULT_SOCKET_TIMEOUT = 60.0


def ecr_client(session: Optional[boto3.Session] = None, region: Optional[str] = None,
               timeout: Optional[float] = None):
    """ECR client whose connect/read timeouts never outlast ``timeout``."""
    socket_timeout = DEFAULT_SOCKET_TIMEOUT if timeout is None else min(timeout, DEFAULT_SOCKET_TIMEOUT)
    # The lister owns the retry budget, so botocore makes exactly one attempt
    config = Config(
        retries={"total_max_attempts": 1, "mode": "standard"},
        connect_timeout=socket_timeout,
        read_timeout=socket_timeout,
    )
    session = session or boto3.Session()
    return session.client("ecr", region_name=region, config=config)


class ECRRegistry:
    """``describe_images`` backed registry.

    Point lookups pass ``imageIds``; listings page with ``nextToken``. With
    ``point_lookups=False`` the registry behaves as list-only.
    """

    def __init__(self, client=None, *, page_size: int = 100, point_lookups: bool = True):
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
        self.client = client if client is not None else ecr_client()
        self.page_size = page_size
        self.point_lookup_kinds = frozenset({DIGEST, TAG}) if point_lookups else frozenset()

    def list_page(self, repository: RepositoryRef, token: Optional[str] = None) -> Page:
        params = self._params(repository)
        params["maxResults"] = self.page_size
        if token:
            params["nextToken"] = token
        resp = self._describe_images(repository, params)
        images = [ImageDescriptor.from_image_detail(d) for d in resp.get("imageDetails", [])]
        logger.debug("Listed %d images from %s (more=%s)", len(images), repository, bool(resp.get("nextToken")))
        return images, resp.get("nextToken")

    def lookup(self, repository: RepositoryRef, candidate: Candidate) -> Optional[ImageDescriptor]:
        params = self._params(repository)
        params["imageIds"] = [candidate.image_id()]
        try:
            resp = self._describe_images(repository, params)
        except catch_aws_error(*MISSING_IMAGE_CODES) as e:
            logger.debug("No image %s:%s (%s)", repository, candidate.value, get_aws_error_info(e).code)
            return None
        for detail in resp.get("imageDetails", []):
            image = ImageDescriptor.from_image_detail(detail)
            if image.matches(candidate):
                return image
        return None

    @staticmethod
    def _params(repository: RepositoryRef) -> dict:
        params = {"repositoryName": repository.name}
        if repository.registry_id:
            params["registryId"] = repository.registry_id
        return params

    def _describe_images(self, repository: RepositoryRef, params: dict) -> dict:
        try:
            return self.client.describe_images(**params)

        except catch_aws_error(*ACCESS_ERROR_CODES) as e:
            info = get_aws_error_info(e)
            raise RepositoryAccessError(repository, info.code, info.message) from e

        except catch_aws_error(*TRANSIENT_ERROR_CODES) as e:
            info = get_aws_error_info(e)
            raise TransientRegistryError(f"{info.code}: {info.message}") from e

        except ClientError as e:
            info = get_aws_error_info(e)
            if info.http_status_code is not None and info.http_status_code >= 500:
                raise TransientRegistryError(f"{info.code} (HTTP {info.http_status_code}): {info.message}") from e
            raise

        except NETWORK_ERRORS as e:
            raise TransientRegistryError(str(e)) from e
