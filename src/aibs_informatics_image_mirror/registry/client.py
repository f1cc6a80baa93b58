"""Minimal client for the OCI distribution (Docker Registry V2) API.

Only the calls needed to mirror images are implemented: tag listing, manifest
read/write and blob existence/download/upload. Authentication follows the
`WWW-Authenticate` challenge of the registry (bearer token or basic).
"""

__all__ = [
    "RegistryClient",
    "parse_auth_challenge",
]

import hashlib
import re
from base64 import b64encode
from typing import IO, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import requests
from aibs_informatics_core.utils.logging import get_logger

from aibs_informatics_image_mirror.exceptions import RegistryError
from aibs_informatics_image_mirror.registry.model import (
    ACCEPTED_MANIFEST_MEDIA_TYPES,
    ImageDescriptor,
    RegistryCredentials,
    compute_digest,
    normalize_digest,
)

logger = get_logger(__name__)

DOCKER_CONTENT_DIGEST_HEADER = "Docker-Content-Digest"
TAG_PAGE_SIZE = 1000
CHUNK_SIZE = 1024 * 1024

_CHALLENGE_PARAM_PATTERN = re.compile(r'(\w+)\s*=\s*"([^"]*)"')


def parse_auth_challenge(header: str) -> Tuple[str, Dict[str, str]]:
    """Parse a `WWW-Authenticate` header into (scheme, params).

    Example:
        >>> parse_auth_challenge('Bearer realm="https://r/token",service="r"')
        ('bearer', {'realm': 'https://r/token', 'service': 'r'})
    """
    scheme, _, params = header.strip().partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM_PATTERN.findall(params))


class RegistryClient:
    """Talks to one registry host.

    Args:
        host: Registry host, e.g. `cgr.dev`.
        credentials: Credentials for the host. Anonymous access when None.
        timeout: Timeout (seconds) for each HTTP call.
        session: Optional `requests.Session` (useful for tests).
        scheme: URL scheme of the registry.
    """

    def __init__(
        self,
        host: str,
        credentials: Optional[RegistryCredentials] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
        scheme: str = "https",
    ):
        self.host = host
        self.credentials = credentials
        self.timeout = timeout
        self.session = session or requests.Session()
        self.base_url = f"{scheme}://{host}"
        self._authorization: Dict[str, str] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.host})"

    # --------------------------------------------------------------------
    # Tags & manifests
    # --------------------------------------------------------------------

    def list_tags(self, repository: str) -> List[str]:
        """List every tag of a repository, following pagination links."""
        tags: List[str] = []
        url: Optional[str] = f"/v2/{repository}/tags/list?n={TAG_PAGE_SIZE}"
        while url:
            response = self._request("GET", url, repository=repository)
            self._check(response, f"list tags of {self.host}/{repository}")
            tags.extend(response.json().get("tags") or [])
            next_link = response.links.get("next", {}).get("url")
            url = urljoin(response.url, next_link) if next_link else None
        return tags

    def get_manifest(self, repository: str, reference: str) -> ImageDescriptor:
        """Fetch a manifest or index by tag or digest."""
        response = self._request(
            "GET",
            f"/v2/{repository}/manifests/{reference}",
            repository=repository,
            headers={"Accept": ", ".join(ACCEPTED_MANIFEST_MEDIA_TYPES)},
        )
        self._check(response, f"get manifest {self.host}/{repository}:{reference}")

        content = response.content
        digest = response.headers.get(DOCKER_CONTENT_DIGEST_HEADER) or compute_digest(content)
        if reference.startswith("sha256:") and compute_digest(content) != normalize_digest(
            reference
        ):
            raise RegistryError(
                f"Manifest {self.host}/{repository}@{reference} does not match its digest"
            )
        media_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        if media_type not in ACCEPTED_MANIFEST_MEDIA_TYPES:
            try:
                payload = response.json()
            except ValueError as e:
                raise RegistryError(
                    f"Manifest {self.host}/{repository}:{reference} is not valid JSON: {e}"
                ) from e
            if not isinstance(payload, dict):
                raise RegistryError(
                    f"Manifest {self.host}/{repository}:{reference} is not a JSON object"
                )
            media_type = payload.get("mediaType", media_type)

        return ImageDescriptor(
            repository=repository,
            reference=reference,
            digest=normalize_digest(digest),
            media_type=media_type,
            content=content,
        )

    def put_manifest(
        self, repository: str, reference: str, content: bytes, media_type: str
    ) -> str:
        """Write a manifest (or index) under a tag or digest. Returns the stored digest."""
        response = self._request(
            "PUT",
            f"/v2/{repository}/manifests/{reference}",
            repository=repository,
            push=True,
            headers={"Content-Type": media_type},
            data=content,
        )
        self._check(response, f"put manifest {self.host}/{repository}:{reference}")
        return normalize_digest(
            response.headers.get(DOCKER_CONTENT_DIGEST_HEADER) or compute_digest(content)
        )

    # --------------------------------------------------------------------
    # Blobs
    # --------------------------------------------------------------------

    def blob_exists(self, repository: str, digest: str) -> bool:
        response = self._request(
            "HEAD", f"/v2/{repository}/blobs/{digest}", repository=repository, push=True
        )
        if response.status_code == 404:
            return False
        self._check(response, f"check blob {self.host}/{repository}@{digest}")
        return True

    def download_blob(self, repository: str, digest: str, fileobj: IO[bytes]) -> int:
        """Stream a blob into `fileobj`, verifying its digest.

        Args:
            repository (str): Repository path on this registry.
            digest (str): Blob digest, `<algorithm>:<hex>`.
            fileobj (IO[bytes]): Writable binary file receiving the blob.

        Returns:
            The size of the blob in bytes.

        Raises:
            RegistryError: If the digest algorithm is unsupported, the request fails
                or the content does not match the digest.
        """
        algorithm, _, expected = digest.partition(":")
        try:
            hasher = hashlib.new(algorithm)
        except ValueError as e:
            raise RegistryError(f"Unsupported digest algorithm in {digest}") from e
        response = self._request(
            "GET", f"/v2/{repository}/blobs/{digest}", repository=repository, stream=True
        )
        with response:
            self._check(response, f"get blob {self.host}/{repository}@{digest}")
            size = 0
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                hasher.update(chunk)
                fileobj.write(chunk)
                size += len(chunk)
        if hasher.hexdigest() != expected:
            raise RegistryError(f"Blob {self.host}/{repository}@{digest} failed digest check")
        return size

    def upload_blob(self, repository: str, digest: str, fileobj: IO[bytes], size: int):
        """Upload a blob in a single chunk (POST, PATCH, then PUT to commit)."""
        response = self._request(
            "POST", f"/v2/{repository}/blobs/uploads/", repository=repository, push=True
        )
        self._check(response, f"start blob upload {self.host}/{repository}")
        location = self._location(response)

        response = self._request(
            "PATCH",
            location,
            repository=repository,
            push=True,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Length": str(size),
                "Content-Range": f"0-{max(size - 1, 0)}",
            },
            data=fileobj,
        )
        self._check(response, f"upload blob {self.host}/{repository}@{digest}")
        location = self._location(response)

        response = self._request(
            "PUT",
            location,
            repository=repository,
            push=True,
            params={"digest": digest},
            headers={"Content-Length": "0"},
        )
        self._check(response, f"commit blob {self.host}/{repository}@{digest}")

    # --------------------------------------------------------------------
    # HTTP plumbing
    # --------------------------------------------------------------------

    def _request(
        self, method: str, url: str, repository: str, push: bool = False, **kwargs
    ) -> requests.Response:
        if url.startswith("/"):
            url = self.base_url + url
        scope = f"repository:{repository}:{'pull,push' if push else 'pull'}"
        headers = dict(kwargs.pop("headers", None) or {})

        for attempt in range(2):
            if scope in self._authorization:
                headers["Authorization"] = self._authorization[scope]
            try:
                response = self.session.request(
                    method, url, headers=headers, timeout=self.timeout, **kwargs
                )
            except requests.RequestException as e:
                raise RegistryError(f"{method} {url} failed: {e}") from e

            challenge = response.headers.get("WWW-Authenticate")
            if response.status_code != 401 or not challenge or attempt:
                return response
            response.close()
            self._authorization[scope] = self._authenticate(challenge, scope)
            rewind = getattr(kwargs.get("data"), "seek", None)
            if rewind is not None:
                rewind(0)
        return response

    def _authenticate(self, challenge: str, scope: str) -> str:
        scheme, params = parse_auth_challenge(challenge)
        if scheme == "basic":
            if self.credentials is None:
                raise RegistryError(f"{self.host} requires credentials", status_code=401)
            token = f"{self.credentials.username}:{self.credentials.password}"
            return f"Basic {b64encode(token.encode()).decode()}"
        if scheme != "bearer" or "realm" not in params:
            raise RegistryError(f"Unsupported auth challenge from {self.host}: {challenge}")

        logger.debug(f"Requesting token for {scope} from {params['realm']}")
        query = {"scope": params.get("scope") or scope}
        if "service" in params:
            query["service"] = params["service"]
        auth = (self.credentials.username, self.credentials.password) if self.credentials else None
        try:
            response = self.session.get(
                params["realm"], params=query, auth=auth, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise RegistryError(f"Token request to {params['realm']} failed: {e}") from e
        self._check(response, f"get token from {params['realm']}")
        body = response.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            raise RegistryError(f"Token response from {params['realm']} had no token")
        return f"Bearer {token}"

    def _location(self, response: requests.Response) -> str:
        location = response.headers.get("Location")
        if not location:
            raise RegistryError(
                f"{self.host} did not return an upload location", response.status_code
            )
        return urljoin(self.base_url + "/", location)

    @staticmethod
    def _check(response: requests.Response, action: str):
        if 200 <= response.status_code < 300:
            return
        raise RegistryError(
            f"Failed to {action}: HTTP {response.status_code} {response.text[:300]}",
            status_code=response.status_code,
        )
