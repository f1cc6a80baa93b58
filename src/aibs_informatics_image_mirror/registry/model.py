"""Models for OCI / Docker distribution manifests and references."""

__all__ = [
    "DOCKER_MANIFEST_V2",
    "DOCKER_MANIFEST_LIST_V2",
    "OCI_MANIFEST_V1",
    "OCI_INDEX_V1",
    "INDEX_MEDIA_TYPES",
    "MANIFEST_MEDIA_TYPES",
    "ACCEPTED_MANIFEST_MEDIA_TYPES",
    "BlobDescriptor",
    "ImageDescriptor",
    "RegistryCredentials",
    "compute_digest",
    "normalize_digest",
    "split_repository",
]

import hashlib
import json
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, List, Optional, Tuple

DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_MANIFEST_V1 = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX_V1 = "application/vnd.oci.image.index.v1+json"

INDEX_MEDIA_TYPES = frozenset([DOCKER_MANIFEST_LIST_V2, OCI_INDEX_V1])
MANIFEST_MEDIA_TYPES = frozenset([DOCKER_MANIFEST_V2, OCI_MANIFEST_V1])
ACCEPTED_MANIFEST_MEDIA_TYPES: Tuple[str, ...] = (
    OCI_INDEX_V1,
    DOCKER_MANIFEST_LIST_V2,
    OCI_MANIFEST_V1,
    DOCKER_MANIFEST_V2,
)

# Layers with these markers live outside the registry and are never copied
NON_DISTRIBUTABLE_MARKERS = ("foreign", "nondistributable")


def normalize_digest(digest: str) -> str:
    return digest.strip().lower()


def compute_digest(content: bytes) -> str:
    return f"sha256:{hashlib.sha256(content).hexdigest()}"


def split_repository(repository: str, default_host: Optional[str] = None) -> Tuple[str, str]:
    """Split `host/path/name` into (`host`, `path/name`).

    Identifiers without a registry host are resolved against `default_host`.

    Raises:
        ValueError: If no host can be determined.
    """
    repository = repository.strip().strip("/")
    host, sep, path = repository.partition("/")
    if sep and path and ("." in host or ":" in host or host == "localhost"):
        return host, path
    if default_host:
        return default_host, repository
    raise ValueError(f"Repository {repository!r} is not fully qualified (host/path)")


@dataclass(frozen=True)
class RegistryCredentials:
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class BlobDescriptor:
    digest: str
    media_type: str = ""
    size: Optional[int] = None
    urls: Tuple[str, ...] = ()

    @property
    def is_distributable(self) -> bool:
        media_type = self.media_type.lower()
        if self.urls:
            return False
        return not any(marker in media_type for marker in NON_DISTRIBUTABLE_MARKERS)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlobDescriptor":
        return cls(
            digest=normalize_digest(data["digest"]),
            media_type=data.get("mediaType", ""),
            size=data.get("size"),
            urls=tuple(data.get("urls") or ()),
        )


@dataclass(frozen=True)
class ImageDescriptor:
    """A manifest (single image) or index (multi-platform) read from a registry.

    The raw manifest bytes are kept verbatim so that re-pushing them preserves
    the digest.
    """

    repository: str
    reference: str
    digest: str
    media_type: str
    content: bytes = field(repr=False)

    @cached_property
    def payload(self) -> Dict[str, Any]:
        return json.loads(self.content)

    @property
    def is_index(self) -> bool:
        if self.media_type in INDEX_MEDIA_TYPES:
            return True
        if self.media_type in MANIFEST_MEDIA_TYPES:
            return False
        # untyped response, fall back to the document shape
        return "manifests" in self.payload

    @property
    def manifests(self) -> List[BlobDescriptor]:
        """Child manifests of an index."""
        if not self.is_index:
            return []
        return [BlobDescriptor.from_dict(_) for _ in self.payload.get("manifests", [])]

    @property
    def blobs(self) -> List[BlobDescriptor]:
        """Config and layer blobs of a single image manifest."""
        if self.is_index:
            return []
        blobs = []
        if self.payload.get("config"):
            blobs.append(BlobDescriptor.from_dict(self.payload["config"]))
        blobs.extend(BlobDescriptor.from_dict(_) for _ in self.payload.get("layers", []))
        return blobs
