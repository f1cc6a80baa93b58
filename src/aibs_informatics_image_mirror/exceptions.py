"""Exceptions raised while mirroring container images.

Fatal errors propagate out of the Lambda handler and stop the chain at the
current index. `DestinationLookupError` is the only non-fatal member: it is
converted into a cache miss by the digest skip engine.
"""

__all__ = [
    "ImageMirrorError",
    "ConfigurationError",
    "DiscoveryError",
    "SourceReadError",
    "TransferError",
    "DestinationLookupError",
    "ChainDispatchError",
    "RegistryError",
]

from typing import Optional

from aibs_informatics_core.exceptions import ApplicationException


class ImageMirrorError(ApplicationException):
    pass


class ConfigurationError(ImageMirrorError):
    """Missing or malformed credentials, identifiers or settings."""


class DiscoveryError(ImageMirrorError):
    """Repository list or tag list could not be retrieved."""


class SourceReadError(ImageMirrorError):
    """A manifest could not be read from the source registry."""


class TransferError(ImageMirrorError):
    """Copying an image (or preparing its destination) failed."""


class DestinationLookupError(ImageMirrorError):
    """The destination digest of a tag could not be queried."""


class ChainDispatchError(ImageMirrorError):
    """The asynchronous continuation could not be dispatched."""


class RegistryError(ImageMirrorError):
    """A registry HTTP call failed. Carries the HTTP status when there was one."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
