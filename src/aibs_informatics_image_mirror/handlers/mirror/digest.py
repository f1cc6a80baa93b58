from typing import Optional

from aibs_informatics_core.utils.logging import get_logger

from aibs_informatics_image_mirror.exceptions import (
    DestinationLookupError,
    RegistryError,
    SourceReadError,
)
from aibs_informatics_image_mirror.handlers.mirror.destination import ECRDestination
from aibs_informatics_image_mirror.handlers.mirror.model import DigestComparison, MirrorDecision
from aibs_informatics_image_mirror.registry.client import RegistryClient
from aibs_informatics_image_mirror.registry.model import normalize_digest

logger = get_logger(__name__)


def decide(source_digest: str, destination_digest: Optional[str]) -> MirrorDecision:
    """Skip only when the destination already records the exact source digest.

    Args:
        source_digest (str): Digest of the source manifest or index.
        destination_digest (Optional[str]): Digest recorded at the destination, if any.

    Returns:
        SKIP if both digests are equal, else TRANSFER.
    """
    if destination_digest is not None and normalize_digest(destination_digest) == normalize_digest(
        source_digest
    ):
        return MirrorDecision.SKIP
    return MirrorDecision.TRANSFER


class DigestSkipEngine:
    """Compares the source digest of a tag with the digest recorded at the destination."""

    def __init__(self, source_client: RegistryClient, destination: ECRDestination):
        self.source_client = source_client
        self.destination = destination

    def evaluate(
        self, source_repository: str, destination_repository: str, tag: str
    ) -> DigestComparison:
        """Fetch the source descriptor of `tag` and decide whether to transfer it.

        Args:
            source_repository: Repository path on the source registry (no host).
            destination_repository: Repository name on the destination registry.
            tag: The tag to evaluate.

        Returns:
            The source descriptor together with the skip or transfer decision.

        Raises:
            SourceReadError: If the source manifest cannot be fetched.
        """
        try:
            descriptor = self.source_client.get_manifest(source_repository, tag)
        except RegistryError as e:
            raise SourceReadError(
                f"get {self.source_client.host}/{source_repository}:{tag}: {e}"
            ) from e

        try:
            destination_digest = self.destination.get_tag_digest(destination_repository, tag)
        except DestinationLookupError as e:
            logger.warning(f"Destination lookup failed, treating {tag} as missing: {e}")
            destination_digest = None

        return DigestComparison(
            tag=tag,
            source=descriptor,
            destination_digest=destination_digest,
            decision=decide(descriptor.digest, destination_digest),
        )
