from tempfile import SpooledTemporaryFile
from typing import Set

from aibs_informatics_core.utils.logging import get_logger

from aibs_informatics_image_mirror.exceptions import RegistryError, TransferError
from aibs_informatics_image_mirror.registry.client import RegistryClient
from aibs_informatics_image_mirror.registry.model import BlobDescriptor, ImageDescriptor

logger = get_logger(__name__)

# Blobs up to this size are buffered in memory, larger ones spill to /tmp
SPOOL_MAX_SIZE = 64 * 1024 * 1024


class ImageTransferExecutor:
    """Copies an image or image index from the source to the destination registry.

    Manifests are re-pushed byte for byte so digests are preserved. An index
    is written as an index after each of its child manifests (and their
    blobs) has been copied, so multi-platform images are never flattened.

    Args:
        source_client (RegistryClient): Client authorized to pull from the source.
        destination_client (RegistryClient): Client authorized to push to the destination.
    """

    def __init__(self, source_client: RegistryClient, destination_client: RegistryClient):
        self.source_client = source_client
        self.destination_client = destination_client
        self._present_blobs: Set[str] = set()

    def transfer(self, descriptor: ImageDescriptor, destination_repository: str, tag: str) -> str:
        """Copy `descriptor` to `destination_repository:tag`.

        Blobs already present at the destination are not uploaded again.

        Args:
            descriptor (ImageDescriptor): Source manifest or index, as fetched.
            destination_repository (str): Repository name on the destination registry.
            tag (str): Tag to write at the destination.

        Returns:
            The digest recorded by the destination.

        Raises:
            TransferError: If any read or write fails.
        """
        src = f"{self.source_client.host}/{descriptor.repository}:{tag}"
        dst = f"{self.destination_client.host}/{destination_repository}:{tag}"
        kind = "index" if descriptor.is_index else "image"
        logger.info(f"Copying {kind} {src} -> {dst}")
        try:
            self._copy_contents(descriptor, destination_repository)
            digest = self.destination_client.put_manifest(
                destination_repository, tag, descriptor.content, descriptor.media_type
            )
        except RegistryError as e:
            raise TransferError(f"copy {kind} {src} -> {dst}: {e}") from e
        if digest != descriptor.digest:
            logger.warning(f"{dst} stored as {digest}, source digest is {descriptor.digest}")
        return digest

    def _copy_contents(self, descriptor: ImageDescriptor, destination_repository: str):
        if descriptor.is_index:
            for child in descriptor.manifests:
                child_descriptor = self.source_client.get_manifest(
                    descriptor.repository, child.digest
                )
                self._copy_contents(child_descriptor, destination_repository)
                self.destination_client.put_manifest(
                    destination_repository,
                    child.digest,
                    child_descriptor.content,
                    child_descriptor.media_type,
                )
            return

        for blob in descriptor.blobs:
            if not blob.is_distributable:
                logger.debug(f"Not copying non-distributable blob {blob.digest}")
                continue
            self._copy_blob(descriptor.repository, destination_repository, blob)

    def _copy_blob(
        self, source_repository: str, destination_repository: str, blob: BlobDescriptor
    ):
        key = f"{destination_repository}@{blob.digest}"
        if key in self._present_blobs:
            return
        if not self.destination_client.blob_exists(destination_repository, blob.digest):
            with SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as buffer:
                size = self.source_client.download_blob(source_repository, blob.digest, buffer)
                buffer.seek(0)
                self.destination_client.upload_blob(
                    destination_repository, blob.digest, buffer, size
                )
            logger.debug(f"Copied blob {blob.digest} ({size} bytes)")
        self._present_blobs.add(key)
