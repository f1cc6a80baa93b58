from typing import Callable, Optional

from aibs_informatics_core.utils.logging import get_logger

from aibs_informatics_image_mirror.config import MirrorConfig
from aibs_informatics_image_mirror.exceptions import ConfigurationError, ImageMirrorError
from aibs_informatics_image_mirror.handlers.mirror.destination import ECRDestination
from aibs_informatics_image_mirror.handlers.mirror.digest import DigestSkipEngine
from aibs_informatics_image_mirror.handlers.mirror.model import (
    MirrorDecision,
    RepositoryMirrorResult,
    TagMirrorResult,
)
from aibs_informatics_image_mirror.handlers.mirror.tags import TagSelector
from aibs_informatics_image_mirror.handlers.mirror.transfer import ImageTransferExecutor
from aibs_informatics_image_mirror.registry.auth import CredentialResolver
from aibs_informatics_image_mirror.registry.client import RegistryClient
from aibs_informatics_image_mirror.registry.model import RegistryCredentials, split_repository

logger = get_logger(__name__)

RegistryClientFactory = Callable[[str, RegistryCredentials], RegistryClient]


class MirrorOrchestrator:
    """Mirrors every selected tag of one source repository.

    Steps:
        1. compute the destination repository (source host stripped, prefix added)
        2. make sure the destination repository exists (created with scan on push)
        3. select the tags to mirror
        4. per tag, in order: compare digests, transfer when they differ

    The first fatal error aborts the remaining tags of the repository.

    Args:
        config (MirrorConfig): Mirror configuration.
        credentials (CredentialResolver): Resolves credentials of both registries.
        destination (ECRDestination): Control plane of the destination registry.
        client_factory (Optional[RegistryClientFactory]): Builds a registry client
            from a host and its credentials. Defaults to `RegistryClient`.
    """

    def __init__(
        self,
        config: MirrorConfig,
        credentials: CredentialResolver,
        destination: ECRDestination,
        client_factory: Optional[RegistryClientFactory] = None,
    ):
        self.config = config
        self.credentials = credentials
        self.destination = destination
        self.client_factory = client_factory or self._default_client_factory

    def _default_client_factory(
        self, host: str, credentials: RegistryCredentials
    ) -> RegistryClient:
        return RegistryClient(host, credentials=credentials, timeout=self.config.registry_timeout)

    def mirror(self, source_repository: str) -> RepositoryMirrorResult:
        """Mirror the selected tags of one source repository.

        In dry-run mode nothing is contacted; only the destination name is computed.

        Args:
            source_repository (str): Source repository, with or without registry host.

        Returns:
            Per-tag decisions and digests, in tag order.

        Raises:
            ConfigurationError: If the repository names no host and no source
                registry is configured, or credentials are missing.
            ImageMirrorError: On the first tag that cannot be evaluated or copied.
        """
        destination_repository = self.config.destination_repository_for(source_repository)
        result = RepositoryMirrorResult(
            source_repository=source_repository,
            destination_repository=destination_repository,
            dry_run=self.config.dry_run,
        )
        if self.config.dry_run:
            logger.info(f"[DRY-RUN] Would mirror: {source_repository} -> {destination_repository}")
            return result

        try:
            source_host, source_path = split_repository(
                source_repository, default_host=self.config.source_registry
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        source_client = self.client_factory(source_host, self.credentials.resolve(source_host))
        destination_host = self.credentials.destination_host
        destination_client = self.client_factory(
            destination_host, self.credentials.resolve(destination_host)
        )

        result.created_repository = self.destination.ensure_repository(destination_repository)

        tags = TagSelector(self.config, source_client).select(source_repository, source_path)
        skip_engine = DigestSkipEngine(source_client, self.destination)
        executor = ImageTransferExecutor(source_client, destination_client)

        for tag in tags:
            try:
                comparison = skip_engine.evaluate(source_path, destination_repository, tag)
                if comparison.decision == MirrorDecision.SKIP:
                    logger.info(
                        f"Skipping {source_repository} (tag {tag!r}), "
                        f"already present with digest {comparison.source_digest}"
                    )
                    destination_digest = comparison.destination_digest
                else:
                    destination_digest = executor.transfer(
                        comparison.source, destination_repository, tag
                    )
            except ImageMirrorError as e:
                logger.error(f"Mirroring {source_repository}:{tag} failed: {e}")
                raise
            result.tags.append(
                TagMirrorResult(
                    tag=tag,
                    decision=comparison.decision,
                    source_digest=comparison.source_digest,
                    destination_digest=destination_digest,
                )
            )

        logger.info(f"Mirrored {source_repository} ({len(tags)} tag(s) considered)")
        return result
