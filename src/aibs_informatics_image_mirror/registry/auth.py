"""Credentials for the source and destination registries."""

__all__ = [
    "CredentialResolver",
]

from typing import Optional, Tuple

from aibs_informatics_aws_utils.core import get_account_id, get_region
from aibs_informatics_aws_utils.ecr import ECRRegistry
from aibs_informatics_aws_utils.exceptions import AWSError
from aibs_informatics_core.utils.logging import get_logger
from botocore.exceptions import BotoCoreError, ClientError

from aibs_informatics_image_mirror.config import SRC_PASSWORD_KEY, SRC_USERNAME_KEY, MirrorConfig
from aibs_informatics_image_mirror.exceptions import ConfigurationError
from aibs_informatics_image_mirror.registry.model import RegistryCredentials

logger = get_logger(__name__)


class CredentialResolver:
    """Resolves registry credentials by host.

    The source registry uses the static username/password from the
    configuration. The destination (ECR) exchanges the AWS identity of the
    Lambda for a short lived registry password. The exchange happens at most
    once per resolver.

    Args:
        config (MirrorConfig): Mirror configuration holding the source registry credentials.
        ecr_registry (Optional[ECRRegistry]): Destination registry. Defaults to the
            registry of the current account and region.
    """

    def __init__(self, config: MirrorConfig, ecr_registry: Optional[ECRRegistry] = None):
        self.config = config
        self._ecr_registry = ecr_registry
        self._ecr_login: Optional[Tuple[str, RegistryCredentials]] = None

    @property
    def ecr_registry(self) -> ECRRegistry:
        if self._ecr_registry is None:
            try:
                self._ecr_registry = ECRRegistry(account_id=get_account_id(), region=get_region())
            except (AWSError, ClientError, BotoCoreError) as e:
                raise ConfigurationError(f"Could not determine destination registry: {e}") from e
        return self._ecr_registry

    @property
    def source_host(self) -> str:
        return self.config.source_registry

    @property
    def destination_host(self) -> str:
        return self._get_ecr_login()[0]

    def resolve(self, host: str) -> RegistryCredentials:
        """Credentials able to pull from the source or push to the destination host.

        Args:
            host (str): Registry host name, without scheme.

        Returns:
            Credentials for the host.

        Raises:
            ConfigurationError: If credentials are missing or cannot be obtained.
        """
        if host == self.source_host:
            return self.source_credentials()
        if host == self.destination_host:
            return self._get_ecr_login()[1]
        raise ConfigurationError(f"No credentials configured for registry host {host}")

    def source_credentials(self) -> RegistryCredentials:
        if not self.config.source_username or not self.config.source_password:
            raise ConfigurationError(f"{SRC_USERNAME_KEY}/{SRC_PASSWORD_KEY} not set")
        return RegistryCredentials(
            username=self.config.source_username, password=self.config.source_password
        )

    def _get_ecr_login(self) -> Tuple[str, RegistryCredentials]:
        if self._ecr_login is None:
            try:
                login = self.ecr_registry.get_ecr_login()
            except (AWSError, ClientError, BotoCoreError, ValueError) as e:
                raise ConfigurationError(f"Could not obtain ECR login: {e}") from e

            host = login.registry
            if host.startswith("https://"):
                host = host[len("https://") :]
            host = host.rstrip("/")
            if not host:
                raise ConfigurationError("ECR login did not name a registry")
            if not login.username or not login.password:
                raise ConfigurationError(f"ECR login for {host} has no credentials")
            logger.info(f"Obtained ECR credentials for {host}")
            self._ecr_login = (
                host,
                RegistryCredentials(username=login.username, password=login.password),
            )
        return self._ecr_login
