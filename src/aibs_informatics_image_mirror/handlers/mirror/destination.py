from typing import TYPE_CHECKING, Optional

from aibs_informatics_core.utils.logging import get_logger
from botocore.exceptions import BotoCoreError, ClientError

from aibs_informatics_image_mirror.exceptions import DestinationLookupError, TransferError
from aibs_informatics_image_mirror.registry.model import ACCEPTED_MANIFEST_MEDIA_TYPES

if TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_ecr import ECRClient
else:
    ECRClient = object

logger = get_logger(__name__)


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class ECRDestination:
    """Control plane operations on the destination ECR registry.

    Args:
        ecr_client (ECRClient): ECR client of the destination account and region.
        scan_on_push (bool): Enable image scanning on repositories this class creates.
    """

    def __init__(self, ecr_client: ECRClient, scan_on_push: bool = True):
        self.ecr_client = ecr_client
        self.scan_on_push = scan_on_push

    def ensure_repository(self, repository_name: str) -> bool:
        """Create the repository if it does not exist yet.

        A repository created concurrently by another invocation counts as existing.

        Args:
            repository_name (str): Destination repository name.

        Returns:
            True if the repository was created by this call.

        Raises:
            TransferError: If the repository can neither be described nor created.
        """
        try:
            self.ecr_client.describe_repositories(repositoryNames=[repository_name])
            return False
        except ClientError as e:
            if _error_code(e) != "RepositoryNotFoundException":
                raise TransferError(f"describe ECR repo {repository_name}: {e}") from e
        except BotoCoreError as e:
            raise TransferError(f"describe ECR repo {repository_name}: {e}") from e

        try:
            self.ecr_client.create_repository(
                repositoryName=repository_name,
                imageScanningConfiguration={"scanOnPush": self.scan_on_push},
            )
        except ClientError as e:
            if _error_code(e) == "RepositoryAlreadyExistsException":
                logger.info(f"ECR repo {repository_name} was created concurrently")
                return False
            raise TransferError(f"create ECR repo {repository_name}: {e}") from e
        except BotoCoreError as e:
            raise TransferError(f"create ECR repo {repository_name}: {e}") from e
        logger.info(f"Created ECR repo: {repository_name}")
        return True

    def get_tag_digest(self, repository_name: str, tag: str) -> Optional[str]:
        """Look up the digest the destination currently records for a tag.

        Args:
            repository_name (str): Destination repository name.
            tag (str): The tag to look up.

        Returns:
            The image digest, or None if the tag (or the repository) does not exist.

        Raises:
            DestinationLookupError: If the lookup call itself failed.
        """
        try:
            response = self.ecr_client.batch_get_image(
                repositoryName=repository_name,
                imageIds=[{"imageTag": tag}],
                acceptedMediaTypes=list(ACCEPTED_MANIFEST_MEDIA_TYPES),
            )
        except (ClientError, BotoCoreError) as e:
            raise DestinationLookupError(
                f"ecr:BatchGetImage {repository_name}:{tag} failed: {e}"
            ) from e

        for image in response.get("images") or []:
            digest = (image.get("imageId") or {}).get("imageDigest")
            if digest:
                return digest
        return None
