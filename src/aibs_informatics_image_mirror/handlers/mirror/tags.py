from typing import List

from aibs_informatics_core.utils.logging import get_logger

from aibs_informatics_image_mirror.config import MirrorConfig
from aibs_informatics_image_mirror.exceptions import DiscoveryError, RegistryError
from aibs_informatics_image_mirror.handlers.mirror.repositories import normalize_entries
from aibs_informatics_image_mirror.registry.client import RegistryClient

logger = get_logger(__name__)


class TagSelector:
    """Decides which tags of a repository are mirrored.

    An explicit tag list configured for the repository wins. Otherwise every
    source tag is listed when copying all tags, else only the default tag.

    Args:
        config (MirrorConfig): Mirror configuration (tag map, copy-all flag, default tag).
        source_client (RegistryClient): Client of the source registry, used to list tags.
    """

    def __init__(self, config: MirrorConfig, source_client: RegistryClient):
        self.config = config
        self.source_client = source_client

    def select(self, repository: str, repository_path: str) -> List[str]:
        """Select the tags to mirror for a repository.

        Args:
            repository (str): Fully qualified source repository, used to look up
                configured tags.
            repository_path (str): The same repository addressed on the source registry.

        Returns:
            Distinct tags in mirroring order. May be empty.

        Raises:
            DiscoveryError: If listing the source tags failed.
        """
        explicit_tags = self.config.explicit_tags_for(repository)
        if explicit_tags is not None:
            logger.info(f"Using {len(explicit_tags)} configured tag(s) for {repository}")
            return normalize_entries(explicit_tags)

        if not self.config.copy_all_tags:
            return [self.config.default_tag]

        try:
            tags = self.source_client.list_tags(repository_path)
        except RegistryError as e:
            raise DiscoveryError(f"list tags for {repository}: {e}") from e
        if not tags:
            logger.info(f"No tags found for {repository}")
        return normalize_entries(tags)
