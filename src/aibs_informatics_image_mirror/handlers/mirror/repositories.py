import hashlib
import json
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

import boto3
from aibs_informatics_aws_utils.core import get_region
from aibs_informatics_core.utils.logging import get_logger
from botocore.exceptions import BotoCoreError, ClientError

from aibs_informatics_image_mirror.config import (
    REPO_LIST_JSON_KEY,
    REPO_LIST_SSM_PARAM_KEY,
    MirrorConfig,
)
from aibs_informatics_image_mirror.exceptions import DiscoveryError

if TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_ssm import SSMClient
else:
    SSMClient = object

logger = get_logger(__name__)

FALLBACK_REPOSITORY_NAMES = ("foo", "bar", "baz")


def normalize_entries(entries: Iterable[str]) -> List[str]:
    """Trim entries, drop blanks and duplicates. First occurrence wins."""
    seen = set()
    normalized = []
    for entry in entries:
        entry = entry.strip()
        if entry and entry not in seen:
            seen.add(entry)
            normalized.append(entry)
    return normalized


def is_repository_array(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(_, str) for _ in value)


def parse_repository_text(value: str) -> List[str]:
    """Parse a JSON array of repositories, falling back to comma separated text.

    Args:
        value (str): JSON array or comma separated repository names.

    Raises:
        DiscoveryError: If `value` is a JSON array holding non-string elements.

    Returns:
        The normalized repository names.
    """
    value = value.strip()
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        if not is_repository_array(parsed):
            raise DiscoveryError("Repository list array must only contain strings")
        return normalize_entries(parsed)
    return normalize_entries(value.split(","))


def compute_list_digest(repositories: List[str]) -> str:
    """Order sensitive fingerprint of a repository list."""
    return hashlib.sha256("\n".join(repositories).encode()).hexdigest()


class RepositoryListProvider:
    """Resolves the ordered list of source repositories to mirror.

    Sources, highest precedence first: inline JSON, inline CSV, an SSM
    parameter, and finally a static fallback under the configured group.
    The result must be identical for identical configuration since chained
    invocations recompute it and address it by index.

    Args:
        config (MirrorConfig): Mirror configuration holding the list sources.
        ssm_client (Optional[SSMClient]): SSM client. Created on first use if omitted.
    """

    def __init__(self, config: MirrorConfig, ssm_client: Optional[SSMClient] = None):
        self.config = config
        self._ssm_client = ssm_client

    @property
    def ssm_client(self) -> SSMClient:
        if self._ssm_client is None:
            self._ssm_client = boto3.client("ssm", region_name=get_region())
        return self._ssm_client

    def resolve(self) -> List[str]:
        """Resolve the repository list from the first configured source.

        An invalid inline JSON list is logged and skipped in favor of the next source.

        Returns:
            Distinct repositories in configured order.

        Raises:
            DiscoveryError: If the SSM parameter cannot be read or is empty.
        """
        if self.config.repo_list_json:
            try:
                repositories = json.loads(self.config.repo_list_json)
            except json.JSONDecodeError:
                repositories = None
            if is_repository_array(repositories):
                return normalize_entries(repositories)
            logger.warning(f"{REPO_LIST_JSON_KEY} invalid; falling back...")

        if self.config.repo_list_csv:
            return normalize_entries(self.config.repo_list_csv.split(","))

        if self.config.repo_list_ssm_param:
            return self._resolve_from_ssm(self.config.repo_list_ssm_param)

        return [
            f"{self.config.source_registry}/{self.config.group_name}/{name}"
            for name in FALLBACK_REPOSITORY_NAMES
        ]

    def _resolve_from_ssm(self, param_name: str) -> List[str]:
        try:
            response = self.ssm_client.get_parameter(Name=param_name, WithDecryption=True)
        except (ClientError, BotoCoreError) as e:
            raise DiscoveryError(f"load from SSM {param_name!r}: {e}") from e

        value = (response.get("Parameter") or {}).get("Value")
        if not value or not value.strip():
            raise DiscoveryError(
                f"load from SSM {param_name!r}: empty {REPO_LIST_SSM_PARAM_KEY} parameter"
            )
        return parse_repository_text(value)
