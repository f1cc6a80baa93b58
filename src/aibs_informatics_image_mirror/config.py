"""Runtime configuration for the image mirror.

All settings are read from the environment exactly once, at the entry point,
into an immutable `MirrorConfig` which is then handed to every component.
"""

__all__ = [
    "MirrorConfig",
    "SRC_REGISTRY_KEY",
    "GROUP_NAME_KEY",
    "DST_PREFIX_KEY",
    "SRC_USERNAME_KEY",
    "SRC_PASSWORD_KEY",
    "REPO_LIST_JSON_KEY",
    "REPO_LIST_CSV_KEY",
    "REPO_LIST_SSM_PARAM_KEY",
    "COPY_ALL_TAGS_KEY",
    "TAG_MAP_JSON_KEY",
    "MIRROR_DRY_RUN_KEY",
    "START_INDEX_KEY",
    "REGISTRY_TIMEOUT_KEY",
]

import json
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from aibs_informatics_aws_utils.constants.lambda_ import AWS_LAMBDA_FUNCTION_NAME_KEY
from aibs_informatics_core.utils.os_operations import get_env_var

from aibs_informatics_image_mirror.exceptions import ConfigurationError

SRC_REGISTRY_KEY = "SRC_REGISTRY"
GROUP_NAME_KEY = "GROUP_NAME"
DST_PREFIX_KEY = "DST_PREFIX"
SRC_USERNAME_KEY = "CGR_USERNAME"
SRC_PASSWORD_KEY = "CGR_PASSWORD"
REPO_LIST_JSON_KEY = "REPO_LIST_JSON"
REPO_LIST_CSV_KEY = "REPO_LIST_CSV"
REPO_LIST_SSM_PARAM_KEY = "REPO_LIST_SSM_PARAM"
COPY_ALL_TAGS_KEY = "COPY_ALL_TAGS"
TAG_MAP_JSON_KEY = "TAG_MAP_JSON"
MIRROR_DRY_RUN_KEY = "MIRROR_DRY_RUN"
START_INDEX_KEY = "START_INDEX"
REGISTRY_TIMEOUT_KEY = "REGISTRY_TIMEOUT"

DEFAULT_SRC_REGISTRY = "cgr.dev"
DEFAULT_GROUP_NAME = "chainguard"
DEFAULT_TAG = "latest"
DEFAULT_REGISTRY_TIMEOUT = 60.0


def _env(key: str) -> str:
    return (get_env_var(key) or "").strip()


def _env_flag(key: str) -> bool:
    return _env(key).lower() == "true"


def _parse_tag_map(raw: str) -> Dict[str, Tuple[str, ...]]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{TAG_MAP_JSON_KEY} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ConfigurationError(f"{TAG_MAP_JSON_KEY} must be a JSON object, got {raw!r}")

    tag_map: Dict[str, Tuple[str, ...]] = {}
    for repository, tags in value.items():
        if isinstance(tags, str):
            tags = [tags]
        if not isinstance(tags, list) or not all(isinstance(_, str) for _ in tags):
            raise ConfigurationError(
                f"{TAG_MAP_JSON_KEY} entry for {repository!r} must be a list of tags"
            )
        tag_map[str(repository).strip()] = tuple(tags)
    return tag_map


@dataclass(frozen=True)
class MirrorConfig:
    """Immutable settings shared by every mirror component.

    Attributes:
        source_registry: Host of the source registry (e.g. `cgr.dev`).
        group_name: Group used to build the static fallback repository list.
        destination_prefix: Path prepended to every destination repository.
        source_username: Username for the source registry.
        source_password: Password (or token) for the source registry.
        repo_list_json: Inline JSON array of repositories.
        repo_list_csv: Inline comma separated repositories.
        repo_list_ssm_param: Name of an SSM parameter holding the repositories.
        copy_all_tags: Mirror every tag instead of the default tag only.
        tag_map: Explicit tags per repository, overriding the tag policy.
        dry_run: Log what would be mirrored without touching any registry.
        start_index: Index used when the trigger payload carries none.
        function_name: Name of the Lambda function continuations are sent to.
        default_tag: Tag mirrored when not copying all tags.
        scan_on_push: Enable image scanning on repositories created by the mirror.
        registry_timeout: HTTP timeout (seconds) for registry calls.
    """

    source_registry: str = DEFAULT_SRC_REGISTRY
    group_name: str = DEFAULT_GROUP_NAME
    destination_prefix: str = ""
    source_username: Optional[str] = field(default=None, repr=False)
    source_password: Optional[str] = field(default=None, repr=False)
    repo_list_json: Optional[str] = None
    repo_list_csv: Optional[str] = None
    repo_list_ssm_param: Optional[str] = None
    copy_all_tags: bool = False
    tag_map: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    dry_run: bool = False
    start_index: int = 0
    function_name: Optional[str] = None
    default_tag: str = DEFAULT_TAG
    scan_on_push: bool = True
    registry_timeout: float = DEFAULT_REGISTRY_TIMEOUT

    @classmethod
    def from_env(cls) -> "MirrorConfig":
        """Build the configuration from environment variables.

        Raises:
            ConfigurationError: If a numeric or JSON setting cannot be parsed.
        """
        start_index = _env(START_INDEX_KEY)
        try:
            parsed_start_index = int(start_index) if start_index else 0
        except ValueError as e:
            raise ConfigurationError(
                f"{START_INDEX_KEY} must be an integer: {start_index!r}"
            ) from e

        timeout = _env(REGISTRY_TIMEOUT_KEY)
        try:
            parsed_timeout = float(timeout) if timeout else DEFAULT_REGISTRY_TIMEOUT
        except ValueError as e:
            raise ConfigurationError(
                f"{REGISTRY_TIMEOUT_KEY} must be a number: {timeout!r}"
            ) from e

        return cls(
            source_registry=_env(SRC_REGISTRY_KEY) or DEFAULT_SRC_REGISTRY,
            group_name=_env(GROUP_NAME_KEY) or DEFAULT_GROUP_NAME,
            destination_prefix=_env(DST_PREFIX_KEY).strip("/").strip(),
            source_username=_env(SRC_USERNAME_KEY) or None,
            source_password=_env(SRC_PASSWORD_KEY) or None,
            repo_list_json=_env(REPO_LIST_JSON_KEY) or None,
            repo_list_csv=_env(REPO_LIST_CSV_KEY) or None,
            repo_list_ssm_param=_env(REPO_LIST_SSM_PARAM_KEY) or None,
            copy_all_tags=_env_flag(COPY_ALL_TAGS_KEY),
            tag_map=_parse_tag_map(_env(TAG_MAP_JSON_KEY)),
            dry_run=_env_flag(MIRROR_DRY_RUN_KEY),
            start_index=parsed_start_index,
            function_name=_env(AWS_LAMBDA_FUNCTION_NAME_KEY) or None,
            registry_timeout=parsed_timeout,
        )

    def strip_source_host(self, repository: str) -> str:
        """Return the repository path without the `<source host>/` prefix."""
        prefix = f"{self.source_registry}/"
        if repository.startswith(prefix):
            return repository[len(prefix) :]
        return repository

    def destination_repository_for(self, repository: str) -> str:
        """Compute the destination repository name for a source repository.

        Example:
            with `source_registry="cgr.dev"` and `destination_prefix="mirror"`,
            `cgr.dev/chainguard/nginx` maps to `mirror/chainguard/nginx`.
        """
        path = self.strip_source_host(repository)
        if self.destination_prefix:
            return f"{self.destination_prefix}/{path}"
        return path

    def explicit_tags_for(self, repository: str) -> Optional[Tuple[str, ...]]:
        """Explicit tags configured for a repository, by full or host-less name."""
        if repository in self.tag_map:
            return self.tag_map[repository]
        return self.tag_map.get(self.strip_source_host(repository))
