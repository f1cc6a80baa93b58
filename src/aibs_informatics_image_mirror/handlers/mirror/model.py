"""Image mirror models.

Defines the job descriptor carried by every (chained) invocation, the
response summarizing an invocation, and the per-tag / per-repository results
produced while mirroring.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from aibs_informatics_core.models.base import (
    BooleanField,
    EnumField,
    IntegerField,
    SchemaModel,
    StringField,
    custom_field,
)

from aibs_informatics_image_mirror.registry.model import ImageDescriptor


@dataclass
class MirrorJobRequest(SchemaModel):
    """Job descriptor of one invocation.

    Attributes:
        index: Position in the resolved repository list. Ignored when `repo` is set.
        repo: Explicit repository to mirror once, without chaining.
        list_digest: Hash of the repository list the chain was started with.
            Only set on continuations.
    """

    index: Optional[int] = custom_field(default=None, mm_field=IntegerField(allow_none=True))
    repo: Optional[str] = custom_field(default=None, mm_field=StringField(allow_none=True))
    list_digest: Optional[str] = custom_field(
        default=None, mm_field=StringField(allow_none=True)
    )

    @property
    def explicit_repo(self) -> Optional[str]:
        repo = (self.repo or "").strip()
        return repo or None


class MirrorMode(Enum):
    SINGLE = "single"
    INDEXED = "indexed"


@dataclass
class MirrorJobResponse(SchemaModel):
    mode: MirrorMode = custom_field(mm_field=EnumField(MirrorMode))
    message: str = custom_field(mm_field=StringField())
    total: int = custom_field(default=0, mm_field=IntegerField())
    index: Optional[int] = custom_field(default=None, mm_field=IntegerField(allow_none=True))
    repository: Optional[str] = custom_field(default=None, mm_field=StringField(allow_none=True))
    destination_repository: Optional[str] = custom_field(
        default=None, mm_field=StringField(allow_none=True)
    )
    tags_considered: int = custom_field(default=0, mm_field=IntegerField())
    tags_transferred: int = custom_field(default=0, mm_field=IntegerField())
    tags_skipped: int = custom_field(default=0, mm_field=IntegerField())
    next_index: Optional[int] = custom_field(
        default=None, mm_field=IntegerField(allow_none=True)
    )
    complete: bool = custom_field(default=False, mm_field=BooleanField())
    dry_run: bool = custom_field(default=False, mm_field=BooleanField())


# ----------------------------------------------------------
# Mirroring results (in-process only)
# ----------------------------------------------------------


class MirrorDecision(Enum):
    SKIP = "skip"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class DigestComparison:
    tag: str
    source: ImageDescriptor
    destination_digest: Optional[str]
    decision: MirrorDecision

    @property
    def source_digest(self) -> str:
        return self.source.digest


@dataclass
class TagMirrorResult:
    tag: str
    decision: MirrorDecision
    source_digest: str
    destination_digest: Optional[str] = None


@dataclass
class RepositoryMirrorResult:
    source_repository: str
    destination_repository: str
    tags: List[TagMirrorResult] = field(default_factory=list)
    created_repository: bool = False
    dry_run: bool = False

    @property
    def tags_considered(self) -> int:
        return len(self.tags)

    @property
    def tags_transferred(self) -> int:
        return sum(1 for _ in self.tags if _.decision == MirrorDecision.TRANSFER)

    @property
    def tags_skipped(self) -> int:
        return sum(1 for _ in self.tags if _.decision == MirrorDecision.SKIP)
