"""
Collection policies
-------------------
A Collection is one index partition built from one archive section with a
fixed chunking policy.  The variants form a closed set; every behaviour that
differs between them is a lookup in _POLICIES, never overridden logic.

    kind     chunk  step  limit  entity filter
    short     400   200    10    yes
    long     1000   400    10    yes
    dense     500    20    10    no   (embedding assumed name-agnostic)
    summary    -     -      5    yes  (one LLM summary per post, no spans)
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CollectionKind(str, Enum):
    SHORT = "short"
    LONG = "long"
    DENSE = "dense"
    SUMMARY = "summary"


@dataclass(frozen=True)
class ChunkPolicy:
    chunk_size: Optional[int]
    overlap_size: Optional[int]
    default_limit: int
    has_pronouns: bool


_POLICIES: dict[CollectionKind, ChunkPolicy] = {
    CollectionKind.SHORT:   ChunkPolicy(chunk_size=400,  overlap_size=200,  default_limit=10, has_pronouns=True),
    CollectionKind.LONG:    ChunkPolicy(chunk_size=1000, overlap_size=400,  default_limit=10, has_pronouns=True),
    CollectionKind.DENSE:   ChunkPolicy(chunk_size=500,  overlap_size=20,   default_limit=10, has_pronouns=False),
    CollectionKind.SUMMARY: ChunkPolicy(chunk_size=None, overlap_size=None, default_limit=5,  has_pronouns=True),
}


class Collection(BaseModel):
    """An archive section indexed under one chunking policy. Immutable."""

    model_config = ConfigDict(frozen=True)

    kind: CollectionKind
    section: str

    @property
    def policy(self) -> ChunkPolicy:
        return _POLICIES[self.kind]

    @property
    def name(self) -> str:
        """Index collection name: the bare section for short, suffixed otherwise."""
        if self.kind is CollectionKind.SHORT:
            return self.section
        return f"{self.section}_{self.kind.value}"

    @property
    def is_summary(self) -> bool:
        return self.kind is CollectionKind.SUMMARY

    @property
    def chunk_size(self) -> int:
        if self.policy.chunk_size is None:
            raise ValueError(f"Collection '{self.name}' is summarised and has no chunk size")
        return self.policy.chunk_size

    @property
    def overlap_size(self) -> int:
        if self.policy.overlap_size is None:
            raise ValueError(f"Collection '{self.name}' is summarised and has no overlap size")
        return self.policy.overlap_size

    @property
    def default_limit(self) -> int:
        return self.policy.default_limit

    @property
    def has_pronouns(self) -> bool:
        """Whether entity (proper noun) filtering may be used on this collection."""
        return self.policy.has_pronouns


class CollectionType(str, Enum):
    """The collections selectable from the command line."""

    SHORT = "short"
    LONG = "long"
    SUMMARY = "summary"
    DENSE = "dense"
    PUBLIC_SUMMARY = "public-summary"

    def to_collection(self) -> Collection:
        if self is CollectionType.PUBLIC_SUMMARY:
            return Collection(kind=CollectionKind.SUMMARY, section="public")
        return Collection(kind=CollectionKind(self.value), section="events")
