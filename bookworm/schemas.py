"""
Core Pydantic schemas for bookworm.

All stages share these models: archive posts flow into the index as
payloads, and index payloads flow back out as PassageRecords that the
context reconstructor merges per post.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# --- Storage key encoding ------------------------------------------------------

KEY_MULTIPLIER = 10_000
MAX_CHUNKS_PER_POST = KEY_MULTIPLIER


def storage_key(post_id: int, chunk_index: int = 0) -> int:
    """
    Index key for one stored passage: post_id * 10000 + chunk_index.

    Chunk index 0 doubles as the key of a summarised post, so it is also the
    key probed by the catch-up existence check.
    """
    if post_id < 0:
        raise ValueError(f"post id must be non-negative, got {post_id}")
    if not 0 <= chunk_index < MAX_CHUNKS_PER_POST:
        raise ValueError(
            f"chunk index {chunk_index} for post {post_id} is outside "
            f"[0, {MAX_CHUNKS_PER_POST}) and would collide with another post's keys"
        )
    return post_id * KEY_MULTIPLIER + chunk_index


# --- Archive models --------------------------------------------------------------

class NewsPost(BaseModel):
    """
    One archived news post.

    The metadata fields are carried through unchanged into index payloads
    and, from there, into the response references.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    section: str
    date: int = 0
    date_ingame: str = ""
    from_: str = Field(default="", alias="from")
    to: str = ""
    subject: str = ""
    message: str = ""


class PostResult(BaseModel):
    """Envelope returned by the archive for a single post."""

    previous: Optional[str] = None
    next: Optional[str] = None
    post: NewsPost

    @field_validator("previous", "next", mode="before")
    @classmethod
    def _false_is_none(cls, value: Any) -> Any:
        # The archive sends `false` instead of null when there is no link.
        if value is False:
            return None
        return value


class NewsSection(BaseModel):
    """An entry of the archive's section listing (name + total post count)."""

    uri: str = ""
    total: int = Field(ge=0)
    name: str

    @property
    def section(self) -> str:
        return self.name.lower()


# --- Retrieval models -------------------------------------------------------------

class Window(BaseModel):
    """A fixed-size slice of a post's message produced by the chunker."""

    start: int
    end: int
    text: str


class PassageRecord(BaseModel):
    """
    A retrieved unit of text.

    `span` holds (start, end) character offsets into the owning post's message
    for windowed passages; summaries carry no span and `text` is the exact
    context.
    """

    model_config = ConfigDict(frozen=True)

    source_id: int
    text: str
    span: Optional[tuple[int, int]] = None

    @model_validator(mode="after")
    def _check_span(self) -> "PassageRecord":
        if self.span is not None:
            start, end = self.span
            if start < 0 or start > end:
                raise ValueError(f"malformed span {self.span} for post {self.source_id}")
        return self

    @property
    def start(self) -> int:
        return self.span[0] if self.span else 0

    @property
    def end(self) -> int:
        return self.span[1] if self.span else 0


class SearchHit(BaseModel):
    """A ranked result from the vector index."""

    key: int | str
    score: float
    payload: dict[str, Any] = Field(default_factory=dict)


class SearchPlan(BaseModel):
    """How a query is turned into index search parameters."""

    filtered: bool
    entities: list[str] = Field(default_factory=list)
    limit: int = Field(gt=0)
    rerank: bool = False
