"""
Response assembly.

`all_references` are the posts behind every candidate the index returned
(before any rerank); `used_references` are the posts whose passages made it
into the prompt context.  Both are sorted, de-duplicated post ids.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from bookworm.retrieval.context import as_int, build_context, passages_from_payloads
from bookworm.schemas import SearchHit


def reference_ids(payloads: Iterable[dict[str, Any]]) -> list[int]:
    return sorted({as_int(payload.get("id")) for payload in payloads})


class BookwormResponse(BaseModel):
    """Final structured answer to one query."""

    all_references: list[int] = Field(default_factory=list)
    used_references: list[int] = Field(default_factory=list)
    entities: Optional[list[str]] = None
    context: Optional[str] = None
    collection: Optional[str] = None
    model: str = ""
    answer: str

    @classmethod
    def assemble(
        cls,
        hits: list[SearchHit],
        used_payloads: list[dict[str, Any]],
        answer: str,
        model: str,
        entities: Optional[list[str]] = None,
        collection: Optional[str] = None,
        context: Optional[str] = None,
    ) -> "BookwormResponse":
        if context is None:
            context = build_context(passages_from_payloads(used_payloads))
        return cls(
            all_references=reference_ids(hit.payload for hit in hits),
            used_references=reference_ids(used_payloads),
            entities=entities,
            context=context,
            collection=collection,
            model=model,
            answer=answer,
        )

    def without_context(self) -> "BookwormResponse":
        return self.model_copy(update={"context": None})

    def memory_payload(self, query: str) -> dict[str, Any]:
        """Payload of the query-memory record written after answering."""
        return {
            "query": query,
            "answer": self.answer,
            "all_references": self.all_references,
            "used_references": self.used_references,
            "entities": self.entities,
            "context": self.context,
        }
