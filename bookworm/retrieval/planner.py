"""
Retrieval Planner
------------------
Turns a query (plus optional extracted entities) into one index search.

Decision table:

    entities given | collection.has_pronouns | search
    ---------------+-------------------------+---------------------------
    yes            | yes                     | filtered (match any entity)
    yes            | no                      | unfiltered
    no             | -                       | unfiltered

    effective limit = requested limit (or collection default)
                      * (1 if a rerank pass will run else 3)

The query is embedded exactly once; the same vector is returned so the
caller can store it with the query-memory record.
"""
from __future__ import annotations

from typing import Optional, Sequence

from langsmith import traceable
from loguru import logger

from bookworm.embedding.embedder import Embedder
from bookworm.embedding.vector_store import QdrantIndex, entity_filter
from bookworm.policy import Collection
from bookworm.schemas import SearchHit, SearchPlan
from bookworm.utils.helpers import truncate_text

RERANK_MULTIPLIER = 1
NO_RERANK_MULTIPLIER = 3


def plan_search(
    collection: Collection,
    entities: Optional[Sequence[str]] = None,
    requested_limit: Optional[int] = None,
    rerank: bool = False,
) -> SearchPlan:
    """Pure decision step: which search to run and how many candidates to fetch."""
    limit = requested_limit if requested_limit is not None else collection.default_limit
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")

    multiplier = RERANK_MULTIPLIER if rerank else NO_RERANK_MULTIPLIER
    usable = [e for e in (entities or []) if e.strip()]
    filtered = bool(usable) and collection.has_pronouns

    return SearchPlan(
        filtered=filtered,
        entities=usable if filtered else [],
        limit=limit * multiplier,
        rerank=rerank,
    )


class RetrievalPlanner:
    """Embeds the query once and runs the planned search against the index."""

    def __init__(self, index: QdrantIndex, embedder: Embedder) -> None:
        self.index = index
        self.embedder = embedder

    @traceable(name="retrieve", run_type="retriever")
    async def plan_and_search(
        self,
        query: str,
        collection: Collection,
        entities: Optional[Sequence[str]] = None,
        requested_limit: Optional[int] = None,
        rerank: bool = False,
    ) -> tuple[list[float], list[SearchHit]]:
        """
        Returns:
            (query_embedding, hits) with hits ranked by the index.
        """
        plan = plan_search(collection, entities, requested_limit, rerank)
        logger.debug(
            f"[Planner] {collection.name} | query={truncate_text(query)!r} | "
            f"filtered={plan.filtered} entities={plan.entities} limit={plan.limit}"
        )

        vector = await self.embedder.embed_query(query)
        hits = await self.index.query(
            collection.name,
            vector,
            plan.limit,
            query_filter=entity_filter(plan.entities) if plan.filtered else None,
        )

        logger.info(
            f"[Planner] Retrieved {len(hits)} candidates from '{collection.name}' "
            f"({'filtered' if plan.filtered else 'unfiltered'})"
        )
        return vector, hits
