"""
Qdrant Vector Store
--------------------
Thin async wrapper around qdrant-client with exactly the operations the
pipeline needs:

  ensure_collection()  create-if-absent (plus a full-text index on "message")
  key_exists()         catch-up idempotency probe
  upsert()             store (key, vector, payload) points, waiting for the write
  query()              ranked similarity search with an optional filter
  remember()           append a query-memory record under a fresh uuid4

Upserts are per-key idempotent on the server side; nothing here keeps
local state between calls.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional, Sequence

from loguru import logger
from qdrant_client import AsyncQdrantClient, models

from bookworm.config import QdrantSettings
from bookworm.schemas import SearchHit

TEXT_FIELD = "message"

_DISTANCES: dict[str, models.Distance] = {
    "euclid": models.Distance.EUCLID,
    "cosine": models.Distance.COSINE,
    "dot": models.Distance.DOT,
    "manhattan": models.Distance.MANHATTAN,
}


def entity_filter(entities: Sequence[str], field: str = TEXT_FIELD) -> models.Filter:
    """Match-any full-text filter: a point matches if `field` contains any entity."""
    return models.Filter(
        should=[
            models.FieldCondition(key=field, match=models.MatchText(text=entity))
            for entity in entities
        ]
    )


class QdrantIndex:
    """Async access to the Qdrant collections backing bookworm."""

    def __init__(
        self,
        settings: Optional[QdrantSettings] = None,
        client: Optional[AsyncQdrantClient] = None,
    ) -> None:
        settings = settings or QdrantSettings()
        distance = settings.distance.lower()
        if distance not in _DISTANCES:
            raise ValueError(
                f"Unknown distance metric {settings.distance!r}; "
                f"expected one of {sorted(_DISTANCES)}"
            )
        self.vector_size = settings.vector_size
        self.distance = _DISTANCES[distance]
        self.queries_collection = settings.queries_collection
        self._client = client or AsyncQdrantClient(url=settings.url, api_key=settings.api_key)

    async def close(self) -> None:
        await self._client.close()

    # --- Collections ------------------------------------------------------------

    async def ensure_collection(
        self,
        name: str,
        vector_size: Optional[int] = None,
        distance: Optional[models.Distance] = None,
        text_index: bool = True,
    ) -> bool:
        """Create the collection if it does not exist. Returns True if created."""
        if await self._client.collection_exists(collection_name=name):
            return False

        await self._client.create_collection(
            collection_name=name,
            vectors_config=models.VectorParams(
                size=vector_size or self.vector_size,
                distance=distance or self.distance,
            ),
        )
        if text_index:
            await self._client.create_payload_index(
                collection_name=name,
                field_name=TEXT_FIELD,
                field_schema=models.TextIndexParams(
                    type=models.TextIndexType.TEXT,
                    tokenizer=models.TokenizerType.WORD,
                    lowercase=True,
                ),
            )
        logger.info(f"[QdrantIndex] Created collection '{name}'")
        return True

    # --- Points -----------------------------------------------------------------

    async def key_exists(self, name: str, key: int) -> bool:
        records = await self._client.retrieve(
            collection_name=name,
            ids=[key],
            with_payload=False,
            with_vectors=False,
        )
        return len(records) > 0

    async def upsert(
        self,
        name: str,
        points: Sequence[tuple[int | str, list[float], dict[str, Any]]],
    ) -> None:
        if not points:
            return
        await self._client.upsert(
            collection_name=name,
            points=[
                models.PointStruct(id=key, vector=vector, payload=payload)
                for key, vector, payload in points
            ],
            wait=True,
        )
        logger.debug(f"[QdrantIndex] Upserted {len(points)} point(s) into '{name}'")

    async def query(
        self,
        name: str,
        vector: list[float],
        limit: int,
        query_filter: Optional[models.Filter] = None,
    ) -> list[SearchHit]:
        response = await self._client.query_points(
            collection_name=name,
            query=vector,
            limit=limit,
            query_filter=query_filter,
            with_payload=True,
        )
        return [
            SearchHit(key=point.id, score=point.score, payload=point.payload or {})
            for point in response.points
        ]

    async def remember(self, payload: dict[str, Any], vector: list[float]) -> str:
        """Write one query-memory record. Purely additive; returns the new key."""
        await self.ensure_collection(self.queries_collection, text_index=False)
        key = str(uuid.uuid4())
        await self.upsert(self.queries_collection, [(key, vector, payload)])
        logger.debug(f"[QdrantIndex] Remembered query as {key}")
        return key
