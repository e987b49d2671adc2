"""
Jina Reranker
--------------
Sends the over-fetched candidate passages to the Jina rerank endpoint in a
single request and keeps the top `limit` payloads in the returned order.

Each payload is reduced to the text the reranker should judge:
  summary payloads -> the summary
  window payloads  -> message[chunk_start:chunk_end]
Payloads with neither are not sent and cannot be selected.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from langsmith import traceable
from loguru import logger
from tenacity import retry, stop_after_attempt, wait_exponential

from bookworm.config import RerankerSettings
from bookworm.retrieval.context import passage_from_payload


def payload_document(payload: dict[str, Any]) -> Optional[str]:
    """The text of a payload as the reranker should see it, or None."""
    if "summary" not in payload and "chunk_start" not in payload:
        return None
    passage = passage_from_payload(payload)
    return passage.text if passage is not None else None


class JinaReranker:
    """Cross-encoder reranking via the Jina API."""

    def __init__(
        self,
        settings: Optional[RerankerSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        settings = settings or RerankerSettings()
        self.url = settings.url
        self.model = settings.model
        self._api_key = settings.api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    @traceable(name="rerank", run_type="retriever")
    async def rerank(
        self,
        query: str,
        payloads: list[dict[str, Any]],
        limit: int,
    ) -> list[dict[str, Any]]:
        """
        Reorder payloads by relevance to `query` and keep at most `limit`.

        Raises:
            httpx.HTTPError: when the rerank call fails after retries.
        """
        indexed = [
            (i, doc) for i, payload in enumerate(payloads)
            if (doc := payload_document(payload)) is not None
        ]
        if not indexed:
            return []

        results = await self._post(query, [doc for _, doc in indexed])

        reranked: list[dict[str, Any]] = []
        for item in results:
            position = int(item["index"])
            if 0 <= position < len(indexed):
                reranked.append(payloads[indexed[position][0]])
            if len(reranked) >= limit:
                break

        logger.info(f"[Reranker] {len(payloads)} -> {len(reranked)} passages")
        return reranked

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def _post(self, query: str, documents: list[str]) -> list[dict]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        response = await self._client.post(
            self.url,
            json={"model": self.model, "query": query, "documents": documents},
            headers=headers,
        )
        response.raise_for_status()
        return response.json().get("results", [])
