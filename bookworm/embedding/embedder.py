"""
Embedding Client with LangSmith instrumentation
-------------------------------------------------
Wraps the mistral-embed model (served behind Mistral's OpenAI-compatible
API, so the openai SDK is used as the transport) with:
  - Sub-batching (50 texts per API call, the provider's request limit)
  - LangSmith run tracing for cost / latency observability
  - Retry logic via tenacity
  - Token usage logging

Sub-batches are sent one after another and their vectors concatenated in
request order.
"""
from __future__ import annotations

import time
from typing import Optional

from langsmith import traceable
from loguru import logger
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from bookworm.config import LLMSettings
from bookworm.utils.helpers import batched


class Embedder:
    """Generates embeddings for post windows, summaries and queries."""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        settings = settings or LLMSettings()
        self.model = settings.embedding_model
        self.batch_size = settings.embed_batch_size
        self._client = client or AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url)

    @traceable(name="embed_texts", run_type="embedding")
    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of strings, one vector per input, in input order."""
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for batch_no, batch in enumerate(batched(texts, self.batch_size), start=1):
            embeddings, tokens = await self._embed_batch(batch)
            if len(embeddings) != len(batch):
                raise ValueError(
                    f"Embedding API returned {len(embeddings)} vectors for {len(batch)} inputs"
                )
            all_embeddings.extend(embeddings)
            logger.debug(f"[Embedder] Batch {batch_no} | {len(batch)} texts | {tokens} tokens")

        return all_embeddings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def _embed_batch(self, texts: list[str]) -> tuple[list[list[float]], int]:
        """Call the embeddings endpoint for a single sub-batch."""
        # Replace empty strings with a space to avoid API errors
        safe_texts = [t if t.strip() else " " for t in texts]
        start = time.perf_counter()
        response = await self._client.embeddings.create(model=self.model, input=safe_texts)
        elapsed = time.perf_counter() - start

        embeddings = [item.embedding for item in sorted(response.data, key=lambda x: x.index)]
        tokens_used = response.usage.total_tokens if response.usage else 0
        logger.debug(f"[Embedder] API call: {len(texts)} texts, {tokens_used} tokens, {elapsed:.2f}s")
        return embeddings, tokens_used

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single string."""
        return (await self.embed_texts([text]))[0]
