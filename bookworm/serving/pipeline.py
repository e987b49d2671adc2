"""
bookworm Serving Pipeline
--------------------------
Orchestrates the full query lifecycle, one strictly ordered step after
another (each needs the previous step's output):

    user query
        |
        v
    Ingestor.catch_up_sections()   (optional, --catchup)
        |
        v
    Generator.extract_entities()   (skipped when disabled or the collection
        |                           does not allow entity filtering)
        v
    RetrievalPlanner               (embed once, filtered / unfiltered search,
        |                           limit x3 unless reranking)
        v
    JinaReranker                   (optional, keeps the requested limit)
        |
        v
    build_context()                (merge overlapping windows per post)
        |
        v
    Generator.answer()
        |
        v
    BookwormResponse + query-memory record

Any boundary failure aborts the query; nothing is salvaged.
"""
from __future__ import annotations

import time
from typing import Optional

from langsmith import traceable
from loguru import logger

from bookworm.collection.archive_client import ArchiveClient
from bookworm.config import Settings
from bookworm.embedding.embedder import Embedder
from bookworm.embedding.pipeline import Ingestor
from bookworm.embedding.vector_store import QdrantIndex
from bookworm.generation.generator import Generator
from bookworm.generation.prompts import NO_CONTEXT_RESPONSE
from bookworm.policy import Collection
from bookworm.retrieval.context import build_context, passages_from_payloads
from bookworm.retrieval.planner import RetrievalPlanner
from bookworm.retrieval.reranker import JinaReranker
from bookworm.serving.response import BookwormResponse
from bookworm.utils.helpers import truncate_text


class BookwormPipeline:
    """
    End-to-end retrieval-augmented QA over the news archive.

    Usage:
        pipeline = BookwormPipeline.from_settings(load_settings())
        response = await pipeline.query("Who rules Spinesreach?", collection)
        print(response.answer)
    """

    def __init__(
        self,
        index: QdrantIndex,
        embedder: Embedder,
        generator: Generator,
        archive: ArchiveClient,
        reranker: Optional[JinaReranker] = None,
    ) -> None:
        self.index = index
        self.embedder = embedder
        self.generator = generator
        self.archive = archive
        self.reranker = reranker
        self.planner = RetrievalPlanner(index=index, embedder=embedder)
        self.ingestor = Ingestor(archive=archive, index=index, embedder=embedder, generator=generator)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BookwormPipeline":
        return cls(
            index=QdrantIndex(settings.qdrant),
            embedder=Embedder(settings.llm),
            generator=Generator(settings.llm),
            archive=ArchiveClient(settings.archive),
            reranker=JinaReranker(settings.reranker),
        )

    async def aclose(self) -> None:
        await self.archive.aclose()
        if self.reranker is not None:
            await self.reranker.aclose()
        await self.index.close()

    @traceable(name="bookworm_query", run_type="chain")
    async def query(
        self,
        user_query: str,
        collection: Collection,
        limit: Optional[int] = None,
        use_entities: bool = True,
        rerank: bool = False,
        include_context: bool = True,
        catchup: bool = False,
    ) -> BookwormResponse:
        """
        Answer one query from `collection`.

        Args:
            limit:           passages wanted in the final context
                             (defaults to the collection's limit).
            use_entities:    extract proper nouns and filter on them where the
                             collection allows it.
            rerank:          run the Jina rerank pass.
            include_context: keep the reconstructed context in the response.
            catchup:         ingest new archive posts before searching.
        """
        logger.info(f"[Pipeline] Query: {truncate_text(user_query, 100)!r} | '{collection.name}'")
        await self.index.ensure_collection(collection.name)

        if catchup:
            await self.ingestor.catch_up_sections(collection)

        entities: Optional[list[str]] = None
        if use_entities and collection.has_pronouns:
            entities = await self.generator.extract_entities(user_query)

        t0 = time.perf_counter()
        query_vector, hits = await self.planner.plan_and_search(
            user_query,
            collection,
            entities=entities,
            requested_limit=limit,
            rerank=rerank,
        )
        retrieval_ms = (time.perf_counter() - t0) * 1000

        payloads = [hit.payload for hit in hits]
        t1 = time.perf_counter()
        if rerank:
            if self.reranker is None:
                raise ValueError("Reranking requested but no reranker is configured")
            payloads = await self.reranker.rerank(
                user_query, payloads, limit if limit is not None else collection.default_limit
            )
        rerank_ms = (time.perf_counter() - t1) * 1000

        context = build_context(passages_from_payloads(payloads))

        t2 = time.perf_counter()
        if context:
            answer = await self.generator.answer(user_query, context)
        else:
            answer = NO_CONTEXT_RESPONSE
        generation_ms = (time.perf_counter() - t2) * 1000

        response = BookwormResponse.assemble(
            hits=hits,
            used_payloads=payloads,
            answer=answer,
            model=self.generator.answer_model,
            entities=entities,
            collection=collection.name,
            context=context,
        )
        if not include_context:
            response = response.without_context()

        await self.index.remember(response.memory_payload(user_query), query_vector)

        logger.info(
            f"[Pipeline] Complete | retrieve={retrieval_ms:.0f}ms "
            f"rerank={rerank_ms:.0f}ms generate={generation_ms:.0f}ms | "
            f"{len(response.used_references)}/{len(response.all_references)} posts used"
        )
        return response
