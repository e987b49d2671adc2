"""
Ingestion - Catch-up, Chunk, Embed, Index
------------------------------------------
Walks an archive section backward from the newest post and indexes every
post not yet present, one post at a time:

    for id in newest .. 1:
        key id*10000 already indexed?  -> stop the whole walk
        fetch post
        chunked collection   : windows -> embed each -> keys id*10000+i (with spans)
        summarised collection: LLM summary -> embed   -> key id*10000 (no span)
        upsert

Stopping at the first indexed post assumes the indexed history is
contiguous: anything older than an indexed post is taken to be indexed
too.  A history with holes is silently under-ingested by catch_up();
reconcile() is the explicit full-range alternative that skips existing
posts instead of stopping.

Any fetch / embed / upsert failure propagates and ends the run.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from bookworm.chunking.chunker import FixedWindowChunker
from bookworm.collection.archive_client import ArchiveClient
from bookworm.embedding.embedder import Embedder
from bookworm.embedding.vector_store import QdrantIndex
from bookworm.generation.generator import Generator
from bookworm.policy import Collection
from bookworm.schemas import NewsPost, Window, storage_key


def post_payload(post: NewsPost) -> dict[str, Any]:
    """Post metadata and full message, as stored with every passage of the post."""
    return post.model_dump(by_alias=True)


class Ingestor:
    """Keeps one collection of the index in step with the archive."""

    def __init__(
        self,
        archive: ArchiveClient,
        index: QdrantIndex,
        embedder: Embedder,
        generator: Generator,
    ) -> None:
        self.archive = archive
        self.index = index
        self.embedder = embedder
        self.generator = generator

    async def post_exists(self, collection: Collection, post_id: int) -> bool:
        return await self.index.key_exists(collection.name, storage_key(post_id))

    async def add_post(self, collection: Collection, post_id: int) -> bool:
        """
        Index one post unless it is already present.

        Returns:
            False if the post was already indexed, True if it was added.
        """
        if await self.post_exists(collection, post_id):
            logger.debug(f"[Ingest] Post {post_id} already exists in '{collection.name}'")
            return False

        post = await self.archive.fetch_post(collection.section, post_id)
        if collection.is_summary:
            await self._add_summarized(collection, post)
        else:
            await self._add_chunked(collection, post)
        return True

    async def _add_chunked(self, collection: Collection, post: NewsPost) -> None:
        chunker = FixedWindowChunker(collection.chunk_size, collection.overlap_size)
        windows = chunker.chunk(post.message)
        if not windows:
            # An empty post still gets its first key so catch-up sees it as indexed.
            windows = [Window(start=0, end=0, text="")]

        vectors = await self.embedder.embed_texts([w.text for w in windows])
        base = post_payload(post)
        points = [
            (
                storage_key(post.id, i),
                vector,
                {**base, "chunk": i, "chunk_start": window.start, "chunk_end": window.end},
            )
            for i, (window, vector) in enumerate(zip(windows, vectors))
        ]
        await self.index.upsert(collection.name, points)
        logger.info(f"[Ingest] Post {post.id} -> {len(points)} chunk(s) in '{collection.name}'")

    async def _add_summarized(self, collection: Collection, post: NewsPost) -> None:
        summary = await self.generator.summarize(post.message)
        vector = await self.embedder.embed_query(summary)
        payload = {**post_payload(post), "summary": summary}
        await self.index.upsert(collection.name, [(storage_key(post.id), vector, payload)])
        logger.info(f"[Ingest] Post {post.id} -> summary in '{collection.name}'")

    async def catch_up(self, collection: Collection, newest: int) -> int:
        """
        Index posts newest..1, stopping at the first one already indexed.

        Returns:
            Number of posts added.
        """
        await self.index.ensure_collection(collection.name)
        added = 0
        for post_id in range(newest, 0, -1):
            logger.debug(f"[Catchup] Post {post_id}")
            if not await self.add_post(collection, post_id):
                break
            added += 1
        logger.info(f"[Catchup] '{collection.name}' caught up | {added} new post(s)")
        return added

    async def reconcile(self, collection: Collection, newest: int) -> int:
        """Index every missing post in newest..1 without stopping early."""
        await self.index.ensure_collection(collection.name)
        added = 0
        for post_id in range(newest, 0, -1):
            if await self.add_post(collection, post_id):
                added += 1
        logger.info(f"[Reconcile] '{collection.name}' reconciled | {added} new post(s)")
        return added

    async def catch_up_sections(self, collection: Collection, full: bool = False) -> int:
        """Look up the collection's section in the archive listing and catch it up."""
        added = 0
        for entry in await self.archive.list_sections():
            if entry.section != collection.section:
                continue
            if full:
                added += await self.reconcile(collection, entry.total)
            else:
                added += await self.catch_up(collection, entry.total)
        return added
