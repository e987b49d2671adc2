"""Tests for catch-up ingestion."""

import pytest
from unittest.mock import AsyncMock, Mock

from bookworm.embedding.pipeline import Ingestor, post_payload
from bookworm.policy import Collection, CollectionKind
from bookworm.schemas import NewsPost, NewsSection

SHORT = Collection(kind=CollectionKind.SHORT, section="events")
SUMMARY = Collection(kind=CollectionKind.SUMMARY, section="events")


class InMemoryIndex:
    """Stores points per collection; counts upsert calls."""

    def __init__(self):
        self.points = {}
        self.upsert_calls = 0

    async def ensure_collection(self, name, *args, **kwargs):
        return self.points.setdefault(name, {}) == {}

    async def key_exists(self, name, key):
        return key in self.points.get(name, {})

    async def upsert(self, name, points):
        self.upsert_calls += 1
        for key, vector, payload in points:
            self.points.setdefault(name, {})[key] = (vector, payload)


def make_post(post_id, message="x" * 450):
    return NewsPost(
        id=post_id,
        section="events",
        date=1700000000 + post_id,
        date_ingame="the 3rd of Ero, 5 AC",
        **{"from": "Herald"},
        to="Everyone",
        subject=f"Post {post_id}",
        message=message,
    )


@pytest.fixture
def archive():
    archive = Mock()
    archive.fetch_post = AsyncMock(side_effect=lambda section, post_id: make_post(post_id))
    archive.list_sections = AsyncMock(
        return_value=[
            NewsSection(uri="/news/events", total=3, name="Events"),
            NewsSection(uri="/news/public", total=9, name="Public"),
        ]
    )
    return archive


@pytest.fixture
def embedder():
    embedder = Mock()
    embedder.embed_texts = AsyncMock(side_effect=lambda texts: [[float(len(t))] for t in texts])
    embedder.embed_query = AsyncMock(return_value=[0.5])
    return embedder


@pytest.fixture
def generator():
    generator = Mock()
    generator.summarize = AsyncMock(return_value="A summary.")
    return generator


class TestAddPost:
    @pytest.mark.asyncio
    async def test_chunked_post_stored_with_spans(self, archive, embedder, generator):
        index = InMemoryIndex()
        ingestor = Ingestor(archive, index, embedder, generator)

        added = await ingestor.add_post(SHORT, 7)

        assert added
        stored = index.points["events"]
        # 450 chars, window 400, step 200 -> [0,400) [200,450) [400,450)
        assert sorted(stored) == [70000, 70001, 70002]
        _, payload = stored[70001]
        assert payload["chunk"] == 1
        assert (payload["chunk_start"], payload["chunk_end"]) == (200, 450)
        assert payload["id"] == 7
        assert payload["from"] == "Herald"
        assert payload["message"] == "x" * 450

    @pytest.mark.asyncio
    async def test_summarized_post_stored_without_spans(self, archive, embedder, generator):
        index = InMemoryIndex()
        ingestor = Ingestor(archive, index, embedder, generator)

        await ingestor.add_post(SUMMARY, 7)

        stored = index.points["events_summary"]
        assert list(stored) == [70000]
        vector, payload = stored[70000]
        assert vector == [0.5]
        assert payload["summary"] == "A summary."
        assert "chunk_start" not in payload
        generator.summarize.assert_awaited_once_with("x" * 450)

    @pytest.mark.asyncio
    async def test_existing_post_not_fetched(self, archive, embedder, generator):
        index = InMemoryIndex()
        index.points["events"] = {70000: ([0.0], {})}
        ingestor = Ingestor(archive, index, embedder, generator)

        assert not await ingestor.add_post(SHORT, 7)
        archive.fetch_post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_post_still_marked_indexed(self, archive, embedder, generator):
        archive.fetch_post = AsyncMock(return_value=make_post(4, message=""))
        index = InMemoryIndex()
        ingestor = Ingestor(archive, index, embedder, generator)

        await ingestor.add_post(SHORT, 4)

        assert await index.key_exists("events", 40000)

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, archive, embedder, generator):
        archive.fetch_post = AsyncMock(side_effect=RuntimeError("archive down"))
        index = InMemoryIndex()
        ingestor = Ingestor(archive, index, embedder, generator)

        with pytest.raises(RuntimeError):
            await ingestor.catch_up(SHORT, 3)
        assert index.upsert_calls == 0


class TestCatchUp:
    @pytest.mark.asyncio
    async def test_walks_newest_to_oldest(self, archive, embedder, generator):
        index = InMemoryIndex()
        ingestor = Ingestor(archive, index, embedder, generator)

        added = await ingestor.catch_up(SHORT, 3)

        assert added == 3
        fetched = [call.args[1] for call in archive.fetch_post.await_args_list]
        assert fetched == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_second_run_adds_nothing(self, archive, embedder, generator):
        index = InMemoryIndex()
        ingestor = Ingestor(archive, index, embedder, generator)

        await ingestor.catch_up(SHORT, 3)
        calls_after_first = index.upsert_calls
        added = await ingestor.catch_up(SHORT, 3)

        assert added == 0
        assert index.upsert_calls == calls_after_first

    @pytest.mark.asyncio
    async def test_stops_at_first_indexed_post(self, archive, embedder, generator):
        index = InMemoryIndex()
        # Post 1 is missing but post 3 is indexed: catch-up never reaches post 1.
        index.points["events"] = {30000: ([0.0], {})}
        ingestor = Ingestor(archive, index, embedder, generator)

        added = await ingestor.catch_up(SHORT, 5)

        assert added == 2
        assert not await index.key_exists("events", 10000)

    @pytest.mark.asyncio
    async def test_reconcile_fills_holes(self, archive, embedder, generator):
        index = InMemoryIndex()
        index.points["events"] = {30000: ([0.0], {})}
        ingestor = Ingestor(archive, index, embedder, generator)

        added = await ingestor.reconcile(SHORT, 5)

        assert added == 4
        assert await index.key_exists("events", 10000)

    @pytest.mark.asyncio
    async def test_catch_up_sections_uses_matching_section(self, archive, embedder, generator):
        index = InMemoryIndex()
        ingestor = Ingestor(archive, index, embedder, generator)

        added = await ingestor.catch_up_sections(SHORT)

        assert added == 3
        assert {call.args[0] for call in archive.fetch_post.await_args_list} == {"events"}


def test_post_payload_uses_archive_field_names():
    payload = post_payload(make_post(2))

    assert set(payload) == {"id", "section", "date", "date_ingame", "from", "to", "subject", "message"}
