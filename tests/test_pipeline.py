"""Tests for response assembly and the end-to-end serving pipeline."""

import pytest
from unittest.mock import AsyncMock, Mock

from bookworm.generation.prompts import NO_CONTEXT_RESPONSE
from bookworm.policy import Collection, CollectionKind
from bookworm.schemas import SearchHit
from bookworm.serving.pipeline import BookwormPipeline
from bookworm.serving.response import BookwormResponse

SHORT = Collection(kind=CollectionKind.SHORT, section="events")
DENSE = Collection(kind=CollectionKind.DENSE, section="events")

MESSAGE = "The Queen of Spinesreach has abdicated. Celebrations follow in Enorian."


def window_hit(post_id, start, end, chunk=0, score=0.5):
    return SearchHit(
        key=post_id * 10000 + chunk,
        score=score,
        payload={
            "id": post_id,
            "message": MESSAGE,
            "chunk": chunk,
            "chunk_start": start,
            "chunk_end": end,
        },
    )


class TestBookwormResponse:
    def test_assemble_separates_all_and_used_references(self):
        hits = [window_hit(8, 0, 10), window_hit(3, 0, 10), window_hit(8, 5, 20, chunk=1)]
        used = [hits[1].payload]

        response = BookwormResponse.assemble(
            hits=hits, used_payloads=used, answer="A.", model="open-mistral-7b"
        )

        assert response.all_references == [3, 8]
        assert response.used_references == [3]
        assert response.context == "Post 3:\n" + MESSAGE[0:10]
        assert response.model == "open-mistral-7b"

    def test_without_context(self):
        response = BookwormResponse(answer="A.", context="ctx")

        assert response.without_context().context is None
        assert response.context == "ctx"

    def test_memory_payload(self):
        response = BookwormResponse(
            answer="A.", all_references=[1, 2], used_references=[2], entities=["Enorian"], context="c"
        )

        payload = response.memory_payload("who?")

        assert payload == {
            "query": "who?",
            "answer": "A.",
            "all_references": [1, 2],
            "used_references": [2],
            "entities": ["Enorian"],
            "context": "c",
        }


@pytest.fixture
def collaborators():
    index = Mock()
    index.ensure_collection = AsyncMock(return_value=False)
    index.query = AsyncMock(
        return_value=[window_hit(12, 0, 40), window_hit(12, 30, 71, chunk=1), window_hit(5, 0, 10)]
    )
    index.remember = AsyncMock(return_value="uuid")

    embedder = Mock()
    embedder.embed_query = AsyncMock(return_value=[0.25, 0.75])

    generator = Mock()
    generator.answer_model = "open-mistral-7b"
    generator.extract_entities = AsyncMock(return_value=["Spinesreach"])
    generator.answer = AsyncMock(return_value="She abdicated.")

    archive = Mock()
    reranker = Mock()
    reranker.rerank = AsyncMock(side_effect=lambda query, payloads, limit: payloads[:limit])

    return index, embedder, generator, archive, reranker


def make_pipeline(collaborators):
    index, embedder, generator, archive, reranker = collaborators
    return BookwormPipeline(
        index=index, embedder=embedder, generator=generator, archive=archive, reranker=reranker
    )


class TestBookwormPipeline:
    @pytest.mark.asyncio
    async def test_query_end_to_end(self, collaborators):
        index, embedder, generator, _, reranker = collaborators
        pipeline = make_pipeline(collaborators)

        response = await pipeline.query("Who abdicated?", SHORT)

        assert response.answer == "She abdicated."
        assert response.entities == ["Spinesreach"]
        assert response.all_references == [5, 12]
        assert response.used_references == [5, 12]
        assert response.collection == "events"
        assert response.context == f"Post 5:\n{MESSAGE[:10]}\n\nPost 12:\n{MESSAGE}"
        reranker.rerank.assert_not_awaited()
        # default limit 10, no rerank -> x3
        assert index.query.call_args.args[2] == 30
        generator.answer.assert_awaited_once_with("Who abdicated?", response.context)

    @pytest.mark.asyncio
    async def test_memory_reuses_query_embedding(self, collaborators):
        index, embedder, _, _, _ = collaborators
        pipeline = make_pipeline(collaborators)

        await pipeline.query("Who abdicated?", SHORT)

        embedder.embed_query.assert_awaited_once()
        payload, vector = index.remember.call_args.args
        assert vector == [0.25, 0.75]
        assert payload["query"] == "Who abdicated?"
        assert payload["answer"] == "She abdicated."

    @pytest.mark.asyncio
    async def test_rerank_limits_used_references(self, collaborators):
        index, _, _, _, reranker = collaborators
        pipeline = make_pipeline(collaborators)

        response = await pipeline.query("Who abdicated?", SHORT, limit=1, rerank=True)

        assert index.query.call_args.args[2] == 1
        reranker.rerank.assert_awaited_once()
        assert response.all_references == [5, 12]
        assert response.used_references == [12]

    @pytest.mark.asyncio
    async def test_entities_skipped_when_disabled(self, collaborators):
        index, _, generator, _, _ = collaborators
        pipeline = make_pipeline(collaborators)

        response = await pipeline.query("Who abdicated?", SHORT, use_entities=False)

        generator.extract_entities.assert_not_awaited()
        assert response.entities is None
        assert index.query.call_args.kwargs["query_filter"] is None

    @pytest.mark.asyncio
    async def test_dense_collection_skips_entities(self, collaborators):
        index, _, generator, _, _ = collaborators
        pipeline = make_pipeline(collaborators)

        await pipeline.query("Who abdicated?", DENSE)

        generator.extract_entities.assert_not_awaited()
        assert index.query.call_args.kwargs["query_filter"] is None

    @pytest.mark.asyncio
    async def test_no_context_flag(self, collaborators):
        index, _, _, _, _ = collaborators
        pipeline = make_pipeline(collaborators)

        response = await pipeline.query("Who abdicated?", SHORT, include_context=False)

        assert response.context is None
        payload, _ = index.remember.call_args.args
        assert payload["context"] is None

    @pytest.mark.asyncio
    async def test_no_hits_skips_generation(self, collaborators):
        index, _, generator, _, _ = collaborators
        index.query = AsyncMock(return_value=[])
        pipeline = make_pipeline(collaborators)

        response = await pipeline.query("Anything?", SHORT)

        assert response.answer == NO_CONTEXT_RESPONSE
        generator.answer.assert_not_awaited()
        assert response.all_references == []

    @pytest.mark.asyncio
    async def test_search_failure_aborts_query(self, collaborators):
        index, _, generator, _, _ = collaborators
        index.query = AsyncMock(side_effect=RuntimeError("index unavailable"))
        pipeline = make_pipeline(collaborators)

        with pytest.raises(RuntimeError):
            await pipeline.query("Who abdicated?", SHORT)
        generator.answer.assert_not_awaited()
        index.remember.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_catchup_runs_before_search(self, collaborators):
        pipeline = make_pipeline(collaborators)
        pipeline.ingestor.catch_up_sections = AsyncMock(return_value=2)

        await pipeline.query("Who abdicated?", SHORT, catchup=True)

        pipeline.ingestor.catch_up_sections.assert_awaited_once_with(SHORT)
