"""
Test suite for ``ChatHandler``: relevance selection, context formatting,
static fallback and the degradation rules around sync and retrieval.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.language_models import FakeListChatModel

from conftest import FailingChatModel, make_embedding, unit_vector, vector_with_similarity
from folio.src.core.exceptions import ConfigurationError, UpstreamError
from folio.src.core.models import ChatMessage, ChunkMetadata, ContentEmbeddingWithSimilarity, SyncDecision, SyncResult
from folio.src.core.rag_engine import ChatHandler
from folio.src.database.vector_store import FolioVectorStore


def _scored(similarity: float, slug: str | None = None, **metadata) -> ContentEmbeddingWithSimilarity:
    metadata.setdefault("content_type", "experience")
    return ContentEmbeddingWithSimilarity(
        slug=slug or f"s-{similarity}",
        title=f"Title {similarity}",
        content="Body text",
        metadata=ChunkMetadata(**metadata),
        embedding=[0.0],
        similarity=similarity,
    )


def _query_embeddings(vector: list[float]) -> MagicMock:
    embeddings = MagicMock()
    embeddings.embed = AsyncMock(return_value=vector)
    return embeddings


async def _collect(handler: ChatHandler, messages: list[ChatMessage]) -> str:
    return "".join([token async for token in handler.stream(messages)])


@pytest.fixture
def llm() -> FakeListChatModel:
    return FakeListChatModel(responses=["They built routing services."])


@pytest.fixture
def question() -> list[ChatMessage]:
    return [ChatMessage(role="user", content="What did they do at Northwind?")]


class TestSelectRelevant:
    def test_filters_below_threshold_and_keeps_order(self) -> None:
        candidates = [_scored(s) for s in (0.5, 0.3, 0.2, 0.1)]

        selected = ChatHandler.select_relevant(candidates, threshold=0.25, limit=5)

        assert [c.similarity for c in selected] == [0.5, 0.3]

    def test_boundary_value_is_included(self) -> None:
        selected = ChatHandler.select_relevant([_scored(0.25), _scored(0.2499)], threshold=0.25, limit=5)

        assert [c.similarity for c in selected] == [0.25]

    def test_truncates_to_limit(self) -> None:
        candidates = [_scored(s) for s in (0.9, 0.8, 0.7, 0.6, 0.5, 0.4, 0.3)]

        assert len(ChatHandler.select_relevant(candidates, threshold=0.25, limit=5)) == 5


class TestFormatting:
    def test_format_context_blocks(self) -> None:
        items = [
            _scored(0.873, company="Acme", position="Engineer"),
            _scored(0.5, content_type="project", technologies=["Python", "Go", "Rust", "Zig"]),
            _scored(0.3, content_type="page"),
        ]

        context = ChatHandler.format_context(items)
        blocks = context.split("\n\n---\n\n")

        assert len(blocks) == 3
        assert blocks[0] == "[1] Title 0.873 (Engineer at Acme)\nBody text\nRelevance: 87.3%"
        assert blocks[1].startswith("[2] Title 0.5 [Technologies: Python, Go, Rust]\n")
        assert blocks[2].startswith("[3] Title 0.3\n")

    def test_format_context_empty(self) -> None:
        assert ChatHandler.format_context([]) == ""

    def test_format_history(self) -> None:
        history = [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]
        assert ChatHandler.format_history(history) == "user: hi\nassistant: hello"

    def test_static_context_uses_resume_snapshot(self, llm, data_dir: Path) -> None:
        handler = ChatHandler(llm, None, None, fallback_path=data_dir / "resume.json")

        assert "Northwind Logistics" in handler.static_context()

    def test_static_context_when_snapshot_missing(self, llm, tmp_path: Path) -> None:
        handler = ChatHandler(llm, None, None, fallback_path=tmp_path / "nope.json")

        assert handler.static_context() == "(No portfolio content available.)"


class TestRetrieveContext:
    async def test_only_relevant_rows_reach_the_context(self, llm, store: FolioVectorStore) -> None:
        store.upsert_batch([
            make_embedding("close", vector_with_similarity(0.9), title="Close match"),
            make_embedding("far", vector_with_similarity(0.05), title="Far match"),
        ])
        handler = ChatHandler(llm, _query_embeddings(unit_vector(0)), store, threshold=0.25, candidate_count=10, results_limit=5)

        context = await handler.retrieve_context("anything")

        assert "Close match" in context
        assert "Far match" not in context

    async def test_embedding_failure_yields_empty_context(self, llm, store: FolioVectorStore) -> None:
        embeddings = MagicMock()
        embeddings.embed = AsyncMock(side_effect=UpstreamError("embeddings", "timeout"))
        handler = ChatHandler(llm, embeddings, store)

        assert await handler.retrieve_context("anything") == ""

    async def test_no_embedder_yields_empty_context(self, llm, store: FolioVectorStore) -> None:
        assert await ChatHandler(llm, None, store).retrieve_context("anything") == ""


class TestStream:
    async def test_streams_model_answer(self, llm, store: FolioVectorStore, question) -> None:
        handler = ChatHandler(llm, _query_embeddings(unit_vector(0)), store)

        assert await _collect(handler, question) == "They built routing services."

    async def test_embedding_failure_falls_back_to_static_context(self, llm, store: FolioVectorStore, question) -> None:
        embeddings = MagicMock()
        embeddings.embed = AsyncMock(side_effect=UpstreamError("embeddings", "timeout"))
        handler = ChatHandler(llm, embeddings, store)

        with patch.object(ChatHandler, "static_context", return_value="STATIC") as static:
            answer = await _collect(handler, question)

        static.assert_called_once()
        assert answer == "They built routing services."

    async def test_empty_store_triggers_forced_sync(self, llm, store: FolioVectorStore, question) -> None:
        orchestrator = MagicMock()
        orchestrator.check_eligibility.return_value = SyncDecision(should_sync=True, force=True, reason="vector store is empty")
        orchestrator.sync = AsyncMock(return_value=SyncResult(success=True, chunks_processed=4))
        handler = ChatHandler(llm, _query_embeddings(unit_vector(0)), store, orchestrator)

        await _collect(handler, question)

        orchestrator.sync.assert_awaited_once_with(force=True)

    async def test_failed_sync_does_not_fail_the_chat(self, llm, store: FolioVectorStore, question) -> None:
        orchestrator = MagicMock()
        orchestrator.check_eligibility.return_value = SyncDecision(should_sync=True, force=False, reason="content changed")
        orchestrator.sync = AsyncMock(return_value=SyncResult(success=False, error="Upload failed: 3 items"))
        handler = ChatHandler(llm, _query_embeddings(unit_vector(0)), store, orchestrator)

        assert await _collect(handler, question) == "They built routing services."
        orchestrator.sync.assert_awaited_once_with(force=False)

    async def test_sync_exception_is_swallowed(self, llm, store: FolioVectorStore, question) -> None:
        orchestrator = MagicMock()
        orchestrator.check_eligibility.side_effect = RuntimeError("disk error")
        handler = ChatHandler(llm, _query_embeddings(unit_vector(0)), store, orchestrator)

        assert await _collect(handler, question) == "They built routing services."

    async def test_up_to_date_skips_sync(self, llm, store: FolioVectorStore, question) -> None:
        orchestrator = MagicMock()
        orchestrator.check_eligibility.return_value = SyncDecision(should_sync=False, reason="up to date")
        orchestrator.last_sync_info.return_value = {"lastSync": "2024-01-01T00:00:00+00:00", "chunkCount": 12}
        orchestrator.sync = AsyncMock()
        handler = ChatHandler(llm, _query_embeddings(unit_vector(0)), store, orchestrator)

        await _collect(handler, question)

        orchestrator.sync.assert_not_awaited()

    async def test_missing_model_raises_configuration_error(self, store: FolioVectorStore, question) -> None:
        handler = ChatHandler(None, None, store)

        with pytest.raises(ConfigurationError):
            await _collect(handler, question)

    async def test_model_failure_keeps_provider_status(self, store: FolioVectorStore, question) -> None:
        handler = ChatHandler(FailingChatModel(responses=["unused"], status_code=503), _query_embeddings(unit_vector(0)), store)

        with pytest.raises(UpstreamError) as exc_info:
            await _collect(handler, question)

        assert exc_info.value.status_code == 503
        assert "quota exceeded" in str(exc_info.value)
