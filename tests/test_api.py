"""
Test suite for the HTTP API with FastAPI ``TestClient``.

Services are wired from fake models and a LanceDB table in ``tmp_path``
and injected through ``create_app(services)``.
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models import FakeListChatModel

from conftest import DIMS, FailingChatModel, ProviderError, RecordingEmbedder
from folio.config.settings import Settings
from folio.src.api.dependencies import Services, get_chat_handler
from folio.src.api.routes import diagnose, error_status
from folio.src.core.change_detector import ContentChangeDetector, SyncMetadataStore
from folio.src.core.content_sync import SyncOrchestrator
from folio.src.core.embeddings import EmbeddingGenerator
from folio.src.core.exceptions import ConfigurationError, UpstreamError
from folio.src.core.extractor import ContentExtractor
from folio.src.core.rag_engine import ChatHandler
from folio.src.database.vector_store import FolioVectorStore
from folio.src.main import create_app

ANSWER = "They worked on order routing."


def _services(config: Settings, embeddings: EmbeddingGenerator | None, store: FolioVectorStore, llm=None) -> Services:
    metadata_store = SyncMetadataStore(config.SYNC_METADATA_PATH)
    detector = ContentChangeDetector(metadata_store, config.watched_paths())
    orchestrator = SyncOrchestrator(ContentExtractor(config.DATA_DIR), embeddings, store, detector, metadata_store, config=config)
    chat = ChatHandler(llm, embeddings, store, orchestrator, fallback_path=config.FALLBACK_RESUME_PATH)
    return Services(config, llm, embeddings, None, store, orchestrator, chat)


@pytest.fixture
def services(test_settings: Settings, embeddings: EmbeddingGenerator, store: FolioVectorStore) -> Services:
    return _services(test_settings, embeddings, store, FakeListChatModel(responses=[ANSWER]))


@pytest.fixture
def client(services: Services):
    with TestClient(create_app(services), raise_server_exceptions=False) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestChatEndpoint:
    def test_streams_plain_text_answer(self, client: TestClient) -> None:
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Where do they work?"}]})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == ANSWER

    def test_chat_with_history(self, client: TestClient) -> None:
        messages = [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
            {"role": "user", "content": "What projects are there?"},
        ]

        response = client.post("/api/chat", json={"messages": messages})

        assert response.status_code == 200
        assert response.text == ANSWER

    def test_empty_messages_rejected(self, client: TestClient) -> None:
        response = client.post("/api/chat", json={"messages": []})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_malformed_body_rejected(self, client: TestClient) -> None:
        response = client.post("/api/chat", json={"message": "no list"})

        assert response.status_code == 400
        assert "messages" in response.json()["error"]

    def test_missing_model_is_json_error(self, test_settings: Settings, store: FolioVectorStore) -> None:
        services = _services(test_settings.model_copy(update={"GOOGLE_API_KEY": None}), None, store, llm=None)

        with TestClient(create_app(services), raise_server_exceptions=False) as client:
            response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 500
        assert "GOOGLE_API_KEY" in response.json()["error"]

    def test_upstream_status_is_propagated(self, client: TestClient) -> None:
        async def failing_stream(messages):
            raise UpstreamError("chat-model", "rate limited", status_code=429)
            yield ""

        handler = MagicMock()
        handler.stream = failing_stream
        client.app.dependency_overrides[get_chat_handler] = lambda: handler

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 429
        assert response.json() == {"error": "chat-model: rate limited"}


    def test_model_failure_status_reaches_the_client(self, test_settings: Settings, embeddings: EmbeddingGenerator, store: FolioVectorStore) -> None:
        services = _services(test_settings, embeddings, store, FailingChatModel(responses=[ANSWER], status_code=429))

        with TestClient(create_app(services), raise_server_exceptions=False) as client:
            response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 429
        assert "quota exceeded" in response.json()["error"]

    def test_failed_first_sync_still_streams(self, test_settings: Settings, store: FolioVectorStore) -> None:
        recorder = RecordingEmbedder(fail_documents=ProviderError("embedding quota exceeded", 429))
        services = _services(test_settings, EmbeddingGenerator(recorder, dimensions=DIMS), store, FakeListChatModel(responses=[ANSWER]))

        with TestClient(create_app(services), raise_server_exceptions=False) as client:
            response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Where do they work?"}]})

        assert response.status_code == 200
        assert response.text == ANSWER
        assert recorder.calls[0] == "documents"
        assert store.count() == 0
        assert not test_settings.SYNC_METADATA_PATH.exists()

    def test_embedding_outage_answers_from_static_context(self, test_settings: Settings, store: FolioVectorStore) -> None:
        outage = ProviderError("service unavailable", 503)
        recorder = RecordingEmbedder(fail_documents=outage, fail_query=outage)
        services = _services(test_settings, EmbeddingGenerator(recorder, dimensions=DIMS), store, FakeListChatModel(responses=[ANSWER]))

        with patch.object(ChatHandler, "static_context", return_value="STATIC") as static:
            with TestClient(create_app(services), raise_server_exceptions=False) as client:
                response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "What projects are there?"}]})

        assert response.status_code == 200
        assert response.text == ANSWER
        assert "query" in recorder.calls
        static.assert_called_once()


class TestSyncEndpoints:
    def test_status_before_sync(self, client: TestClient) -> None:
        body = client.get("/api/sync-content").json()

        assert body["lastSync"] is None
        assert body["chunkCount"] == 0
        assert body["hasChanges"] is True
        assert "resume.json" in body["changedFiles"]

    def test_sync_then_up_to_date(self, client: TestClient) -> None:
        first = client.post("/api/sync-content")
        assert first.status_code == 200
        assert first.json()["success"] is True
        assert first.json()["chunksProcessed"] > 0

        second = client.post("/api/sync-content").json()
        assert second["message"] == "Content is already up-to-date"
        assert second["chunkCount"] == first.json()["chunksProcessed"]

        status = client.get("/api/sync-content").json()
        assert status["hasChanges"] is False

    def test_forced_sync_runs_even_when_up_to_date(self, client: TestClient) -> None:
        client.post("/api/sync-content")

        response = client.post("/api/sync-content", params={"force": "true", "useAI": "false"})

        assert response.json()["success"] is True
        assert "chunksProcessed" in response.json()

    def test_failed_sync_returns_500(self, test_settings: Settings, embeddings: EmbeddingGenerator, store: FolioVectorStore) -> None:
        services = _services(test_settings.model_copy(update={"GOOGLE_API_KEY": None}), embeddings, store)

        with TestClient(create_app(services), raise_server_exceptions=False) as client:
            response = client.post("/api/sync-content")

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "GOOGLE_API_KEY" in response.json()["error"]


class TestDebugEndpoints:
    def test_force_sync(self, client: TestClient) -> None:
        body = client.post("/api/debug/force-sync").json()

        assert body["success"] is True
        assert body["message"].startswith("Force sync completed")

    def test_check_function(self, client: TestClient) -> None:
        client.post("/api/debug/force-sync")

        body = client.get("/api/debug/check-function", params={"q": "routing services"}).json()

        assert body["query"] == "routing services"
        assert [t["threshold"] for t in body["tests"]] == [0.0, 0.25, 0.35, 0.43, 0.44]
        assert body["diagnosis"]

    def test_check_function_without_embeddings(self, test_settings: Settings, store: FolioVectorStore) -> None:
        services = _services(test_settings, None, store)

        with TestClient(create_app(services), raise_server_exceptions=False) as client:
            response = client.get("/api/debug/check-function")

        assert response.status_code == 500
        assert "GOOGLE_API_KEY" in response.json()["error"]

    def test_debug_search(self, client: TestClient) -> None:
        client.post("/api/debug/force-sync")

        body = client.get("/api/debug/debug-search", params={"q": "projects"}).json()

        assert body["queryEmbedding"]["length"] == 8
        assert body["allRowsCount"] > 0
        assert body["databaseEmbedding"]["hasEmbedding"] is True
        assert body["matchCount"] == len(body["matchData"])

    def test_test_db(self, client: TestClient) -> None:
        client.post("/api/debug/force-sync")

        body = client.get("/api/debug/test-db").json()

        assert body["connection"] == "success"
        assert body["tableExists"] is True
        assert body["hasData"] is True
        assert len(body["sampleData"]) == 3


class TestHelpers:
    def test_error_status(self) -> None:
        assert error_status(UpstreamError("embeddings", "x", status_code=503)) == 503
        assert error_status(UpstreamError("embeddings", "x", status_code=200)) == 500
        assert error_status(UpstreamError("embeddings", "x")) == 500
        assert error_status(ConfigurationError("missing")) == 500

    def test_diagnose_empty_store(self) -> None:
        tests = [{"threshold": 0.0, "count": 0, "topSimilarities": []}]
        assert diagnose(tests) == ["No results even with 0.0 threshold - the store may be empty or hold no vectors"]

    def test_diagnose_exclusive_cutoff(self) -> None:
        tests = [
            {"threshold": 0.0, "count": 3, "topSimilarities": [{"title": "a", "similarity": 0.6}]},
            {"threshold": 0.43, "count": 1, "topSimilarities": []},
            {"threshold": 0.44, "count": 0, "topSimilarities": []},
        ]

        diagnosis = diagnose(tests)

        assert diagnosis[0] == "Found 3 items with 0.0 threshold"
        assert "inclusive" in diagnosis[1]
        assert diagnosis[-1].startswith("Good similarity scores")
