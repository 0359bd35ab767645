"""Shared pytest fixtures: sample data, fake models and a real LanceDB table in ``tmp_path``."""

import shutil
from pathlib import Path

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.language_models import FakeListChatModel

from folio.config.settings import Settings
from folio.src.core.change_detector import ContentChangeDetector, SyncMetadataStore
from folio.src.core.embeddings import EmbeddingGenerator
from folio.src.core.extractor import ContentExtractor
from folio.src.core.models import ChunkMetadata, ContentEmbedding, ContentType
from folio.src.database.vector_store import FolioVectorStore

DIMS = 8
BUNDLED_DATA = Path(__file__).resolve().parent.parent / "folio" / "data"


def unit_vector(index: int, dims: int = DIMS) -> list[float]:
    """Basis vector ``e_index``."""
    vector = [0.0] * dims
    vector[index] = 1.0
    return vector


def vector_with_similarity(similarity: float, dims: int = DIMS) -> list[float]:
    """A unit vector whose cosine similarity to ``e_0`` is *similarity*."""
    vector = [0.0] * dims
    vector[0] = similarity
    vector[1] = (1.0 - similarity**2) ** 0.5
    return vector


def make_embedding(slug: str, vector: list[float], title: str | None = None, content: str = "body", **metadata) -> ContentEmbedding:
    metadata.setdefault("content_type", ContentType.PAGE)
    return ContentEmbedding(slug=slug, title=title or slug, content=content, metadata=ChunkMetadata(**metadata), embedding=vector)


class ProviderError(Exception):
    """Stand-in for an SDK error that carries the HTTP status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecordingEmbedder:
    """Deterministic fake embedder recording which side (documents / query) was called."""

    def __init__(self, fail_documents: Exception | None = None, fail_query: Exception | None = None) -> None:
        self._fake = DeterministicFakeEmbedding(size=DIMS)
        self._fail_documents = fail_documents
        self._fail_query = fail_query
        self.calls: list[str] = []

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls.append("documents")
        if self._fail_documents is not None:
            raise self._fail_documents
        return self._fake.embed_documents(texts)

    async def aembed_query(self, text: str) -> list[float]:
        self.calls.append("query")
        if self._fail_query is not None:
            raise self._fail_query
        return self._fake.embed_query(text)


class FailingChatModel(FakeListChatModel):
    """Chat model whose stream fails with a provider status code."""

    status_code: int = 429

    async def _astream(self, *args, **kwargs):
        raise ProviderError(f"{self.status_code} quota exceeded", self.status_code)
        yield


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """A writable copy of the bundled portfolio data files."""
    target = tmp_path / "data"
    target.mkdir()
    for source in BUNDLED_DATA.glob("*.json"):
        shutil.copy(source, target / source.name)
    return target


@pytest.fixture
def test_settings(tmp_path: Path, data_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        GOOGLE_API_KEY="test-key",
        LANCEDB_URI=str(tmp_path / "lancedb"),
        LANCEDB_TABLE_NAME="test_embeddings",
        DATA_DIR=data_dir,
        SYNC_METADATA_PATH=tmp_path / "sync-metadata.json",
        FALLBACK_RESUME_PATH=data_dir / "resume.json",
        EMBEDDING_DIMENSIONS=DIMS,
        SYNC_BATCH_DELAY_SECONDS=0,
        ENHANCE_DELAY_SECONDS=0,
        PUSH_BATCH_DELAY_SECONDS=0,
    )


@pytest.fixture
def store(tmp_path: Path) -> FolioVectorStore:
    return FolioVectorStore(uri=str(tmp_path / "lancedb"), table_name="test_embeddings", dimensions=DIMS, api_key="", upsert_batch_size=100)


@pytest.fixture
def metadata_store(test_settings: Settings) -> SyncMetadataStore:
    return SyncMetadataStore(test_settings.SYNC_METADATA_PATH)


@pytest.fixture
def detector(metadata_store: SyncMetadataStore, test_settings: Settings) -> ContentChangeDetector:
    return ContentChangeDetector(metadata_store, test_settings.watched_paths())


@pytest.fixture
def extractor(data_dir: Path) -> ContentExtractor:
    return ContentExtractor(data_dir)


@pytest.fixture
def embeddings() -> EmbeddingGenerator:
    return EmbeddingGenerator(DeterministicFakeEmbedding(size=DIMS), dimensions=DIMS)
