"""
Folio - Service Container
==========================
Builds every long-lived service once at process start and hands them to
route handlers through FastAPI ``Depends``.

The Gemini clients are only constructed when ``GOOGLE_API_KEY`` is set;
without it the API still boots, ``/health`` answers, and sync or chat
report a ``ConfigurationError`` instead.
"""

from __future__ import annotations

from fastapi import Request
from langchain_core.language_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings

from folio.config.settings import Settings, settings as default_settings
from folio.src.core.change_detector import ContentChangeDetector, SyncMetadataStore
from folio.src.core.content_sync import SyncOrchestrator
from folio.src.core.embeddings import EmbeddingGenerator
from folio.src.core.enhancer import ContentEnhancer
from folio.src.core.extractor import ContentExtractor
from folio.src.core.rag_engine import ChatHandler
from folio.src.database.vector_store import FolioVectorStore
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)


class Services:
    """Container for the shared service instances."""

    __slots__ = ("config", "llm", "embeddings", "enhancer", "store", "orchestrator", "chat")

    def __init__(self, config: Settings, llm: BaseChatModel | None, embeddings: EmbeddingGenerator | None, enhancer: ContentEnhancer | None, store: FolioVectorStore, orchestrator: SyncOrchestrator, chat: ChatHandler) -> None:
        self.config = config
        self.llm = llm
        self.embeddings = embeddings
        self.enhancer = enhancer
        self.store = store
        self.orchestrator = orchestrator
        self.chat = chat


def build_services(config: Settings | None = None) -> Services:
    """Wire the extractor, store, orchestrator and chat handler from *config*."""
    config = config or default_settings

    llm: BaseChatModel | None = None
    enhancer_llm: BaseChatModel | None = None
    embeddings: EmbeddingGenerator | None = None
    if config.GOOGLE_API_KEY is not None and config.GOOGLE_API_KEY.get_secret_value():
        api_key = config.GOOGLE_API_KEY.get_secret_value()
        embedder = GoogleGenerativeAIEmbeddings(model=config.EMBEDDING_MODEL, google_api_key=api_key)
        embeddings = EmbeddingGenerator(embedder, dimensions=config.EMBEDDING_DIMENSIONS)
        llm = ChatGoogleGenerativeAI(model=config.LLM_MODEL, temperature=config.LLM_TEMPERATURE, google_api_key=api_key)
        enhancer_llm = ChatGoogleGenerativeAI(model=config.LLM_MODEL, temperature=config.ENHANCER_TEMPERATURE, google_api_key=api_key)
    else:
        logger.warning("GOOGLE_API_KEY is not set — chat and sync are disabled until it is configured.")

    lancedb_key = config.LANCEDB_API_KEY.get_secret_value() if config.LANCEDB_API_KEY is not None else None
    store = FolioVectorStore(uri=config.LANCEDB_URI, table_name=config.LANCEDB_TABLE_NAME, dimensions=config.EMBEDDING_DIMENSIONS, api_key=lancedb_key, upsert_batch_size=config.UPSERT_BATCH_SIZE)

    metadata_store = SyncMetadataStore(config.SYNC_METADATA_PATH)
    detector = ContentChangeDetector(metadata_store, config.watched_paths())
    enhancer = ContentEnhancer(enhancer_llm, delay_seconds=config.ENHANCE_DELAY_SECONDS) if enhancer_llm is not None else None
    orchestrator = SyncOrchestrator(ContentExtractor(config.DATA_DIR), embeddings, store, detector, metadata_store, enhancer=enhancer, config=config)

    chat = ChatHandler(llm, embeddings, store, orchestrator, fallback_path=config.FALLBACK_RESUME_PATH, threshold=config.SIMILARITY_THRESHOLD, candidate_count=config.SEARCH_CANDIDATE_COUNT, results_limit=config.SEARCH_RESULTS_LIMIT)

    logger.info("Services ready (store: %r).", store)
    return Services(config, llm, embeddings, enhancer, store, orchestrator, chat)


# ── FastAPI dependencies ─────────────────────────────────────────────

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_chat_handler(request: Request) -> ChatHandler:
    return get_services(request).chat


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return get_services(request).orchestrator
