"""
Folio - Chat Request Handler
=============================
Answers one chat request with retrieval-augmented generation and
streams the model's tokens back.

Flow of ``ChatHandler.stream()``:
    1. Split history (all but the last message) from the question.
    2. Opportunistic sync — eligibility check, then ``sync()``.  Any
       failure is logged and ignored; it never fails the chat.
    3. Embed the question — failure means "no retrieved context".
    4. Raw search (top ``candidate_count``, zero threshold), keep
       ``similarity >= threshold``, truncate to ``results_limit``.
    5. Format survivors as numbered context blocks.
    6. Nothing retrieved → static context from the bundled resume
       snapshot, so the model never answers without context.
    7. ``PromptTemplate | llm | StrOutputParser`` streamed token by token;
       model failures surface as ``UpstreamError`` with the provider status.

Concurrency: no request-scoped state is kept on the handler; one
instance serves concurrent requests.

Usage:
    from folio.src.core.rag_engine import ChatHandler
    handler = ChatHandler(llm, embeddings, store, orchestrator)
    async for token in handler.stream(messages):
        ...
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import PromptTemplate
from langchain_text_splitters import CharacterTextSplitter

from folio.config.prompt_templates import CHAT_PROMPT_TEMPLATE, CONTEXT_SEPARATOR
from folio.config.settings import settings
from folio.src.core.content_sync import SyncOrchestrator
from folio.src.core.embeddings import EmbeddingGenerator, upstream_status
from folio.src.core.exceptions import ConfigurationError, UpstreamError
from folio.src.core.models import ChatMessage, ContentEmbeddingWithSimilarity
from folio.src.database.vector_store import FolioVectorStore
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)

_TECHNOLOGIES_IN_CONTEXT = 3


class ChatHandler:
    """
    Retrieval-augmented streaming chat.

    Parameters
    ----------
    llm
        LangChain chat model used for the answer.  ``None`` when no
        credentials are configured; ``stream()`` then raises
        ``ConfigurationError``.
    embeddings
        Query embedder; ``None`` disables retrieval.
    store
        Vector store searched for context; ``None`` disables retrieval.
    orchestrator
        Optional sync orchestrator triggered before retrieval.
    fallback_path
        Resume snapshot used when nothing is retrieved.
    threshold, candidate_count, results_limit
        Retrieval tuning; default to the matching settings.
    """

    __slots__ = ("_llm", "_embeddings", "_store", "_orchestrator", "_fallback_path", "_threshold", "_candidates", "_limit", "_prompt")

    def __init__(self, llm: BaseChatModel | None, embeddings: EmbeddingGenerator | None, store: FolioVectorStore | None, orchestrator: SyncOrchestrator | None = None, fallback_path: Path | None = None, threshold: float | None = None, candidate_count: int | None = None, results_limit: int | None = None) -> None:
        self._llm = llm
        self._embeddings = embeddings
        self._store = store
        self._orchestrator = orchestrator
        self._fallback_path = Path(fallback_path or settings.FALLBACK_RESUME_PATH)
        self._threshold = settings.SIMILARITY_THRESHOLD if threshold is None else threshold
        self._candidates = candidate_count or settings.SEARCH_CANDIDATE_COUNT
        self._limit = results_limit or settings.SEARCH_RESULTS_LIMIT
        self._prompt = PromptTemplate.from_template(CHAT_PROMPT_TEMPLATE).partial(owner=settings.PORTFOLIO_OWNER)

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """Yield answer tokens for the last message in *messages*."""
        if not messages:
            raise ValueError("At least one message is required.")
        if self._llm is None:
            raise ConfigurationError("GOOGLE_API_KEY not configured", missing=["GOOGLE_API_KEY"])

        t_start = time.perf_counter()
        question = messages[-1].content
        chat_history = self.format_history(messages[:-1])

        await self._maybe_sync()

        context = await self.retrieve_context(question)
        if not context:
            context = self.static_context()
            logger.info("[RAG] Unable to retrieve context from the vector store; using static context.")

        chain = self._prompt | self._llm | StrOutputParser()
        logger.info("[RAG] Context ready in %.1fms — streaming answer.", (time.perf_counter() - t_start) * 1000)

        try:
            async for token in chain.astream({"context": context, "chat_history": chat_history, "question": question}):
                if token:
                    yield token
        except Exception as exc:
            logger.error("[RAG] Chat model failed: %s", exc)
            raise UpstreamError("chat-model", str(exc), status_code=upstream_status(exc)) from exc

    # ══════════════════════════════════════════════════════════════════
    #  PIPELINE STAGES
    # ══════════════════════════════════════════════════════════════════

    async def _maybe_sync(self) -> None:
        """Best-effort sync; its outcome is logged only."""
        if self._orchestrator is None:
            return
        try:
            decision = self._orchestrator.check_eligibility()
            if not decision.should_sync:
                info = self._orchestrator.last_sync_info() or {}
                logger.info("[SYNC] Content up-to-date (last sync: %s, %s chunks)", info.get("lastSync"), info.get("chunkCount"))
                return

            logger.info("[SYNC] %s — triggering sync …", decision.reason)
            result = await self._orchestrator.sync(force=decision.force)
            if result.success:
                logger.info("[SYNC] Synced %d chunk(s).", result.chunks_processed)
            else:
                logger.warning("[SYNC] Sync failed: %s", result.error)
        except Exception:
            logger.exception("[SYNC] Auto-sync error (non-blocking).")


    async def retrieve_context(self, question: str) -> str:
        """Formatted retrieval context for *question*, or ``""``."""
        if self._embeddings is None or self._store is None:
            return ""
        try:
            query_vector = await self._embeddings.embed(question)
            candidates = self._store.raw_search(query_vector, limit=self._candidates)
        except Exception as exc:
            logger.error("[RAG] Context retrieval failed: %s", exc)
            return ""

        relevant = self.select_relevant(candidates, self._threshold, self._limit)
        logger.info("[RAG] %d candidate(s) → %d relevant (threshold %.2f).", len(candidates), len(relevant), self._threshold)
        if relevant:
            logger.debug("[RAG] Top similarities: %s", ", ".join(f"{item.similarity:.3f}" for item in relevant))
        return self.format_context(relevant)


    @staticmethod
    def select_relevant(candidates: Sequence[ContentEmbeddingWithSimilarity], threshold: float, limit: int) -> list[ContentEmbeddingWithSimilarity]:
        """Keep candidates with ``similarity >= threshold``, at most *limit*, in order."""
        return [item for item in candidates if item.similarity >= threshold][:limit]


    @staticmethod
    def format_context(items: Sequence[ContentEmbeddingWithSimilarity]) -> str:
        """Render items as numbered blocks joined by ``CONTEXT_SEPARATOR``."""
        blocks: list[str] = []
        for index, item in enumerate(items, 1):
            meta = item.metadata
            meta_info = ""
            if meta.company and meta.position:
                meta_info = f" ({meta.position} at {meta.company})"
            elif meta.technologies:
                meta_info = f" [Technologies: {', '.join(meta.technologies[:_TECHNOLOGIES_IN_CONTEXT])}]"
            blocks.append(f"[{index}] {item.title}{meta_info}\n{item.content}\nRelevance: {item.similarity * 100:.1f}%")
        return CONTEXT_SEPARATOR.join(blocks)


    def static_context(self) -> str:
        """The bundled resume snapshot, split and re-joined as plain documents."""
        try:
            snapshot = json.loads(self._fallback_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("[RAG] Static resume snapshot unavailable at %s: %s", self._fallback_path, exc)
            return "(No portfolio content available.)"

        docs = CharacterTextSplitter().create_documents([json.dumps(snapshot)])
        return "\n\n".join(doc.page_content for doc in docs)


    @staticmethod
    def format_history(messages: Sequence[ChatMessage]) -> str:
        """``role: content`` lines for the prompt's conversation block."""
        return "\n".join(f"{m.role}: {m.content}" for m in messages)
