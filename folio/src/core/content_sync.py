"""
Folio - SyncOrchestrator
=========================
Keeps the vector store in step with the portfolio data files.

States (implicit)::

    NEVER_SYNCED → UP_TO_DATE ⇄ STALE → SYNCING → (UP_TO_DATE | FAILED)

Flow of ``sync()``:
    1. Eligibility — forced, never synced, empty store, or changed files.
       A no-op sync returns before any credential or extraction work.
    2. Credentials — missing keys raise ``ConfigurationError``.
    3. Extract — every source, optionally AI-enhanced.
    4. Truncate — at most ``max_chunks`` chunks (cost guard).
    5. Embed — sequential batches, one document-embedding call per
       batch, with a delay between batches (rate limiting).
    6. Upsert — partitioned, partial-failure tolerant.
    7. Persist metadata — only when at least one row was written.

``sync()`` never raises: every failure becomes
``SyncResult(success=False, chunks_processed=0, error=...)``.
Concurrent syncs are not serialised; the metadata file is
last-writer-wins.

Usage:
    from folio.src.core.content_sync import SyncOrchestrator
    orchestrator = SyncOrchestrator(extractor, embeddings, store, detector, metadata_store)
    result = await orchestrator.sync(force=True)
"""

from __future__ import annotations

import asyncio
import time

from folio.config.settings import Settings, settings as default_settings
from folio.src.core.change_detector import ContentChangeDetector, SyncMetadataStore
from folio.src.core.embeddings import EmbeddingGenerator, enriched_text
from folio.src.core.enhancer import ContentEnhancer
from folio.src.core.exceptions import ConfigurationError
from folio.src.core.extractor import ContentExtractor
from folio.src.core.models import ContentChunk, ContentEmbedding, SyncDecision, SyncResult
from folio.src.database.vector_store import FolioVectorStore
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)


def verify_credentials(config: Settings) -> None:
    """Raise ``ConfigurationError`` naming every missing credential."""
    missing: list[str] = []
    if config.GOOGLE_API_KEY is None or not config.GOOGLE_API_KEY.get_secret_value():
        missing.append("GOOGLE_API_KEY")
    if config.uses_lancedb_cloud and (config.LANCEDB_API_KEY is None or not config.LANCEDB_API_KEY.get_secret_value()):
        missing.append("LANCEDB_API_KEY")
    if missing:
        raise ConfigurationError(f"{', '.join(missing)} not configured", missing=missing)


async def embed_chunks(embeddings: EmbeddingGenerator, chunks: list[ContentChunk], batch_size: int, delay: float) -> list[ContentEmbedding]:
    """
    Embed *chunks* (content + enrichment) in sequential batches.

    Each batch goes to the provider as one document-embedding request;
    *delay* seconds separate consecutive batches.  A failed batch
    propagates and no later batch is sent.
    """
    total_batches = (len(chunks) + batch_size - 1) // batch_size
    embedded: list[ContentEmbedding] = []

    for start in range(0, len(chunks), batch_size):
        batch = chunks[start : start + batch_size]
        logger.info("Processing batch %d/%d …", start // batch_size + 1, total_batches)
        vectors = await embeddings.embed_batch([enriched_text(c.content, c.metadata.enrichment) for c in batch])
        embedded.extend(
            ContentEmbedding(slug=c.slug, title=c.title, content=c.content, metadata=c.metadata, embedding=vector)
            for c, vector in zip(batch, vectors)
        )
        logger.debug("Processed %d/%d chunks.", len(embedded), len(chunks))

        if delay and start + batch_size < len(chunks):
            await asyncio.sleep(delay)

    return embedded


class SyncOrchestrator:
    """
    Coordinates change detection, extraction, embedding and upserts.

    Parameters
    ----------
    extractor
        Produces the content chunks.
    embeddings
        ``EmbeddingGenerator`` for chunk vectors; ``None`` when the
        embedding model could not be built (sync then fails on credentials).
    store
        Destination vector store.
    detector
        Hash-based change detector.
    metadata_store
        Persistence for ``SyncMetadata``.
    enhancer
        Optional ``ContentEnhancer`` used when ``use_ai`` is requested.
    config
        Settings used for credentials and throttling.  Defaults to the
        module-level ``settings`` singleton.
    """

    __slots__ = ("_extractor", "_embeddings", "_store", "_detector", "_metadata", "_enhancer", "_config")

    def __init__(self, extractor: ContentExtractor, embeddings: EmbeddingGenerator | None, store: FolioVectorStore, detector: ContentChangeDetector, metadata_store: SyncMetadataStore, enhancer: ContentEnhancer | None = None, config: Settings | None = None) -> None:
        self._extractor = extractor
        self._embeddings = embeddings
        self._store = store
        self._detector = detector
        self._metadata = metadata_store
        self._enhancer = enhancer
        self._config = config or default_settings

    # ══════════════════════════════════════════════════════════════════
    #  ELIGIBILITY
    # ══════════════════════════════════════════════════════════════════

    def check_eligibility(self, force: bool = False) -> SyncDecision:
        """
        Decide whether a sync should run.

        ``force`` on the returned decision is ``True`` when hash
        comparison must be bypassed: an explicit force, no prior sync,
        or an empty store.
        """
        if force:
            return SyncDecision(should_sync=True, force=True, reason="forced")

        if self._metadata.load() is None:
            return SyncDecision(should_sync=True, force=True, reason="never synced", changed_files=self._detector.watched_files)

        if not self._store.has_any_content():
            return SyncDecision(should_sync=True, force=True, reason="vector store is empty")

        report = self._detector.has_content_changed()
        if report.changed:
            return SyncDecision(should_sync=True, reason="content changed", changed_files=report.changed_files)

        return SyncDecision(should_sync=False, reason="up to date")

    # ══════════════════════════════════════════════════════════════════
    #  SYNC
    # ══════════════════════════════════════════════════════════════════

    async def sync(self, force: bool = False, use_ai: bool = False, max_chunks: int | None = None) -> SyncResult:
        """Run an eligible sync.  Never raises."""
        max_chunks = max_chunks or self._config.SYNC_MAX_CHUNKS
        t_start = time.perf_counter()

        try:
            decision = self.check_eligibility(force)
            if not decision.should_sync:
                logger.info("Content unchanged, skipping sync.")
                return SyncResult(success=True, chunks_processed=0)
            logger.info("Sync triggered (%s)%s", decision.reason, f" — changed: {', '.join(decision.changed_files)}" if decision.changed_files else "")

            verify_credentials(self._config)
            if self._embeddings is None:
                raise ConfigurationError("Embedding model is not configured", missing=["GOOGLE_API_KEY"])
            logger.debug("Credentials verified.")

            chunks = await self._extract(use_ai)
            if not chunks:
                logger.error("No content found to extract.")
                return SyncResult(success=False, error="No content found to sync")

            to_process = chunks[:max_chunks]
            logger.info("Processing %d of %d chunk(s) (max: %d) …", len(to_process), len(chunks), max_chunks)

            embedded = await self._embed_chunks(to_process)

            logger.info("Uploading %d embedding(s) …", len(embedded))
            result = self._store.upsert_batch(embedded)
            logger.info("Upload result: %d succeeded, %d failed", result.success_count, result.failed_count)

            if result.success_count == 0:
                return SyncResult(success=False, error=f"Upload failed: {result.failed_count} items")

            self._metadata.save(self._detector.snapshot(chunk_count=result.success_count))
            logger.info("Synced %d chunk(s) in %.2fs.", len(embedded), time.perf_counter() - t_start)
            return SyncResult(success=True, chunks_processed=len(embedded))

        except Exception as exc:
            logger.exception("Error during content sync.")
            return SyncResult(success=False, error=str(exc) or type(exc).__name__)


    async def _extract(self, use_ai: bool) -> list[ContentChunk]:
        if use_ai:
            if self._enhancer is not None:
                return await self._extractor.extract_all_enhanced(self._enhancer)
            logger.warning("AI enhancement requested but no enhancer is configured — using basic extraction.")
        return self._extractor.extract_all()


    async def _embed_chunks(self, chunks: list[ContentChunk]) -> list[ContentEmbedding]:
        return await embed_chunks(self._embeddings, chunks, self._config.SYNC_EMBED_BATCH_SIZE, self._config.SYNC_BATCH_DELAY_SECONDS)

    # ══════════════════════════════════════════════════════════════════
    #  STATUS
    # ══════════════════════════════════════════════════════════════════

    def last_sync_info(self) -> dict[str, str | int] | None:
        return self._metadata.last_sync_info()


    def status(self) -> dict[str, object]:
        """``{lastSync, chunkCount, hasChanges, changedFiles}`` for the sync endpoint."""
        info = self.last_sync_info() or {}
        report = self._detector.has_content_changed()
        return {
            "lastSync": info.get("lastSync"),
            "chunkCount": info.get("chunkCount", 0),
            "hasChanges": report.changed,
            "changedFiles": report.changed_files if report.changed else [],
        }
