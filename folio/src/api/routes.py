"""
Folio - API Routes
===================
Thin controllers: parse the request, delegate to the chat handler or the
sync orchestrator, shape the JSON.  No retrieval or sync logic lives here.

Routes
------
GET  /health                     → liveness probe
POST /api/chat                   → streamed plain-text answer
POST /api/sync-content           → sync if eligible (``?force=&useAI=``)
GET  /api/sync-content           → sync status
POST /api/debug/force-sync       → unconditional sync
GET  /api/debug/check-function   → search at fixed thresholds + diagnosis
GET  /api/debug/debug-search     → query/stored embedding inspection
GET  /api/debug/test-db          → store connectivity report

Errors are returned as ``{"error": message}``; ``UpstreamError`` keeps
the provider's HTTP status when it has one.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse

from folio.src.api.dependencies import Services, get_chat_handler, get_orchestrator, get_services
from folio.src.core.content_sync import SyncOrchestrator
from folio.src.core.embeddings import EmbeddingGenerator
from folio.src.core.exceptions import ConfigurationError, UpstreamError
from folio.src.core.models import ChatRequest
from folio.src.core.rag_engine import ChatHandler
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()
debug_router = APIRouter(prefix="/api/debug", tags=["debug"])

CHECK_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (0.0, "No threshold (0.0)"),
    (0.25, "Standard (0.25)"),
    (0.35, "Medium (0.35)"),
    (0.43, "High (0.43)"),
    (0.44, "Very high (0.44)"),
)
DEFAULT_DEBUG_QUERY = "tell me about software engineering experience"
_SAMPLE_LENGTH = 5


def error_status(exc: Exception) -> int:
    """HTTP status for *exc*: the upstream status when it is an HTTP error code, else 500."""
    if isinstance(exc, UpstreamError) and exc.status_code is not None and 400 <= exc.status_code <= 599:
        return exc.status_code
    return 500


def error_response(exc: Exception) -> JSONResponse:
    return JSONResponse({"error": str(exc) or "Unknown error"}, status_code=error_status(exc))


def _require_embeddings(services: Services) -> EmbeddingGenerator:
    if services.embeddings is None:
        raise ConfigurationError("GOOGLE_API_KEY not configured", missing=["GOOGLE_API_KEY"])
    return services.embeddings


# ── Core routes ──────────────────────────────────────────────────────

@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/api/chat")
async def chat(body: ChatRequest, handler: ChatHandler = Depends(get_chat_handler)):
    """
    Stream the assistant's answer as ``text/plain``.

    The first token is awaited before the response starts so that
    configuration and upstream failures still produce a JSON error with
    a proper status code.
    """
    tokens = handler.stream(body.messages)
    try:
        first = await anext(tokens)
    except StopAsyncIteration:
        first = ""
    except Exception as exc:
        logger.exception("Chat request failed.")
        return error_response(exc)

    async def relay() -> AsyncIterator[str]:
        if first:
            yield first
        async for token in tokens:
            yield token

    return StreamingResponse(relay(), media_type="text/plain; charset=utf-8")


@router.post("/api/sync-content")
async def sync_content(force: bool = False, use_ai: bool = Query(False, alias="useAI"), services: Services = Depends(get_services)):
    orchestrator = services.orchestrator
    decision = orchestrator.check_eligibility(force)
    if not decision.should_sync:
        info = orchestrator.last_sync_info() or {}
        return {"success": True, "message": "Content is already up-to-date", "lastSync": info.get("lastSync"), "chunkCount": info.get("chunkCount", 0)}

    if decision.changed_files:
        logger.info("Changes detected in: %s", ", ".join(decision.changed_files))

    result = await orchestrator.sync(force=decision.force, use_ai=use_ai, max_chunks=services.config.SYNC_MAX_CHUNKS)
    if result.success:
        return {"success": True, "message": f"Successfully synced {result.chunks_processed} content chunks", "chunksProcessed": result.chunks_processed}
    return JSONResponse({"success": False, "error": result.error or "Unknown error", "message": "Failed to sync content"}, status_code=500)


@router.get("/api/sync-content")
async def sync_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return orchestrator.status()


# ── Debug routes ─────────────────────────────────────────────────────

@debug_router.post("/force-sync")
async def force_sync(services: Services = Depends(get_services)) -> dict[str, Any]:
    logger.info("Force sync triggered.")
    result = await services.orchestrator.sync(force=True, use_ai=False, max_chunks=services.config.SYNC_MAX_CHUNKS)
    return {
        "success": result.success,
        "chunksProcessed": result.chunks_processed,
        "error": result.error,
        "message": f"Force sync completed: {result.chunks_processed} chunks processed" if result.success else f"Force sync failed: {result.error}",
    }


@debug_router.get("/check-function")
async def check_function(q: str = DEFAULT_DEBUG_QUERY, services: Services = Depends(get_services)) -> dict[str, Any]:
    """Run the same query at several thresholds to show where matches drop off."""
    vector = await _require_embeddings(services).embed(q)

    tests: list[dict[str, Any]] = []
    for threshold, label in CHECK_THRESHOLDS:
        entry: dict[str, Any] = {"threshold": threshold, "label": label, "count": 0, "error": None, "topSimilarities": []}
        try:
            matches = services.store.search(vector, threshold=threshold, limit=services.config.SEARCH_RESULTS_LIMIT)
            entry["count"] = len(matches)
            entry["topSimilarities"] = [{"title": m.title, "similarity": m.similarity} for m in matches[:3]]
        except Exception as exc:
            entry["error"] = str(exc)
        tests.append(entry)

    return {"query": q, "embeddingLength": len(vector), "tests": tests, "diagnosis": diagnose(tests)}


def diagnose(tests: list[dict[str, Any]]) -> list[str]:
    """Heuristic reading of ``check_function`` results."""
    by_threshold = {t["threshold"]: t for t in tests}
    zero = by_threshold.get(0.0)
    diagnosis: list[str] = []

    if zero is not None and zero["count"] == 0:
        diagnosis.append("No results even with 0.0 threshold - the store may be empty or hold no vectors")
        return diagnosis
    if zero is not None:
        diagnosis.append(f"Found {zero['count']} items with 0.0 threshold")

    high, very_high = by_threshold.get(0.43), by_threshold.get(0.44)
    if high is not None and very_high is not None:
        if high["count"] > 0 and very_high["count"] == 0:
            diagnosis.append("Items between 0.43 and 0.44 are excluded - check that the cutoff is inclusive (>=)")
        elif high["count"] == very_high["count"]:
            diagnosis.append("Threshold comparison appears inclusive (>=)")

    if zero is not None and zero["topSimilarities"]:
        top = zero["topSimilarities"][0]["similarity"]
        diagnosis.append(f"Top similarity score: {top:.4f}")
        if top < 0.3:
            diagnosis.append("Low similarity scores - a lower threshold (around 0.2) may be needed")
        elif top > 0.5:
            diagnosis.append("Good similarity scores - a threshold of 0.25-0.4 should work")
    return diagnosis


@debug_router.get("/debug-search")
async def debug_search(q: str = DEFAULT_DEBUG_QUERY, services: Services = Depends(get_services)) -> dict[str, Any]:
    vector = await _require_embeddings(services).embed(q)
    logger.debug("Debug search embedding length %d, first values %s", len(vector), vector[:_SAMPLE_LENGTH])

    rows = services.store.list_all()
    stored = rows[0] if rows else None

    match_error: str | None = None
    matches: list[dict[str, Any]] = []
    try:
        matches = [
            {"slug": m.slug, "title": m.title, "contentType": m.metadata.content_type, "similarity": m.similarity}
            for m in services.store.raw_search(vector, limit=services.config.SEARCH_CANDIDATE_COUNT)
        ]
    except Exception as exc:
        match_error = str(exc)

    return {
        "query": q,
        "queryEmbedding": {"length": len(vector), "sample": vector[:_SAMPLE_LENGTH]},
        "allRowsCount": len(rows),
        "databaseEmbedding": None if stored is None else {
            "slug": stored.slug,
            "title": stored.title,
            "hasEmbedding": bool(stored.embedding),
            "length": len(stored.embedding),
            "sample": stored.embedding[:_SAMPLE_LENGTH],
        },
        "matchCount": len(matches),
        "matchData": matches,
        "matchError": match_error,
    }


@debug_router.get("/test-db")
async def test_db(services: Services = Depends(get_services)) -> dict[str, Any]:
    store = services.store
    report: dict[str, Any] = {"connection": "unknown", "tableExists": False, "hasData": False, "rowCount": 0, "searchWorks": False, "sampleData": None, "errors": []}

    try:
        report["rowCount"] = store.count()
        report["connection"] = "success"
        report["tableExists"] = store.table is not None
        report["hasData"] = report["rowCount"] > 0
    except Exception as exc:
        report["connection"] = "failed"
        report["errors"].append(f"Connection error: {exc}")

    if report["hasData"]:
        try:
            report["sampleData"] = [{"slug": r.slug, "title": r.title, "createdAt": r.created_at.isoformat() if r.created_at else None} for r in store.list_all()[:3]]
        except Exception as exc:
            report["errors"].append(f"Sample data error: {exc}")

    try:
        unit_query = [1.0] + [0.0] * (services.config.EMBEDDING_DIMENSIONS - 1)
        store.search(unit_query, threshold=0.5, limit=1)
        report["searchWorks"] = True
    except Exception as exc:
        report["errors"].append(f"Search error: {exc}")

    healthy = report["connection"] == "success" and report["tableExists"] and report["searchWorks"]
    return {"status": "healthy" if healthy else "issues_detected", **report, "recommendations": _recommendations(report)}


def _recommendations(report: dict[str, Any]) -> list[str]:
    recommendations: list[str] = []
    if report["connection"] != "success":
        recommendations.append("Check LANCEDB_URI (and LANCEDB_API_KEY for db:// URIs) in .env")
    if not report["tableExists"]:
        recommendations.append("Run `python -m folio.scripts.sync_content --force` to create the table")
    elif not report["hasData"]:
        recommendations.append("Table is empty - run a sync to populate it")
    if not report["searchWorks"]:
        recommendations.append("Vector search failed - check that EMBEDDING_DIMENSIONS matches the stored vectors")
    if not recommendations:
        recommendations.append("Everything looks good")
    return recommendations
