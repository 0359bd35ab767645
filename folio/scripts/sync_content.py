"""
Folio - Content Sync Script
============================
CLI entry point that orchestrates:
    1. Load settings (fail-fast on invalid configuration).
    2. Build the services (embedding model, LanceDB store, orchestrator).
    3. Optionally drop the table and/or the sync metadata.
    4. Run ``SyncOrchestrator.sync()``.
    5. Print a structured execution summary with timing breakdown.

Flags:
    --force          Sync even when no content changes are detected.
    --use-ai         Expand experience entries with the chat model first.
    --max-chunks N   Upper bound on chunks embedded in this run.
    --status         Print the sync status and exit.
    --drop           Drop the LanceDB table before syncing (metadata kept).
    --purge          Drop the table AND the sync metadata (full re-sync).
    --drop-only      Drop the table and exit immediately.

Usage:
    python -m folio.scripts.sync_content
    python -m folio.scripts.sync_content --force --use-ai
    python -m folio.scripts.sync_content --purge
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sync_content", description="Folio — Sync portfolio content into the vector store.")
    parser.add_argument("--force", action="store_true", default=False, help="Sync even if no content changes are detected.")
    parser.add_argument("--use-ai", action="store_true", default=False, help="Enhance experience entries with the chat model before embedding.")
    parser.add_argument("--max-chunks", type=int, default=None, help="Maximum number of chunks to embed (defaults to SYNC_MAX_CHUNKS).")
    parser.add_argument("--status", action="store_true", default=False, help="Print the current sync status and exit.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--drop", action="store_true", default=False, help="Drop the LanceDB table before syncing (sync metadata preserved).")
    group.add_argument("--purge", action="store_true", default=False, help="Drop the LanceDB table AND clear the sync metadata.")
    group.add_argument("--drop-only", action="store_true", default=False, help="Drop the LanceDB table and exit (no sync).")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from folio.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from folio.src.utils.logger import get_logger, quiet_library_loggers
    logger = get_logger(__name__)
    quiet_library_loggers()
    logger.info("Settings loaded in %.1fms", settings_ms)

    _print_header(settings)

    # ── 1. Build services (timed) ──────────────────────────────────────
    from folio.src.api.dependencies import build_services
    from folio.src.core.change_detector import SyncMetadataStore

    t_services = time.perf_counter()
    try:
        services = build_services(settings)
    except Exception:
        logger.exception("Failed to initialise services.")
        return 1
    services_ms = (time.perf_counter() - t_services) * 1000
    logger.info("Services initialised in %.1fms", services_ms)

    orchestrator = services.orchestrator
    store = services.store

    if args.status:
        print(json.dumps(orchestrator.status(), indent=2))
        return 0

    if args.drop or args.purge or args.drop_only:
        logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)
        store.drop_table()

        if args.purge:
            if not SyncMetadataStore(settings.SYNC_METADATA_PATH).clear():
                logger.info("No sync metadata to clear.")

        if args.drop_only:
            logger.info("--drop-only: Table dropped. Exiting.")
            _print_footer(None, time.perf_counter() - t_start, settings_ms, services_ms)
            return 0

        store.ensure_table()

    logger.info("VectorStore ready — table '%s' (%d existing rows).", settings.LANCEDB_TABLE_NAME, store.count())

    # ── 2. Run the sync ────────────────────────────────────────────────
    result = asyncio.run(orchestrator.sync(force=args.force, use_ai=args.use_ai, max_chunks=args.max_chunks))

    # ── 3. Print execution summary ─────────────────────────────────────
    _print_footer(result, time.perf_counter() - t_start, settings_ms, services_ms)
    return 0 if result.success else 1


# ── Pretty-print helpers ──────────────────────────────────────────────

def _mask(secret: object) -> str:
    if secret is None:
        return "(not set)"
    value = secret.get_secret_value()  # type: ignore[attr-defined]
    return f"****{value[-4:]}" if len(value) > 4 else "****"


def _print_header(settings: object) -> None:
    print()
    print("=" * 60)
    print("  FOLIO — Content Sync")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")       # type: ignore[attr-defined]
    print(f"  LanceDB URI  : {settings.LANCEDB_URI}")           # type: ignore[attr-defined]
    print(f"  Data dir     : {settings.DATA_DIR}")              # type: ignore[attr-defined]
    print(f"  Max chunks   : {settings.SYNC_MAX_CHUNKS}")       # type: ignore[attr-defined]
    print(f"  API Key      : {_mask(settings.GOOGLE_API_KEY)}")  # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_footer(result: object | None, elapsed: float, settings_ms: float, services_ms: float) -> None:
    startup_ms = settings_ms + services_ms
    processing_s = elapsed - (startup_ms / 1000)

    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    if result is None:
        print("  Sync skipped (table dropped only)")
    else:
        print(f"  Success              : {result.success}")           # type: ignore[attr-defined]
        print(f"  Chunks processed     : {result.chunks_processed}")  # type: ignore[attr-defined]
        if result.error:                                               # type: ignore[attr-defined]
            print(f"  Error                : {result.error}")         # type: ignore[attr-defined]
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Services init        : {services_ms:>8.1f}ms")
    print(f"  Processing time      : {processing_s:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(main())
