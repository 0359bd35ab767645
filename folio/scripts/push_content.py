"""
Folio - Content Push Script
============================
Loads a file written by ``extract_content``, embeds each chunk (content
plus enrichment) in throttled batches and upserts the rows into the
vector store.  Sync metadata is left untouched.

Usage:
    python -m folio.scripts.push_content
    python -m folio.scripts.push_content --input output/extracted-content.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from folio.config.settings import Settings, settings
from folio.src.core.content_sync import embed_chunks, verify_credentials
from folio.src.core.exceptions import FolioError
from folio.src.core.models import ContentChunk
from folio.src.utils.logger import get_logger

if TYPE_CHECKING:
    from folio.src.api.dependencies import Services

logger = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="push_content", description="Folio — Embed extracted content and upsert it into the vector store.")
    parser.add_argument("--input", type=Path, default=settings.EXTRACT_OUTPUT_PATH, help="Extraction file produced by extract_content.")
    return parser.parse_args(argv)


def load_extraction(path: Path) -> list[ContentChunk]:
    """Chunks from an extraction file; raises ``FolioError`` when unreadable."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return [ContentChunk.model_validate(item) for item in payload["content"]]
    except FileNotFoundError as exc:
        raise FolioError(f"Extracted content not found at {path}. Run extract_content first.") from exc
    except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as exc:
        raise FolioError(f"Invalid extraction file {path}: {exc}") from exc


async def push(chunks: list[ContentChunk], services: Services | None = None, config: Settings | None = None) -> int:
    """Embed *chunks* as documents and upsert them; ``services`` defaults to ``build_services(config)``."""
    from folio.src.api.dependencies import build_services

    config = config or settings
    verify_credentials(config)
    services = services or build_services(config)

    logger.info("Generating embeddings for %d chunk(s) …", len(chunks))
    embedded = await embed_chunks(services.embeddings, chunks, config.PUSH_EMBED_BATCH_SIZE, config.PUSH_BATCH_DELAY_SECONDS)
    logger.info("Generated %d embedding(s).", len(embedded))

    result = services.store.upsert_batch(embedded)
    print(f"Success: {result.success_count} chunks")
    if result.failed_count:
        print(f"Failed: {result.failed_count} chunks")
    return 0 if result.success_count > 0 else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        chunks = load_extraction(args.input)
        logger.info("Loaded %d content chunk(s) from %s", len(chunks), args.input)
        return asyncio.run(push(chunks))
    except FolioError as exc:
        logger.error("%s", exc)
        return 1
    except Exception:
        logger.exception("Error pushing content.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
