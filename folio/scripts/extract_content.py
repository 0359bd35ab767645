"""
Folio - Content Extraction Script
==================================
Runs the extractor over the data directory and writes the chunks to a
JSON file (``{"timestamp": ..., "content": [...]}``) for inspection or
for a later ``push_content`` run.

Usage:
    python -m folio.scripts.extract_content
    python -m folio.scripts.extract_content --use-ai --output out.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from folio.config.settings import settings
from folio.src.core.enhancer import ContentEnhancer
from folio.src.core.extractor import ContentExtractor
from folio.src.core.models import ContentChunk
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="extract_content", description="Folio — Extract portfolio content chunks to JSON.")
    parser.add_argument("--use-ai", action="store_true", default=False, help="Enhance experience entries with the chat model (requires GOOGLE_API_KEY).")
    parser.add_argument("--output", type=Path, default=settings.EXTRACT_OUTPUT_PATH, help="Output file path.")
    return parser.parse_args(argv)


def _build_enhancer() -> ContentEnhancer | None:
    if settings.GOOGLE_API_KEY is None or not settings.GOOGLE_API_KEY.get_secret_value():
        logger.warning("Skipping AI enhancement (GOOGLE_API_KEY not set), using basic extraction.")
        return None

    from langchain_google_genai import ChatGoogleGenerativeAI

    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.ENHANCER_TEMPERATURE, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    return ContentEnhancer(llm)


def write_extraction(chunks: list[ContentChunk], output: Path) -> None:
    payload = {"timestamp": datetime.now(timezone.utc).isoformat(), "content": [chunk.model_dump(mode="json", by_alias=True) for chunk in chunks]}
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()
    logger.info("Starting content extraction from %s …", settings.DATA_DIR)

    extractor = ContentExtractor(settings.DATA_DIR)
    enhancer = _build_enhancer() if args.use_ai else None
    try:
        chunks = asyncio.run(extractor.extract_all_enhanced(enhancer)) if enhancer else extractor.extract_all()
        write_extraction(chunks, args.output)
    except Exception:
        logger.exception("Error during content extraction.")
        return 1

    by_type = Counter(chunk.metadata.content_type for chunk in chunks)
    print(f"Extracted {len(chunks)} content chunks in {time.perf_counter() - t_start:.2f}s")
    for content_type, count in sorted(by_type.items()):
        print(f"  {content_type:<24}: {count}")
    print(f"Output saved to: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
