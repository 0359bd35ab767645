"""
Folio - ContentEnhancer
========================
Uses the chat model to rewrite each resume experience into several
verbose, varied phrasings so the stored vectors match a wider range of
user questions.

One experience becomes:
    • a main chunk (same slug as the basic chunk, so it replaces it),
    • a ``-technical`` chunk describing the stack,
    • one ``-contribution-N`` chunk per key contribution.

Entries the model fails on fall back to the basic flattening; one bad
entry never aborts the batch.

Usage:
    from folio.src.core.enhancer import ContentEnhancer
    enhancer = ContentEnhancer(llm)
    chunks = await enhancer.expand_experiences(records)
"""

from __future__ import annotations

import asyncio

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from folio.config.prompt_templates import ENHANCER_PROMPT_TEMPLATE, ENHANCER_SYSTEM_PROMPT
from folio.config.settings import settings
from folio.src.core.exceptions import UpstreamError
from folio.src.core.extractor import Record, experience_chunk, experience_slug
from folio.src.core.models import ChunkMetadata, ContentChunk, ContentType
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)


class EnhancedExperience(BaseModel):
    """Structured output requested from the chat model."""

    summary: str = Field(description="A comprehensive summary (2-3 sentences)")
    detailed_description: str = Field(description="A detailed description (4-5 sentences) of the role and responsibilities")
    key_contributions: list[str] = Field(default_factory=list, description="3-5 key contributions with specific details")
    impact: str = Field(description="The impact and outcomes of the work")
    technical_context: str = Field(description="The technologies and methodologies used")
    variations: list[str] = Field(default_factory=list, description="5-7 varied phrasings of the same experience")


class ContentEnhancer:
    """
    LLM-backed experience expansion.

    Parameters
    ----------
    llm
        A LangChain chat model supporting ``with_structured_output``.
    delay_seconds
        Pause between consecutive model calls.  Defaults to
        ``settings.ENHANCE_DELAY_SECONDS``.
    """

    __slots__ = ("_structured", "_delay")

    def __init__(self, llm: BaseChatModel, delay_seconds: float | None = None) -> None:
        self._structured = llm.with_structured_output(EnhancedExperience)
        self._delay = settings.ENHANCE_DELAY_SECONDS if delay_seconds is None else delay_seconds


    async def enhance(self, record: Record) -> EnhancedExperience:
        """Ask the model for an enhanced description of one experience entry."""
        prompt = ENHANCER_PROMPT_TEMPLATE.format(
            company=record.get("company", ""),
            position=record.get("position", ""),
            duration=record.get("duration", ""),
            location=record.get("location", ""),
            description=record.get("description", ""),
            technologies=", ".join(record.get("technologies") or []),
            achievements=" ".join(record.get("achievements") or []),
        )
        try:
            result = await self._structured.ainvoke([SystemMessage(content=ENHANCER_SYSTEM_PROMPT), HumanMessage(content=prompt)])
        except Exception as exc:
            raise UpstreamError("chat-model", f"experience enhancement failed: {exc}") from exc

        if not isinstance(result, EnhancedExperience):
            raise UpstreamError("chat-model", f"unexpected enhancement payload: {type(result).__name__}")
        return result


    async def expand_experiences(self, records: list[Record]) -> list[ContentChunk]:
        """Enhance *records* one at a time; failed entries use the basic chunk."""
        chunks: list[ContentChunk] = []
        for index, record in enumerate(records):
            if index and self._delay:
                await asyncio.sleep(self._delay)
            try:
                enhanced = await self.enhance(record)
            except UpstreamError as exc:
                logger.error("Error enhancing experience for %s: %s", record.get("company", "?"), exc)
                chunks.append(experience_chunk(record))
                continue
            chunks.extend(build_experience_chunks(record, enhanced))

        logger.info("Enhanced %d experience entr(ies) into %d chunk(s).", len(records), len(chunks))
        return chunks


def build_experience_chunks(record: Record, enhanced: EnhancedExperience) -> list[ContentChunk]:
    """Turn one enhanced experience into its main, technical and contribution chunks."""
    company = str(record.get("company", ""))
    position = str(record.get("position", ""))
    technologies = [str(t) for t in record.get("technologies") or []]
    base_slug = experience_slug(record)

    chunks = [
        ContentChunk(
            slug=base_slug,
            title=f"{position} at {company}",
            content=f"{enhanced.summary} {enhanced.detailed_description}".strip(),
            metadata=ChunkMetadata(
                content_type=ContentType.EXPERIENCE,
                company=company,
                position=position,
                duration=record.get("duration"),
                location=record.get("location"),
                technologies=technologies,
                enrichment=[enhanced.summary, enhanced.impact, enhanced.technical_context, *enhanced.variations],
            ),
        ),
        ContentChunk(
            slug=f"{base_slug}-technical",
            title=f"Technical Details: {position} at {company}",
            content=enhanced.technical_context,
            metadata=ChunkMetadata(
                content_type=ContentType.EXPERIENCE_TECHNICAL,
                company=company,
                position=position,
                technologies=technologies,
                enrichment=[f"Technologies used: {', '.join(technologies)}", *(f"Experienced with {t}" for t in technologies)],
            ),
        ),
    ]

    for number, contribution in enumerate(enhanced.key_contributions, 1):
        chunks.append(
            ContentChunk(
                slug=f"{base_slug}-contribution-{number}",
                title=f"Contribution {number}: {position} at {company}",
                content=contribution,
                metadata=ChunkMetadata(
                    content_type=ContentType.EXPERIENCE_CONTRIBUTION,
                    company=company,
                    position=position,
                    enrichment=[f"At {company}, I {contribution}", f"During my time as {position}, I {contribution}"],
                ),
            )
        )
    return chunks
