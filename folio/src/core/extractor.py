"""
Folio - ContentExtractor
=========================
Flattens the structured portfolio data files into ``ContentChunk``
objects.  Purely structural: no ranking, no NLP.

Sources (all under ``settings.DATA_DIR``):
    • ``site.json``       – static site pages (home, chat, contact, nav)
    • ``resume.json``     – ``experience[]``, ``education[]``, ``skills{}``
    • ``career.json``     – ``career[]``
    • ``education.json``  – ``education[]``
    • ``projects.json``   – ``projects[]``

Chunk order is source order.  Slugs are built from kebab-cased natural
keys so re-syncing the same record overwrites its row; when two records
collide on a slug the first one wins.

Usage:
    from folio.src.core.extractor import ContentExtractor
    chunks = ContentExtractor().extract_all()
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from folio.config.settings import settings
from folio.src.core.models import ChunkMetadata, ContentChunk, ContentType
from folio.src.utils.logger import get_logger
from folio.src.utils.text_utils import as_text, bullet_list, clean_text, to_kebab_case

if TYPE_CHECKING:
    from folio.src.core.enhancer import ContentEnhancer

logger = get_logger(__name__)

Record = dict[str, Any]


# ── Per-record builders ───────────────────────────────────────────────

def experience_slug(record: Record) -> str:
    return f"experience:{to_kebab_case(record.get('company', ''))}-{to_kebab_case(record.get('position', ''))}"


def experience_chunk(record: Record) -> ContentChunk:
    """One primary chunk for a resume experience entry."""
    company = as_text(record.get("company"))
    position = as_text(record.get("position"))
    duration = as_text(record.get("duration"))
    location = as_text(record.get("location"))
    technologies = [str(t) for t in record.get("technologies") or []]
    achievements = [str(a) for a in record.get("achievements") or []]

    lines = [f"Position: {position}", f"Company: {company}", f"Duration: {duration}"]
    if location:
        lines.append(f"Location: {location}")
    lines.append(f"Description: {as_text(record.get('description'))}")
    if technologies:
        lines.append(f"Technologies: {', '.join(technologies)}")
    if achievements:
        lines.append("Achievements:")
        lines.append(bullet_list(achievements))

    enrichment = [
        f"I worked at {company} as a {position}",
        f"My role at {company} was {position}",
    ]
    if technologies:
        enrichment.append(f"During my time at {company}, I worked with {', '.join(technologies)}")
    enrichment.extend(f"Achievement: {a}" for a in achievements)

    return ContentChunk(
        slug=experience_slug(record),
        title=f"{position} at {company}",
        content="\n".join(lines).strip(),
        metadata=ChunkMetadata(content_type=ContentType.EXPERIENCE, company=company, position=position, duration=duration or None, location=location or None, technologies=technologies, enrichment=enrichment),
    )


def _links_text(links: Iterable[Record] | None, label: str) -> str:
    links = [link for link in links or [] if link.get("name") and link.get("href")]
    if not links:
        return ""
    return f" {label}: " + " | ".join(f"{link['name']}: {link['href']}" for link in links)


def career_chunk(record: Record) -> ContentChunk:
    name = as_text(record.get("name"))
    title = as_text(record.get("title"))
    start = as_text(record.get("start"))
    end = as_text(record.get("end"))
    period = f"{start} to {end}" if end else f"{start} (Current)"

    content = f"Company: {name} - {title}. Period: {period}. {as_text(record.get('description'))}".strip()
    content += _links_text(record.get("links"), "Related Projects")

    return ContentChunk(
        slug=f"career:{to_kebab_case(name)}-{to_kebab_case(title)}",
        title=f"Career: {name} - {title}",
        content=content,
        metadata=ChunkMetadata(
            content_type=ContentType.CAREER,
            company=name,
            position=title,
            duration=period,
            enrichment=[
                f"I worked at {name} as a {title}",
                f"My role at {name} was {title}",
                f"I was employed at {name} from {start} to {end or 'present'}",
                f"My employment history includes working at {name}",
            ],
        ),
    )


def education_chunk(record: Record) -> ContentChunk:
    """Chunk for an ``education.json`` entry (``name`` / ``title`` / ``start`` / ``end``)."""
    name = as_text(record.get("name"))
    title = as_text(record.get("title"))
    start = as_text(record.get("start"))
    end = as_text(record.get("end"))

    content = f"School: {name}. Degree: {title}. Period: {start} to {end}. {as_text(record.get('description'))}".strip()
    content += _links_text(record.get("links"), "Projects")

    return ContentChunk(
        slug=f"education:{to_kebab_case(name)}",
        title=f"Education: {name}",
        content=content,
        metadata=ChunkMetadata(
            content_type=ContentType.EDUCATION,
            duration=f"{start} to {end}" if start or end else None,
            enrichment=[
                f"I studied at {name} and earned a {title}",
                f"My education includes {title} from {name}",
                f"I attended {name} from {start} to {end}",
                f"I graduated from {name} with a degree in {title}",
            ],
        ),
    )


def resume_education_chunk(record: Record) -> ContentChunk:
    """Chunk for a ``resume.json`` education entry (``degree`` / ``institution`` / ``year``)."""
    degree = as_text(record.get("degree"))
    institution = as_text(record.get("institution"))
    lines = [f"Degree: {degree}", f"Institution: {institution}", f"Year: {as_text(record.get('year'))}"]
    details = as_text(record.get("details"))
    if details:
        lines.append(f"Details: {details}")

    return ContentChunk(
        slug=f"education:{to_kebab_case(institution)}",
        title=f"{degree} - {institution}",
        content="\n".join(lines),
        metadata=ChunkMetadata(content_type=ContentType.EDUCATION, enrichment=[f"I studied {degree} at {institution}"]),
    )


def project_chunk(record: Record) -> ContentChunk:
    title = as_text(record.get("title"))
    tech = [str(t) for t in record.get("tech") or []]
    content = f"Project: {title}. {as_text(record.get('description'))}".strip()
    if tech:
        content += f" Built with: {', '.join(tech)}."
    for label, key in (("Source code", "github"), ("Live demo", "live")):
        if record.get(key):
            content += f" {label}: {record[key]}"

    return ContentChunk(
        slug=f"project:{to_kebab_case(str(record.get('id') or title))}",
        title=f"Project: {title}",
        content=content,
        metadata=ChunkMetadata(
            content_type=ContentType.PROJECT,
            technologies=tech,
            enrichment=[f"I built a project called {title}", *(f"{title} uses {t}" for t in tech)],
        ),
    )


def skills_chunk(skills: dict[str, Any]) -> ContentChunk:
    """A single chunk listing every skill category on its own line."""
    lines: list[str] = []
    technologies: list[str] = []
    for category, values in skills.items():
        items = [str(v) for v in values] if isinstance(values, (list, tuple)) else [str(values)]
        lines.append(f"{category}: {', '.join(items)}")
        technologies.extend(items)

    return ContentChunk(
        slug="skills:overview",
        title="Technical Skills",
        content="\n".join(lines),
        metadata=ChunkMetadata(content_type=ContentType.SKILLS, technologies=technologies, enrichment=[f"My {category} skills" for category in skills]),
    )


def page_chunk(record: Record) -> ContentChunk:
    return ContentChunk(
        slug=str(record["slug"]),
        title=as_text(record.get("title")),
        content=clean_text(str(record.get("content", ""))),
        metadata=ChunkMetadata(content_type=record.get("contentType", ContentType.PAGE), enrichment=[str(e) for e in record.get("enrichment") or []]),
    )


# ── Extractor ─────────────────────────────────────────────────────────

class ContentExtractor:
    """
    Read the portfolio data files and produce content chunks.

    Parameters
    ----------
    data_dir
        Override the source directory.  Defaults to ``settings.DATA_DIR``.
    """

    __slots__ = ("_data_dir",)

    def __init__(self, data_dir: Path | None = None) -> None:
        self._data_dir = Path(data_dir or settings.DATA_DIR)

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINTS
    # ══════════════════════════════════════════════════════════════════

    def extract_all(self) -> list[ContentChunk]:
        """Extract every source with basic (non-AI) experience flattening."""
        return self._assemble([experience_chunk(r) for r in self.experience_records()])


    async def extract_all_enhanced(self, enhancer: ContentEnhancer) -> list[ContentChunk]:
        """Extract every source, expanding experience entries with *enhancer*."""
        experience = await enhancer.expand_experiences(self.experience_records())
        return self._assemble(experience)


    def _assemble(self, experience: list[ContentChunk]) -> list[ContentChunk]:
        chunks = [
            *self.extract_site_pages(),
            *experience,
            *self.extract_career(),
            *self.extract_education(),
            *self.extract_projects(),
            *self.extract_skills(),
        ]
        unique = self._dedupe(chunks)
        logger.info("Extracted %d chunk(s) from %s", len(unique), self._data_dir)
        return unique

    # ══════════════════════════════════════════════════════════════════
    #  PER-SOURCE EXTRACTION
    # ══════════════════════════════════════════════════════════════════

    def experience_records(self) -> list[Record]:
        resume = self._load_json("resume.json") or {}
        return list(resume.get("experience") or [])


    def extract_experience(self) -> list[ContentChunk]:
        return [experience_chunk(r) for r in self.experience_records()]


    def extract_site_pages(self) -> list[ContentChunk]:
        site = self._load_json("site.json") or {}
        return [page_chunk(p) for p in site.get("pages") or []]


    def extract_career(self) -> list[ContentChunk]:
        data = self._load_json("career.json") or {}
        return [career_chunk(r) for r in data.get("career") or []]


    def extract_education(self) -> list[ContentChunk]:
        resume = self._load_json("resume.json") or {}
        data = self._load_json("education.json") or {}
        return [resume_education_chunk(r) for r in resume.get("education") or []] + [education_chunk(r) for r in data.get("education") or []]


    def extract_projects(self) -> list[ContentChunk]:
        data = self._load_json("projects.json") or {}
        return [project_chunk(r) for r in data.get("projects") or []]


    def extract_skills(self) -> list[ContentChunk]:
        resume = self._load_json("resume.json") or {}
        skills = resume.get("skills")
        return [skills_chunk(skills)] if skills else []

    # ── Helpers ────────────────────────────────────────────────────────

    def _load_json(self, name: str) -> dict[str, Any] | None:
        path = self._data_dir / name
        if not path.exists():
            logger.warning("%s not found, skipping extraction", name)
            return None
        return json.loads(path.read_text(encoding="utf-8"))


    @staticmethod
    def _dedupe(chunks: list[ContentChunk]) -> list[ContentChunk]:
        seen: set[str] = set()
        unique: list[ContentChunk] = []
        for chunk in chunks:
            if chunk.slug in seen:
                logger.warning("Duplicate slug '%s' — keeping the first occurrence.", chunk.slug)
                continue
            seen.add(chunk.slug)
            unique.append(chunk)
        return unique
