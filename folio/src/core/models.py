"""
Folio - Domain Models
======================
Pydantic models shared by the extractor, the vector store gateway, the
sync orchestrator and the HTTP layer.

All models serialise with camelCase aliases (``model_dump(by_alias=True)``)
so the on-disk sync metadata and the HTTP payloads keep the
``lastSync`` / ``chunkCount`` / ``contentType`` field names, while Python
code uses snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentType(str, Enum):
    PROJECT = "project"
    CAREER = "career"
    EDUCATION = "education"
    PAGE = "page"
    SOCIAL = "social"
    NAVIGATION = "navigation"
    EXPERIENCE = "experience"
    EXPERIENCE_TECHNICAL = "experience-technical"
    EXPERIENCE_CONTRIBUTION = "experience-contribution"
    SKILLS = "skills"


# ── Content ───────────────────────────────────────────────────────────

class ChunkMetadata(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, use_enum_values=True)

    content_type: ContentType
    company: str | None = None
    position: str | None = None
    duration: str | None = None
    location: str | None = None
    technologies: list[str] = Field(default_factory=list)
    enrichment: list[str] = Field(default_factory=list)


class ContentChunk(_CamelModel):
    """A unit of extracted text plus metadata; ``slug`` is its identity."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    slug: str = Field(min_length=1)
    title: str
    content: str
    metadata: ChunkMetadata


class ContentEmbedding(ContentChunk):
    embedding: list[float]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ContentEmbeddingWithSimilarity(ContentEmbedding):
    similarity: float


# ── Sync bookkeeping ─────────────────────────────────────────────────

class SyncMetadata(_CamelModel):
    """The single persisted record describing the last successful sync."""

    last_sync: datetime
    file_hashes: dict[str, str] = Field(default_factory=dict)
    chunk_count: int = 0


class ChangeReport(_CamelModel):
    changed: bool
    changed_files: list[str] = Field(default_factory=list)


class SyncDecision(_CamelModel):
    should_sync: bool
    force: bool = False
    reason: str = ""
    changed_files: list[str] = Field(default_factory=list)


class SyncResult(_CamelModel):
    success: bool
    chunks_processed: int = 0
    error: str | None = None


class UpsertResult(_CamelModel):
    success_count: int = 0
    failed_count: int = 0


# ── Chat ──────────────────────────────────────────────────────────────

class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)
