"""
Folio - EmbeddingGenerator
===========================
Thin async wrapper around a LangChain embedding model that turns text
into fixed-length vectors and normalises every provider failure into
``UpstreamError``.

Design decisions:
  • **Dependency Injection** — any LangChain ``Embeddings`` (Gemini,
    or a fake in tests) is passed in.
  • **Shape validation** — a response with the wrong number of vectors
    or the wrong dimensionality is treated as malformed upstream data.
  • **Query vs document** — ``embed`` uses the query side of the model
    (chat questions); ``embed_batch`` and ``embed_enriched`` use the
    document side (stored chunks).
  • **Enrichment** — ``enriched_text`` space-joins the content with its
    enrichment phrasings before embedding to bias the vector toward
    varied user queries.

Usage:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings
    from folio.src.core.embeddings import EmbeddingGenerator

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=...)
    generator = EmbeddingGenerator(embedder)
    vector = await generator.embed("What did they build at Northwind?")
"""

from __future__ import annotations

from collections.abc import Sequence
from numbers import Real
from typing import Protocol, runtime_checkable

import numpy as np

from folio.config.settings import settings
from folio.src.core.exceptions import DimensionMismatch, UpstreamError
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)

Vector = list[float]


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible async embedding model."""

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]: ...

    async def aembed_query(self, text: str) -> list[float]: ...


class EmbeddingGenerator:
    """
    Single, batch and enriched embedding calls with uniform error handling.

    Parameters
    ----------
    embedder
        Any object satisfying the ``Embedder`` protocol.
    dimensions
        Expected vector length.  Defaults to ``settings.EMBEDDING_DIMENSIONS``.
    """

    __slots__ = ("_embedder", "_dimensions")

    def __init__(self, embedder: Embedder, dimensions: int | None = None) -> None:
        self._embedder = embedder
        self._dimensions = dimensions or settings.EMBEDDING_DIMENSIONS


    @property
    def dimensions(self) -> int:
        return self._dimensions


    async def embed(self, text: str) -> Vector:
        """Embed a single query text."""
        try:
            vector = await self._embedder.aembed_query(text)
        except Exception as exc:
            logger.error("Error generating embedding: %s", exc)
            raise UpstreamError("embeddings", str(exc), status_code=upstream_status(exc)) from exc
        return self._validate(vector)


    async def embed_batch(self, texts: list[str]) -> list[Vector]:
        """Embed several document texts in one provider call."""
        if not texts:
            return []
        try:
            vectors = await self._embedder.aembed_documents(texts)
        except Exception as exc:
            logger.error("Error generating embeddings batch: %s", exc)
            raise UpstreamError("embeddings", str(exc), status_code=upstream_status(exc)) from exc

        if vectors is None or len(vectors) != len(texts):
            raise UpstreamError("embeddings", f"expected {len(texts)} vectors, got {0 if vectors is None else len(vectors)}")
        return [self._validate(v) for v in vectors]


    async def embed_enriched(self, content: str, enrichment: Sequence[str] = ()) -> Vector:
        """Embed one stored document: *content* space-joined with its enrichment strings."""
        return (await self.embed_batch([enriched_text(content, enrichment)]))[0]


    def _validate(self, vector: object) -> Vector:
        if not isinstance(vector, (list, tuple)) or not vector:
            raise UpstreamError("embeddings", "empty or non-list embedding returned")
        if len(vector) != self._dimensions:
            raise UpstreamError("embeddings", f"expected {self._dimensions} dimensions, got {len(vector)}")
        if not all(isinstance(x, Real) for x in vector):
            raise UpstreamError("embeddings", "embedding contains non-numeric values")
        return [float(x) for x in vector]


def enriched_text(content: str, enrichment: Sequence[str] = ()) -> str:
    return " ".join([content, *enrichment])


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    ``dot(a, b) / (|a| * |b|)``.

    Raises ``DimensionMismatch`` when the vectors differ in length.
    A zero vector has no direction; its similarity to anything is 0.0.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def upstream_status(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    return status if isinstance(status, int) else None
