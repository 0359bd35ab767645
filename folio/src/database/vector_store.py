"""
Folio - FolioVectorStore
=========================
OOP wrapper around LanceDB providing a clean interface for:
  • Table creation with a strict PyArrow schema
  • Idempotent upserts keyed on ``slug`` (merge-insert), batched
  • Cosine similarity search returning similarity scores

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per URI to avoid file-lock issues.
  • **No client-side ranking** — rows come back in the order LanceDB
    ranks them; the only client-side step is ``similarity >= threshold``.
  • **Partial-failure tolerant batches** — a failed upsert partition
    is counted and logged, the remaining partitions still run.
  • **Vectors are supplied by the caller** — embedding lives in
    ``EmbeddingGenerator``; this class only stores and searches.

Usage:
    from folio.src.database.vector_store import FolioVectorStore

    store = FolioVectorStore()
    result = store.upsert_batch(embeddings)
    matches = store.raw_search(query_vector, limit=10)
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any

import lancedb
import pyarrow as pa

from folio.config.settings import settings
from folio.src.core.exceptions import DimensionMismatch, UpstreamError
from folio.src.core.models import ChunkMetadata, ContentEmbedding, ContentEmbeddingWithSimilarity, UpsertResult
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)

Row = dict[str, Any]

# ── Constants ──────────────────────────────────────────────────────────
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def build_schema(dimensions: int) -> pa.Schema:
    """LanceDB table schema for content embeddings of *dimensions* length."""
    return pa.schema([
        pa.field("slug", pa.utf8(), nullable=False),
        pa.field("title", pa.utf8()),
        pa.field("content", pa.utf8()),
        pa.field("metadata", pa.utf8()),
        pa.field("vector", pa.list_(pa.float32(), dimensions)),
        pa.field("created_at", pa.timestamp("us", tz="UTC")),
        pa.field("updated_at", pa.timestamp("us", tz="UTC")),
    ])


def _get_connection(uri: str, api_key: str | None = None) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *uri*.

    Thread-safe via ``_DB_LOCK``.  ``api_key`` is only passed for
    LanceDB Cloud (``db://``) URIs.
    """
    if uri not in _db_connection_cache:
        with _DB_LOCK:
            if uri not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", uri)
                if api_key:
                    _db_connection_cache[uri] = lancedb.connect(uri, api_key=api_key)
                else:
                    _db_connection_cache[uri] = lancedb.connect(uri)
    return _db_connection_cache[uri]


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class FolioVectorStore:
    """
    High-level abstraction over the ``content_embeddings`` LanceDB table.

    Parameters
    ----------
    uri
        Database directory or ``db://`` URI.  Defaults to ``settings.LANCEDB_URI``.
    table_name
        Defaults to ``settings.LANCEDB_TABLE_NAME``.
    dimensions
        Vector length.  Defaults to ``settings.EMBEDDING_DIMENSIONS``.
    api_key
        LanceDB Cloud key.  Defaults to ``settings.LANCEDB_API_KEY``.
    upsert_batch_size
        Rows per merge-insert request.  Defaults to ``settings.UPSERT_BATCH_SIZE``.
    """

    __slots__ = ("_uri", "_table_name", "_dimensions", "_batch_size", "_schema", "db", "table")

    def __init__(self, uri: str | None = None, table_name: str | None = None, dimensions: int | None = None, api_key: str | None = None, upsert_batch_size: int | None = None) -> None:
        self._uri: str = str(uri or settings.LANCEDB_URI)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._dimensions: int = dimensions or settings.EMBEDDING_DIMENSIONS
        self._batch_size: int = upsert_batch_size or settings.UPSERT_BATCH_SIZE
        self._schema: pa.Schema = build_schema(self._dimensions)
        self.db: lancedb.DBConnection | None = None
        self.table: Any = None

        if api_key is None and settings.LANCEDB_API_KEY is not None:
            api_key = settings.LANCEDB_API_KEY.get_secret_value()
        self._connect(api_key)


    def _connect(self, api_key: str | None) -> None:
        """Open (or re-use) the LanceDB connection and initialise the table."""
        try:
            self.db = _get_connection(self._uri, api_key)
            self.ensure_table()
        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._uri, exc)
            raise
        except Exception:
            logger.exception("Unexpected error connecting to LanceDB.")
            raise


    def ensure_table(self) -> None:
        """Open the table, creating it with the strict schema if it does not exist."""
        if self._table_name in self.db.table_names():
            self.table = self.db.open_table(self._table_name)
            logger.info("Opened existing table '%s' (%d rows).", self._table_name, self.table.count_rows())
        else:
            self.table = self.db.create_table(self._table_name, schema=self._schema)
            logger.info("Created new table '%s'.", self._table_name)

    # ══════════════════════════════════════════════════════════════════
    #  SEARCH
    # ══════════════════════════════════════════════════════════════════

    def search(self, query_vector: list[float], threshold: float, limit: int) -> list[ContentEmbeddingWithSimilarity]:
        """
        Cosine similarity search.

        Parameters
        ----------
        query_vector
            Embedding of the query text.
        threshold
            Minimum similarity (inclusive).
        limit
            Maximum candidates requested from LanceDB.

        Returns
        -------
        list[ContentEmbeddingWithSimilarity]
            Rows with ``similarity >= threshold``, most similar first.

        Raises
        ------
        DimensionMismatch
            If ``query_vector`` does not match the table's vector length.
        UpstreamError
            If LanceDB fails.
        """
        if len(query_vector) != self._dimensions:
            raise DimensionMismatch(len(query_vector), self._dimensions)
        if self.table is None:
            raise UpstreamError("vector-store", "table is not initialised")

        logger.debug("Searching with threshold %.2f, limit %d …", threshold, limit)
        try:
            if self.table.count_rows() == 0:
                return []
            rows: list[Row] = self.table.search(list(query_vector), vector_column_name="vector").distance_type("cosine").limit(limit).to_list()
        except Exception as exc:
            logger.error("Vector search failed: %s", exc)
            raise UpstreamError("vector-store", f"search failed: {exc}") from exc

        results = [self._from_row(row, similarity=1.0 - float(row["_distance"])) for row in rows]
        matched = [r for r in results if r.similarity >= threshold]
        logger.debug("Search returned %d row(s), %d at or above threshold.", len(results), len(matched))
        return matched


    def raw_search(self, query_vector: list[float], limit: int = 10) -> list[ContentEmbeddingWithSimilarity]:
        """Search with a zero threshold; callers apply their own cutoff."""
        return self.search(query_vector, threshold=0.0, limit=limit)

    # ══════════════════════════════════════════════════════════════════
    #  WRITES
    # ══════════════════════════════════════════════════════════════════

    def upsert_one(self, item: ContentEmbedding) -> bool:
        """Insert or overwrite a single row keyed on ``slug``."""
        try:
            self._merge([item])
            return True
        except Exception as exc:
            logger.error("Error upserting '%s': %s", item.slug, exc)
            return False


    def upsert_batch(self, items: list[ContentEmbedding]) -> UpsertResult:
        """
        Upsert *items* in partitions of ``upsert_batch_size``.

        A failed partition adds its size to ``failed_count``; later
        partitions are still attempted.
        """
        result = UpsertResult()
        if not items:
            return result

        logger.info("Preparing to upsert %d item(s) in batches of %d …", len(items), self._batch_size)
        for start in range(0, len(items), self._batch_size):
            batch = items[start : start + self._batch_size]
            batch_no = start // self._batch_size + 1
            try:
                self._merge(batch)
                result.success_count += len(batch)
                logger.info("Batch %d succeeded: %d item(s).", batch_no, len(batch))
            except Exception as exc:
                result.failed_count += len(batch)
                logger.error("Error upserting batch %d: %s", batch_no, exc)
        return result


    def _merge(self, items: list[ContentEmbedding]) -> None:
        if self.table is None:
            raise UpstreamError("vector-store", "table is not initialised")
        now = datetime.now(timezone.utc)
        data = pa.Table.from_pylist([self._to_record(item, now) for item in items], schema=self._schema)
        self.table.merge_insert("slug").when_matched_update_all().when_not_matched_insert_all().execute(data)


    def delete_by_slug(self, slug: str) -> bool:
        try:
            self.table.delete(f"slug = {_quote(slug)}")
            return True
        except Exception as exc:
            logger.error("Error deleting '%s': %s", slug, exc)
            return False

    # ══════════════════════════════════════════════════════════════════
    #  READS / DIAGNOSTICS
    # ══════════════════════════════════════════════════════════════════

    def has_any_content(self) -> bool:
        """``True`` if at least one row exists.  Errors read as empty."""
        try:
            return self.count() > 0
        except Exception as exc:
            logger.error("Error checking database content: %s", exc)
            return False


    def count(self) -> int:
        """Return the total number of rows in the table."""
        if self.table is None:
            return 0
        return self.table.count_rows()


    def list_all(self) -> list[ContentEmbedding]:
        """Every stored row, most recently created first."""
        if self.table is None:
            return []
        rows = self.table.to_arrow().to_pylist()
        items = [self._from_row(row) for row in rows]
        items.sort(key=lambda item: item.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return items


    def get_by_slug(self, slug: str) -> ContentEmbedding | None:
        if self.table is None:
            return None
        rows = self.table.search().where(f"slug = {_quote(slug)}").limit(1).to_list()
        return self._from_row(rows[0]) if rows else None


    def drop_table(self) -> None:
        """Drop the vector table (useful for re-syncing from scratch)."""
        if self.db is None:
            logger.warning("No database connection; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            self.table = None
            logger.info("Dropped table '%s'.", self._table_name)
        except (ValueError, FileNotFoundError):
            logger.warning("Table '%s' does not exist — nothing to drop.", self._table_name)

    # ── Row conversion ─────────────────────────────────────────────────

    @staticmethod
    def _to_record(item: ContentEmbedding, now: datetime) -> Row:
        return {
            "slug": item.slug,
            "title": item.title,
            "content": item.content,
            "metadata": item.metadata.model_dump_json(by_alias=True),
            "vector": [float(x) for x in item.embedding],
            "created_at": item.created_at or now,
            "updated_at": now,
        }


    @staticmethod
    def _from_row(row: Row, similarity: float | None = None) -> ContentEmbedding:
        fields = {
            "slug": row["slug"],
            "title": row.get("title") or "",
            "content": row.get("content") or "",
            "metadata": ChunkMetadata.model_validate_json(row.get("metadata") or '{"contentType": "page"}'),
            "embedding": [float(x) for x in row.get("vector") or []],
            "created_at": row.get("created_at"),
            "updated_at": row.get("updated_at"),
        }
        if similarity is None:
            return ContentEmbedding(**fields)
        return ContentEmbeddingWithSimilarity(**fields, similarity=similarity)


    def __repr__(self) -> str:
        return f"FolioVectorStore(uri='{self._uri}', table='{self._table_name}', rows={self.count()})"
