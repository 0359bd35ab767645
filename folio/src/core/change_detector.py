"""
Folio - Change Detection
=========================
Decides whether the watched content files drifted since the last
successful sync.

``SyncMetadataStore``
    Reads and atomically rewrites the single JSON record
    ``{"lastSync", "fileHashes", "chunkCount"}``.  A missing or corrupt
    record reads as ``None`` (never synced).

``ContentChangeDetector``
    Hashes every watched file (streamed MD5, drift detection only, not an
    integrity check) and compares the digests with the stored record.
    Read-only: it never writes metadata.

Usage:
    from folio.src.core.change_detector import ContentChangeDetector, SyncMetadataStore
    detector = ContentChangeDetector(SyncMetadataStore())
    report = detector.has_content_changed()
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from folio.config.settings import settings
from folio.src.core.models import ChangeReport, SyncMetadata
from folio.src.utils.logger import get_logger

logger = get_logger(__name__)

_READ_BLOCK_SIZE = 8192


class SyncMetadataStore:
    """
    JSON-file persistence for ``SyncMetadata``.

    Parameters
    ----------
    path
        Override the metadata file.  Defaults to ``settings.SYNC_METADATA_PATH``.
    """

    __slots__ = ("_path",)

    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path or settings.SYNC_METADATA_PATH)


    @property
    def path(self) -> Path:
        return self._path


    def load(self) -> SyncMetadata | None:
        """Return the stored record, or ``None`` if absent or unreadable."""
        if not self._path.exists():
            return None
        try:
            return SyncMetadata.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (ValidationError, json.JSONDecodeError, OSError) as exc:
            logger.warning("Corrupt sync metadata at %s (%s) — treating as never synced.", self._path, exc)
            return None


    def save(self, metadata: SyncMetadata) -> None:
        """Overwrite the record atomically (temp file + replace)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(metadata.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)
        logger.debug("Sync metadata saved to %s", self._path)


    def clear(self) -> bool:
        """Delete the record.  Returns ``True`` if a file was removed."""
        if self._path.exists():
            self._path.unlink()
            logger.warning("Sync metadata deleted: %s", self._path)
            return True
        return False


    def last_sync_info(self) -> dict[str, str | int] | None:
        metadata = self.load()
        if metadata is None:
            return None
        return {"lastSync": metadata.last_sync.isoformat(), "chunkCount": metadata.chunk_count}


class ContentChangeDetector:
    """
    Compare current watched-file hashes with the last synced ones.

    Parameters
    ----------
    metadata_store
        Where the previous hashes are read from.
    watched_files
        Mapping of watched-file key → absolute path.  Defaults to
        ``settings.watched_paths()``.
    """

    __slots__ = ("_metadata", "_watched")

    def __init__(self, metadata_store: SyncMetadataStore, watched_files: dict[str, Path] | None = None) -> None:
        self._metadata = metadata_store
        self._watched = dict(watched_files if watched_files is not None else settings.watched_paths())


    @property
    def watched_files(self) -> list[str]:
        return list(self._watched)


    def has_content_changed(self) -> ChangeReport:
        """
        Report which watched files differ from the last successful sync.

        - No stored metadata → every watched file is reported changed.
        - A file that cannot be read → reported changed.
        - A file that does not exist → reported changed only if a hash
          was recorded for it.
        """
        metadata = self._metadata.load()
        if metadata is None:
            return ChangeReport(changed=True, changed_files=self.watched_files)

        changed_files: list[str] = []
        for key, path in self._watched.items():
            previous = metadata.file_hashes.get(key)

            if not path.exists():
                if previous is not None:
                    logger.info("Watched file removed since last sync: %s", key)
                    changed_files.append(key)
                continue

            try:
                current = self.compute_file_hash(path)
            except OSError as exc:
                logger.error("Error checking file %s: %s", key, exc)
                changed_files.append(key)
                continue

            if current != previous:
                changed_files.append(key)

        return ChangeReport(changed=bool(changed_files), changed_files=changed_files)


    def compute_hashes(self) -> dict[str, str]:
        """Hash every existing, readable watched file."""
        hashes: dict[str, str] = {}
        for key, path in self._watched.items():
            if not path.exists():
                continue
            try:
                hashes[key] = self.compute_file_hash(path)
            except OSError as exc:
                logger.error("Cannot hash %s for sync metadata: %s", key, exc)
        return hashes


    def snapshot(self, chunk_count: int) -> SyncMetadata:
        """Build a fresh ``SyncMetadata`` record for the current files."""
        return SyncMetadata(last_sync=datetime.now(timezone.utc), file_hashes=self.compute_hashes(), chunk_count=chunk_count)


    @staticmethod
    def compute_file_hash(filepath: Path) -> str:
        """Return the MD5 hex digest of a file's contents."""
        hasher = hashlib.md5()
        with open(filepath, "rb") as f:
            for block in iter(lambda: f.read(_READ_BLOCK_SIZE), b""):
                hasher.update(block)
        return hasher.hexdigest()
