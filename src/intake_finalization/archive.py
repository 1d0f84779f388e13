"""Local document archive with a JSON manifest and a retention cap."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import json
import logging
import os
from pathlib import Path
import re
import tempfile
import unicodedata
from threading import Lock
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from .errors import StorageError
from .observability import FinalizationMetrics, log_event
from .schemas import ArchiveEntry
from .scoring import risk_tier


MANIFEST_NAME = "manifest.json"
DEFAULT_MAX_ENTRIES = 50

_MANIFEST = TypeAdapter(list[ArchiveEntry])
# Letters and digits of any script survive; separators and punctuation do not.
_UNSAFE_CHARS = re.compile(r"[^\w.-]+")

logger = logging.getLogger(__name__)


def sanitize_name(name: str) -> str:
    candidate = unicodedata.normalize("NFC", name).strip().replace("/", "-")
    candidate = _UNSAFE_CHARS.sub("_", candidate).strip("._")
    return candidate or "patient"


def document_filename(patient_name: str, created_at: datetime) -> str:
    """Derive ``PHF_<name>_<yyyyMMdd_HHmm>.pdf`` for a patient document."""

    return f"PHF_{sanitize_name(patient_name)}_{created_at:%Y%m%d_%H%M}.pdf"


def _atomic_write(destination: Path, payload: bytes) -> None:
    fd, temp_name = tempfile.mkstemp(dir=destination.parent, prefix=".tmp-", suffix=destination.suffix)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, destination)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


class ArchiveStore:
    """File-backed archive of finalized documents.

    Every manifest read-modify-write runs under one lock, so concurrent
    submissions cannot lose entries. The manifest lists entries newest-first
    and never holds more than ``max_entries`` rows; each row owns exactly one
    file in the archive directory.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
        metrics: FinalizationMetrics | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._directory = Path(directory)
        self._max_entries = max_entries
        self._clock = clock
        self._id_factory = id_factory
        self._metrics = metrics
        self._lock = Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def manifest_path(self) -> Path:
        return self._directory / MANIFEST_NAME

    def store(self, document: bytes, patient_name: str, score: int | None = None) -> ArchiveEntry:
        """Archive ``document`` and return its new manifest entry."""

        created_at = self._clock()
        with self._lock:
            self._ensure_directory()
            entries = self._read_manifest()
            filename = self._unique_filename(document_filename(patient_name, created_at), entries)
            entry = ArchiveEntry(
                id=self._id_factory(),
                filename=filename,
                patient_name=patient_name,
                created_at=created_at,
                risk_tier=risk_tier(score) if score is not None else None,
                score=score,
            )
            destination = self._resolve(filename)
            try:
                _atomic_write(destination, document)
            except OSError as exc:
                raise StorageError(f"failed to write archive document {filename}: {exc}") from exc

            updated = [entry, *entries]
            kept, evicted = updated[: self._max_entries], updated[self._max_entries :]
            try:
                self._write_manifest(kept)
            except StorageError:
                destination.unlink(missing_ok=True)
                raise

            for old in evicted:
                self._remove_file(old.filename)
            if evicted:
                if self._metrics is not None:
                    self._metrics.increment("archive_evictions_total", len(evicted))
                log_event(
                    logger,
                    "archive_entries_evicted",
                    evicted_ids=[old.id for old in evicted],
                    max_entries=self._max_entries,
                )
        log_event(logger, "archive_document_stored", entry_id=entry.id, filename=filename, size_bytes=len(document))
        return entry

    def load_manifest(self) -> list[ArchiveEntry]:
        """Entries newest-first; an unreadable manifest reads as empty."""

        with self._lock:
            return self._read_manifest()

    def get_entry(self, entry_id: str) -> ArchiveEntry | None:
        for entry in self.load_manifest():
            if entry.id == entry_id:
                return entry
        return None

    def get_document(self, entry: ArchiveEntry) -> bytes | None:
        path = self._resolve(entry.filename)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"failed to read archive document {entry.filename}: {exc}") from exc

    def delete(self, entry: ArchiveEntry) -> None:
        """Remove the entry's file and manifest row; safe to repeat."""

        with self._lock:
            self._remove_file(entry.filename)
            entries = self._read_manifest()
            remaining = [item for item in entries if item.id != entry.id]
            if len(remaining) != len(entries):
                self._write_manifest(remaining)
        log_event(logger, "archive_entry_deleted", entry_id=entry.id, filename=entry.filename)

    def _ensure_directory(self) -> None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to create archive directory {self._directory}: {exc}") from exc

    def _resolve(self, filename: str) -> Path:
        root = self._directory.resolve()
        candidate = (root / filename).resolve()
        if candidate.parent != root:
            raise StorageError(f"archive filename escapes archive directory: {filename}")
        return candidate

    def _unique_filename(self, filename: str, entries: list[ArchiveEntry]) -> str:
        taken = {entry.filename for entry in entries}
        stem, suffix = filename[: -len(".pdf")], ".pdf"
        candidate = filename
        counter = 2
        while candidate in taken or self._resolve(candidate).exists():
            candidate = f"{stem}_{counter}{suffix}"
            counter += 1
        return candidate

    def _read_manifest(self) -> list[ArchiveEntry]:
        try:
            raw = self.manifest_path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            log_event(logger, "archive_manifest_unreadable", level=logging.WARNING, reason=str(exc))
            return []
        try:
            return _MANIFEST.validate_json(raw)
        except ValidationError as exc:
            log_event(
                logger,
                "archive_manifest_unreadable",
                level=logging.WARNING,
                reason="invalid manifest",
                error_count=exc.error_count(),
            )
            return []

    def _write_manifest(self, entries: list[ArchiveEntry]) -> None:
        payload = json.dumps(_MANIFEST.dump_python(entries, mode="json"), indent=2).encode("utf-8")
        try:
            self._ensure_directory()
            _atomic_write(self.manifest_path, payload)
        except OSError as exc:
            raise StorageError(f"failed to write archive manifest: {exc}") from exc

    def _remove_file(self, filename: str) -> None:
        try:
            self._resolve(filename).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to remove archive document {filename}: {exc}") from exc
