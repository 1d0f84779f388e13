"""Finalization pipeline: score, render, archive and hand off for delivery."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from time import perf_counter

from .archive import ArchiveStore, document_filename
from .config import Settings
from .errors import RenderingError, StorageError
from .mail import MailDispatcher, MailJob
from .observability import FinalizationMetrics, log_event
from .rendering import DocumentRenderer
from .schemas import ArchiveEntry, ClinicSettings, PatientRecord
from .scoring import RiskScore, assess


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizationResult:
    """What the submitter gets back from one finalization."""

    document: bytes = field(repr=False)
    risk: RiskScore
    archive_entry: ArchiveEntry | None
    filename: str
    mail_queued: bool


class IntakeFinalizationEngine:
    """Runs a completed intake record through the finalization stages.

    Only a rendering failure reaches the caller. Archive failures are logged
    and counted, and mail delivery runs detached on the dispatcher's pool.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        renderer: DocumentRenderer,
        archive: ArchiveStore,
        dispatcher: MailDispatcher,
        metrics: FinalizationMetrics,
    ) -> None:
        self._settings = settings
        self._renderer = renderer
        self._archive = archive
        self._dispatcher = dispatcher
        self._metrics = metrics

    def finalize(self, record: PatientRecord, clinic: ClinicSettings) -> FinalizationResult:
        self._count("submissions_total")
        risk = assess(record.dental.screener)
        patient_name = record.personal.full_name

        started = perf_counter()
        try:
            document = self._renderer.render(record, clinic, risk)
        except RenderingError as exc:
            self._count("render_errors_total")
            log_event(
                logger,
                "intake_render_failed",
                level=logging.ERROR,
                patient_number=record.patient_number,
                error=str(exc),
            )
            raise
        latency_ms = (perf_counter() - started) * 1000.0
        if self._settings.metrics_enabled:
            self._metrics.record_render_latency(latency_ms)

        entry = self._archive_document(document, record, risk)
        filename = entry.filename if entry is not None else document_filename(patient_name, record.submitted_at)

        job = MailJob(
            credentials=clinic.mail,
            recipient=clinic.email,
            patient_name=patient_name,
            document=document,
            filename=filename,
        )
        mail_queued = self._dispatcher.submit(job)

        log_event(
            logger,
            "intake_finalized",
            patient_number=record.patient_number,
            archive_entry_id=entry.id if entry is not None else None,
            risk_tier=risk.tier.value if record.dental.is_aesthetic else None,
            size_bytes=len(document),
            mail_queued=mail_queued,
            latency_ms=round(latency_ms, 3),
        )
        return FinalizationResult(
            document=document,
            risk=risk,
            archive_entry=entry,
            filename=filename,
            mail_queued=mail_queued,
        )

    def _archive_document(self, document: bytes, record: PatientRecord, risk: RiskScore) -> ArchiveEntry | None:
        score = risk.score if record.dental.is_aesthetic else None
        try:
            entry = self._archive.store(document, record.personal.full_name, score)
        except StorageError as exc:
            self._count("archive_errors_total")
            log_event(
                logger,
                "archive_store_failed",
                level=logging.ERROR,
                patient_number=record.patient_number,
                error=str(exc),
            )
            return None
        self._count("archived_documents_total")
        return entry

    def _count(self, name: str) -> None:
        if self._settings.metrics_enabled:
            self._metrics.increment(name)
