"""Tests for the finalization pipeline."""

from concurrent.futures import Executor, Future
from datetime import datetime
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT / "src"))

from intake_finalization.archive import ArchiveStore  # noqa: E402
from intake_finalization.config import Settings  # noqa: E402
from intake_finalization.engine import IntakeFinalizationEngine  # noqa: E402
from intake_finalization.errors import RenderingError  # noqa: E402
from intake_finalization.mail import DeliveryOutcome, MailClient, MailDispatcher, MailJob  # noqa: E402
from intake_finalization.observability import FinalizationMetrics  # noqa: E402
from intake_finalization.rendering import DocumentRenderer  # noqa: E402
from intake_finalization.schemas import (  # noqa: E402
    ClinicSettings,
    DentalHistoryInfo,
    MailCredentials,
    PatientRecord,
    PersonalInfo,
    VisitReason,
)
from intake_finalization.scoring import RiskTier  # noqa: E402


class ImmediateExecutor(Executor):
    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


class RecordingClient(MailClient):
    def __init__(self) -> None:
        super().__init__()
        self.jobs: list[MailJob] = []

    def deliver(self, job: MailJob) -> DeliveryOutcome:
        self.jobs.append(job)
        return DeliveryOutcome.DELIVERED


class FailingRenderer(DocumentRenderer):
    def render(self, record, clinic, risk):
        raise RenderingError("font table unavailable")


def _record(visit_reason: VisitReason = VisitReason.AESTHETIC) -> PatientRecord:
    return PatientRecord(
        patient_number="P-2001",
        language="en",
        personal=PersonalInfo(first_name="Lena", last_name="Novak"),
        dental=DentalHistoryInfo(visit_reason=visit_reason, screener=(2, 2, 2, 2, 2, 2, 1)),
        submitted_at=datetime(2026, 10, 19, 14, 5),
    )


def _clinic(enabled: bool = True) -> ClinicSettings:
    return ClinicSettings(
        email="frontdesk@example.org",
        mail=MailCredentials(
            enabled=enabled,
            host="relay.example.org",
            username="kiosk@example.org",
            password="s3cret",
        ),
    )


def _engine(archive_dir: Path, *, renderer: DocumentRenderer | None = None):
    metrics = FinalizationMetrics()
    client = RecordingClient()
    archive = ArchiveStore(archive_dir, clock=lambda: datetime(2026, 10, 19, 14, 5), metrics=metrics)
    engine = IntakeFinalizationEngine(
        settings=Settings(archive_dir=archive_dir),
        renderer=renderer or DocumentRenderer(),
        archive=archive,
        dispatcher=MailDispatcher(client, executor=ImmediateExecutor(), metrics=metrics),
        metrics=metrics,
    )
    return engine, archive, client, metrics


def test_aesthetic_submission_is_rendered_archived_and_mailed(tmp_path: Path) -> None:
    engine, archive, client, metrics = _engine(tmp_path / "archive")

    result = engine.finalize(_record(), _clinic())

    assert result.document.startswith(b"%PDF")
    assert result.risk.score == 14
    assert result.risk.tier is RiskTier.ELEVATED
    assert result.archive_entry is not None
    assert result.archive_entry.score == 14
    assert result.archive_entry.risk_tier is RiskTier.ELEVATED
    assert archive.get_document(result.archive_entry) == result.document
    assert result.mail_queued is True

    assert len(client.jobs) == 1
    job = client.jobs[0]
    assert job.document == result.document
    assert job.filename == result.archive_entry.filename == "PHF_Lena_Novak_20261019_1405.pdf"
    assert job.recipient == "frontdesk@example.org"
    assert job.patient_name == "Lena Novak"

    assert metrics.value("submissions_total") == 1
    assert metrics.value("archived_documents_total") == 1
    assert metrics.value("mail_delivered_total") == 1
    assert metrics.render_latency_ms_count == 1


def test_non_aesthetic_submission_archives_without_score(tmp_path: Path) -> None:
    engine, _, _, _ = _engine(tmp_path / "archive")

    result = engine.finalize(_record(VisitReason.CHECKUP), _clinic())

    assert result.risk.score == 14
    assert result.archive_entry is not None
    assert result.archive_entry.score is None
    assert result.archive_entry.risk_tier is None


def test_disabled_mail_is_skipped_not_failed(tmp_path: Path) -> None:
    engine, _, client, metrics = _engine(tmp_path / "archive")

    result = engine.finalize(_record(), _clinic(enabled=False))

    assert result.mail_queued is False
    assert result.archive_entry is not None
    assert client.jobs == []
    assert metrics.value("mail_skipped_total") == 1


def test_archive_failure_is_contained_and_mail_still_sent(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    engine, _, client, metrics = _engine(blocker / "archive")

    with caplog.at_level("ERROR"):
        result = engine.finalize(_record(), _clinic())

    assert result.archive_entry is None
    assert result.document.startswith(b"%PDF")
    assert result.filename == "PHF_Lena_Novak_20261019_1405.pdf"
    assert metrics.value("archive_errors_total") == 1
    assert "archive_store_failed" in caplog.text
    assert len(client.jobs) == 1
    assert client.jobs[0].filename == result.filename


def test_rendering_failure_propagates_and_stops_pipeline(tmp_path: Path) -> None:
    engine, archive, client, metrics = _engine(tmp_path / "archive", renderer=FailingRenderer())

    with pytest.raises(RenderingError):
        engine.finalize(_record(), _clinic())

    assert archive.load_manifest() == []
    assert client.jobs == []
    assert metrics.value("render_errors_total") == 1
