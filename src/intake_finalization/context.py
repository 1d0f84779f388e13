"""Lifecycle-scoped service components shared by the HTTP surface."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from fastapi import Request

from .archive import ArchiveStore
from .config import Settings
from .engine import IntakeFinalizationEngine
from .mail import MailClient, MailDispatcher
from .observability import FinalizationMetrics, log_event
from .rendering import DocumentFonts, DocumentRenderer


logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    settings: Settings
    metrics: FinalizationMetrics
    archive: ArchiveStore
    dispatcher: MailDispatcher
    engine: IntakeFinalizationEngine

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)


def build_context(settings: Settings) -> ServiceContext:
    """Wire the pipeline components from settings."""

    metrics = FinalizationMetrics()
    counted = metrics if settings.metrics_enabled else None
    if settings.document_font_path:
        fonts = DocumentFonts.from_ttf(settings.document_font_path)
    else:
        fonts = DocumentFonts()
        log_event(
            logger,
            "document_font_builtin",
            level=logging.WARNING,
            detail="records in ru or ar will fail to render until document_font_path is set",
        )
    archive = ArchiveStore(
        settings.archive_dir,
        max_entries=settings.archive_max_entries,
        metrics=counted,
    )
    dispatcher = MailDispatcher(
        MailClient(helo_name=settings.mail_helo_name, timeout_seconds=settings.mail_timeout_seconds),
        max_workers=settings.mail_worker_count,
        metrics=counted,
    )
    engine = IntakeFinalizationEngine(
        settings=settings,
        renderer=DocumentRenderer(fonts=fonts),
        archive=archive,
        dispatcher=dispatcher,
        metrics=metrics,
    )
    return ServiceContext(
        settings=settings,
        metrics=metrics,
        archive=archive,
        dispatcher=dispatcher,
        engine=engine,
    )


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context
