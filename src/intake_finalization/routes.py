"""HTTP routes for intake finalization service."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import unicodedata
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse, Response

from .context import ServiceContext, get_context
from .errors import StorageError
from .observability import log_event
from .schemas import (
    ArchiveEntry,
    ArchiveListResponse,
    DeleteArchiveEntryResponse,
    HealthResponse,
    SubmissionRequest,
)


router = APIRouter()
logger = logging.getLogger(__name__)


def _require_entry(context: ServiceContext, entry_id: str) -> ArchiveEntry:
    entry = context.archive.get_entry(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"archive entry not found: {entry_id}")
    return entry


def _content_disposition(filename: str) -> str:
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    return f"inline; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.get("/health", response_model=HealthResponse)
def health(context: ServiceContext = Depends(get_context)) -> HealthResponse:
    return HealthResponse(
        service=context.settings.service_name,
        version=context.settings.service_version,
        timestamp=datetime.now(tz=timezone.utc),
    )


@router.get("/metrics", response_class=PlainTextResponse)
def metrics(context: ServiceContext = Depends(get_context)) -> str:
    if not context.settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="metrics endpoint disabled")
    return context.metrics.render_prometheus()


@router.post("/submissions")
def submit_intake(payload: SubmissionRequest, context: ServiceContext = Depends(get_context)) -> Response:
    result = context.engine.finalize(payload.record, payload.clinic)
    headers = {
        "Content-Disposition": _content_disposition(result.filename),
        "X-Mail-Queued": "true" if result.mail_queued else "false",
        "X-Risk-Score": str(result.risk.score),
    }
    if result.archive_entry is not None:
        headers["X-Archive-Entry-Id"] = result.archive_entry.id
    return Response(content=result.document, media_type="application/pdf", headers=headers)


@router.get("/archive", response_model=ArchiveListResponse)
def list_archive(context: ServiceContext = Depends(get_context)) -> ArchiveListResponse:
    return ArchiveListResponse(items=context.archive.load_manifest())


@router.get("/archive/{entry_id}/document")
def get_archived_document(entry_id: str, context: ServiceContext = Depends(get_context)) -> Response:
    entry = _require_entry(context, entry_id)
    document = context.archive.get_document(entry)
    if document is None:
        raise HTTPException(status_code=404, detail=f"archived document missing: {entry.filename}")
    return Response(
        content=document,
        media_type="application/pdf",
        headers={"Content-Disposition": _content_disposition(entry.filename)},
    )


@router.delete("/archive/{entry_id}", response_model=DeleteArchiveEntryResponse)
def delete_archive_entry(entry_id: str, context: ServiceContext = Depends(get_context)) -> DeleteArchiveEntryResponse:
    entry = _require_entry(context, entry_id)
    try:
        context.archive.delete(entry)
    except StorageError as exc:
        log_event(logger, "archive_delete_failed", level=logging.ERROR, entry_id=entry_id, error=str(exc))
        raise HTTPException(status_code=500, detail="archive entry could not be deleted") from exc
    return DeleteArchiveEntryResponse(entry_id=entry_id)
