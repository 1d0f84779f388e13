"""Error taxonomy for the finalization pipeline and HTTP error envelopes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi.responses import JSONResponse


class IntakeFinalizationError(Exception):
    """Base error for the finalization pipeline."""


class RenderingError(IntakeFinalizationError):
    """Raised when a record cannot be turned into a document; fatal to the submission."""


class StorageError(IntakeFinalizationError):
    """Raised on archive file or manifest I/O failure."""


class MailError(IntakeFinalizationError):
    """Raised inside the mail client when the protocol sequence cannot continue."""


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    """Build standard error envelope response."""

    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "request_id": f"req_{uuid4().hex[:24]}",
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        }
    }
    if details:
        payload["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=payload)
