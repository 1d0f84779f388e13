"""Structured logging and in-memory metrics for intake finalization service."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from threading import Lock
from typing import Any


_METRIC_PREFIX = "kiosk_intake_finalization"

_COUNTERS: tuple[tuple[str, str], ...] = (
    ("submissions_total", "Total finalized intake submissions."),
    ("render_errors_total", "Submissions aborted by a rendering failure."),
    ("archived_documents_total", "Documents written to the local archive."),
    ("archive_errors_total", "Archive writes that failed and were contained."),
    ("archive_evictions_total", "Archive entries evicted by the retention cap."),
    ("mail_queued_total", "Delivery attempts handed to the mail worker pool."),
    ("mail_skipped_total", "Delivery attempts skipped for missing mail configuration."),
    ("mail_delivered_total", "Delivery attempts accepted by the relay."),
    ("mail_failed_total", "Delivery attempts aborted or rejected."),
)


def configure_logging(level: str) -> None:
    """Configure service logging format once."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured JSON log line."""

    payload = {
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "event": event,
        **fields,
    }
    logger.log(level, json.dumps(payload, default=str, separators=(",", ":")))


class FinalizationMetrics:
    """Thread-safe in-memory metrics collector."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._counters = {name: 0 for name, _ in _COUNTERS}
            self.render_latency_ms_sum = 0.0
            self.render_latency_ms_count = 0

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            if name not in self._counters:
                raise KeyError(f"unknown counter: {name}")
            self._counters[name] += amount

    def value(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def record_render_latency(self, latency_ms: float) -> None:
        with self._lock:
            self.render_latency_ms_sum += max(latency_ms, 0.0)
            self.render_latency_ms_count += 1

    def render_prometheus(self) -> str:
        with self._lock:
            lines: list[str] = []
            for name, help_text in _COUNTERS:
                metric = f"{_METRIC_PREFIX}_{name}"
                lines.extend(
                    [
                        f"# HELP {metric} {help_text}",
                        f"# TYPE {metric} counter",
                        f"{metric} {self._counters[name]}",
                    ]
                )
            lines.extend(
                [
                    f"# HELP {_METRIC_PREFIX}_render_latency_ms_sum Sum of render latency in milliseconds.",
                    f"# TYPE {_METRIC_PREFIX}_render_latency_ms_sum counter",
                    f"{_METRIC_PREFIX}_render_latency_ms_sum {self.render_latency_ms_sum:.3f}",
                    f"# HELP {_METRIC_PREFIX}_render_latency_ms_count Number of render latency observations.",
                    f"# TYPE {_METRIC_PREFIX}_render_latency_ms_count counter",
                    f"{_METRIC_PREFIX}_render_latency_ms_count {self.render_latency_ms_count}",
                ]
            )
        return "\n".join(lines) + "\n"
