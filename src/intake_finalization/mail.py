"""Best-effort delivery of finalized documents over implicit-TLS SMTP.

Delivery is fire-and-forget: ``MailDispatcher.submit`` hands a job to a
worker pool and returns immediately. Nothing is retried and nothing is
reported back to the submitter; the archived document is the record of
truth, so delivery outcomes only reach the metrics.
"""

from __future__ import annotations

import base64
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.policy import SMTP
from email.utils import formatdate, make_msgid
from enum import Enum
import re
import socket
import ssl
from typing import Protocol

from .errors import MailError
from .observability import FinalizationMetrics
from .schemas import MailCredentials


MESSAGE_BODY = "Please find the patient history form attached."
_DOT_LINE = re.compile(rb"(?m)^\.")


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class Reply:
    """One complete SMTP reply, continuation lines included."""

    code: int
    lines: tuple[str, ...]

    @property
    def positive(self) -> bool:
        return 200 <= self.code < 300

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True)
class MailJob:
    """Everything one delivery attempt needs; owned by a single worker."""

    credentials: MailCredentials
    recipient: str
    patient_name: str
    document: bytes = field(repr=False)
    filename: str


class MailTransport(Protocol):
    def send(self, data: bytes) -> None: ...

    def read_reply(self) -> Reply: ...

    def close(self) -> None: ...


TransportFactory = Callable[[str, int, float], MailTransport]


def parse_reply_line(line: bytes) -> tuple[int, bool, str]:
    """Split one reply line into (code, is_last, text)."""

    text = line.decode("utf-8", errors="replace").rstrip("\r\n")
    if len(text) < 3 or not text[:3].isdigit():
        raise MailError(f"malformed reply line: {text!r}")
    separator = text[3:4]
    if separator not in ("", " ", "-"):
        raise MailError(f"malformed reply line: {text!r}")
    return int(text[:3]), separator != "-", text[4:]


class TlsTransport:
    """Implicitly encrypted socket connection to a mail relay."""

    def __init__(self, sock: ssl.SSLSocket) -> None:
        self._sock = sock
        self._reader = sock.makefile("rb")

    @classmethod
    def open(cls, host: str, port: int, timeout: float) -> TlsTransport:
        context = ssl.create_default_context()
        raw = socket.create_connection((host, port), timeout=timeout)
        try:
            return cls(context.wrap_socket(raw, server_hostname=host))
        except BaseException:
            raw.close()
            raise

    def send(self, data: bytes) -> None:
        self._sock.sendall(data)

    def read_reply(self) -> Reply:
        lines: list[str] = []
        while True:
            raw = self._reader.readline(8192)
            if not raw:
                raise MailError("connection closed while waiting for reply")
            code, last, text = parse_reply_line(raw)
            lines.append(text)
            if last:
                return Reply(code=code, lines=tuple(lines))

    def close(self) -> None:
        try:
            self._reader.close()
        finally:
            self._sock.close()


def mail_configured(credentials: MailCredentials, recipient: str) -> bool:
    """Gating check: delivery is attempted only with complete configuration."""

    return bool(
        credentials.enabled
        and credentials.host
        and credentials.username
        and credentials.password
        and recipient
    )


def build_message(job: MailJob) -> EmailMessage:
    message = EmailMessage(policy=SMTP)
    message["From"] = job.credentials.username
    message["To"] = job.recipient
    message["Subject"] = f"Patient History Form - {job.patient_name}"
    message["Date"] = formatdate(localtime=True)
    message["Message-ID"] = make_msgid()
    message.set_content(MESSAGE_BODY)
    message.add_attachment(
        job.document,
        maintype="application",
        subtype="pdf",
        filename=job.filename,
    )
    return message


def dot_stuff(payload: bytes) -> bytes:
    """Escape leading dots and append the end-of-data marker."""

    stuffed = _DOT_LINE.sub(b"..", payload)
    if not stuffed.endswith(b"\r\n"):
        stuffed += b"\r\n"
    return stuffed + b".\r\n"


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class MailClient:
    """Runs the SMTP command sequence for one job per call."""

    def __init__(
        self,
        *,
        transport_factory: TransportFactory = TlsTransport.open,
        helo_name: str = "localhost",
        timeout_seconds: float = 30.0,
    ) -> None:
        self._transport_factory = transport_factory
        self._helo_name = helo_name
        self._timeout_seconds = timeout_seconds

    def deliver(self, job: MailJob) -> DeliveryOutcome:
        """Attempt delivery; failures become an outcome, never an exception."""

        try:
            transport = self._transport_factory(job.credentials.host, job.credentials.port, self._timeout_seconds)
        except (OSError, MailError, ValueError):
            return DeliveryOutcome.FAILED

        try:
            return self._converse(transport, job)
        except (OSError, MailError, ValueError):
            return DeliveryOutcome.FAILED
        finally:
            try:
                transport.close()
            except OSError:
                pass

    def _converse(self, transport: MailTransport, job: MailJob) -> DeliveryOutcome:
        if not transport.read_reply().positive:
            return DeliveryOutcome.REJECTED

        self._command(transport, f"EHLO {self._helo_name}")
        self._command(transport, "AUTH LOGIN")
        self._command(transport, _b64(job.credentials.username))
        if self._command(transport, _b64(job.credentials.password)).code != 235:
            return DeliveryOutcome.REJECTED

        self._command(transport, f"MAIL FROM:<{job.credentials.username}>")
        self._command(transport, f"RCPT TO:<{job.recipient}>")
        self._command(transport, "DATA")
        transport.send(dot_stuff(build_message(job).as_bytes()))
        accepted = transport.read_reply().positive
        transport.send(b"QUIT\r\n")
        return DeliveryOutcome.DELIVERED if accepted else DeliveryOutcome.REJECTED

    @staticmethod
    def _command(transport: MailTransport, line: str) -> Reply:
        transport.send(f"{line}\r\n".encode("utf-8"))
        return transport.read_reply()


class MailDispatcher:
    """Queues delivery jobs on a worker pool with no return channel."""

    def __init__(
        self,
        client: MailClient,
        *,
        executor: Executor | None = None,
        max_workers: int = 2,
        metrics: FinalizationMetrics | None = None,
    ) -> None:
        self._client = client
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(max_workers, 1),
            thread_name_prefix="intake-mail",
        )
        self._metrics = metrics

    def submit(self, job: MailJob) -> bool:
        """Queue ``job``; returns False without any network activity when unconfigured."""

        if not mail_configured(job.credentials, job.recipient):
            self._count("mail_skipped_total")
            return False
        self._executor.submit(self._run, job)
        self._count("mail_queued_total")
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, job: MailJob) -> DeliveryOutcome:
        outcome = self._client.deliver(job)
        if outcome is DeliveryOutcome.DELIVERED:
            self._count("mail_delivered_total")
        else:
            self._count("mail_failed_total")
        return outcome

    def _count(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(name)
