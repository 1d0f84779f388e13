"""Tests for the SMTP client and the fire-and-forget dispatcher."""

import base64
from concurrent.futures import Executor, Future
from email import message_from_bytes
from email.policy import default
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT / "src"))

from intake_finalization.errors import MailError  # noqa: E402
from intake_finalization.mail import (  # noqa: E402
    DeliveryOutcome,
    MailClient,
    MailDispatcher,
    MailJob,
    Reply,
    build_message,
    dot_stuff,
    mail_configured,
    parse_reply_line,
)
from intake_finalization.observability import FinalizationMetrics  # noqa: E402
from intake_finalization.schemas import MailCredentials  # noqa: E402


PDF = b"%PDF-1.4\n" + bytes(range(256)) * 8 + b"\n%%EOF\n"

HAPPY_REPLIES = [
    Reply(220, ("relay.example.org ESMTP",)),
    Reply(250, ("relay.example.org", "AUTH LOGIN PLAIN", "SIZE 35882577")),
    Reply(334, ("VXNlcm5hbWU6",)),
    Reply(334, ("UGFzc3dvcmQ6",)),
    Reply(235, ("2.7.0 Authentication successful",)),
    Reply(250, ("2.1.0 Ok",)),
    Reply(250, ("2.1.5 Ok",)),
    Reply(354, ("End data with <CR><LF>.<CR><LF>",)),
    Reply(250, ("2.0.0 Ok: queued",)),
]


class FakeTransport:
    def __init__(self, replies: list[Reply], *, fail_on_send: int | None = None) -> None:
        self._replies = list(replies)
        self._fail_on_send = fail_on_send
        self.sent: list[bytes] = []
        self.closed = False

    def send(self, data: bytes) -> None:
        if self._fail_on_send is not None and len(self.sent) == self._fail_on_send:
            raise ConnectionResetError("peer reset")
        self.sent.append(data)

    def read_reply(self) -> Reply:
        if not self._replies:
            raise MailError("connection closed while waiting for reply")
        return self._replies.pop(0)

    def close(self) -> None:
        self.closed = True

    @property
    def commands(self) -> list[str]:
        return [data.decode("utf-8").rstrip("\r\n") for data in self.sent if len(data) < 512]


class FakeFactory:
    def __init__(self, transport: FakeTransport | None = None, error: Exception | None = None) -> None:
        self.transport = transport
        self.error = error
        self.calls: list[tuple[str, int, float]] = []

    def __call__(self, host: str, port: int, timeout: float) -> FakeTransport:
        self.calls.append((host, port, timeout))
        if self.error is not None:
            raise self.error
        return self.transport


class ImmediateExecutor(Executor):
    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


def _credentials(**overrides) -> MailCredentials:
    values = {
        "enabled": True,
        "host": "relay.example.org",
        "port": 465,
        "username": "kiosk@example.org",
        "password": "s3cret",
    }
    values.update(overrides)
    return MailCredentials(**values)


def _job(**overrides) -> MailJob:
    values = {
        "credentials": _credentials(),
        "recipient": "frontdesk@example.org",
        "patient_name": "Anna Berger",
        "document": PDF,
        "filename": "PHF_Anna_Berger_20261019_1015.pdf",
    }
    values.update(overrides)
    return MailJob(**values)


def test_full_command_sequence_delivers() -> None:
    transport = FakeTransport(HAPPY_REPLIES)
    factory = FakeFactory(transport)
    client = MailClient(transport_factory=factory, helo_name="localhost", timeout_seconds=12.0)

    outcome = client.deliver(_job())

    assert outcome is DeliveryOutcome.DELIVERED
    assert factory.calls == [("relay.example.org", 465, 12.0)]
    assert transport.commands[:7] == [
        "EHLO localhost",
        "AUTH LOGIN",
        base64.b64encode(b"kiosk@example.org").decode(),
        base64.b64encode(b"s3cret").decode(),
        "MAIL FROM:<kiosk@example.org>",
        "RCPT TO:<frontdesk@example.org>",
        "DATA",
    ]
    assert transport.sent[-2].endswith(b"\r\n.\r\n")
    assert transport.sent[-1] == b"QUIT\r\n"
    assert transport.closed


def test_attachment_round_trips_byte_identical() -> None:
    transport = FakeTransport(HAPPY_REPLIES)
    MailClient(transport_factory=FakeFactory(transport)).deliver(_job())

    payload = transport.sent[-2][: -len(b".\r\n")].replace(b"\r\n..", b"\r\n.")
    message = message_from_bytes(payload, policy=default)

    assert message["Subject"] == "Patient History Form - Anna Berger"
    assert message["From"] == "kiosk@example.org"
    assert message["To"] == "frontdesk@example.org"
    assert message["MIME-Version"] == "1.0"
    assert message.get_content_type() == "multipart/mixed"
    attachments = list(message.iter_attachments())
    assert len(attachments) == 1
    assert attachments[0].get_content_type() == "application/pdf"
    assert attachments[0].get_filename() == "PHF_Anna_Berger_20261019_1015.pdf"
    assert attachments[0].get_content() == PDF
    assert message.get_body(preferencelist=("plain",)).get_content().strip() == (
        "Please find the patient history form attached."
    )


def test_non_success_greeting_aborts_before_hello() -> None:
    transport = FakeTransport([Reply(554, ("no service",))])
    outcome = MailClient(transport_factory=FakeFactory(transport)).deliver(_job())

    assert outcome is DeliveryOutcome.REJECTED
    assert transport.sent == []
    assert transport.closed


def test_failed_authentication_stops_before_mail_from() -> None:
    replies = HAPPY_REPLIES[:4] + [Reply(535, ("5.7.8 Authentication failed",))]
    transport = FakeTransport(replies)
    outcome = MailClient(transport_factory=FakeFactory(transport)).deliver(_job())

    assert outcome is DeliveryOutcome.REJECTED
    assert not any(command.startswith("MAIL FROM") for command in transport.commands)
    assert transport.closed


def test_transport_error_mid_sequence_fails_silently() -> None:
    transport = FakeTransport(HAPPY_REPLIES, fail_on_send=3)
    outcome = MailClient(transport_factory=FakeFactory(transport)).deliver(_job())

    assert outcome is DeliveryOutcome.FAILED
    assert len(transport.sent) == 3
    assert transport.closed


def test_connection_failure_fails_silently() -> None:
    factory = FakeFactory(error=TimeoutError("timed out"))
    assert MailClient(transport_factory=factory).deliver(_job()) is DeliveryOutcome.FAILED


def test_unencodable_host_fails_silently() -> None:
    host = "a" * 64 + ".example"
    factory = FakeFactory(error=UnicodeError("encoding with 'idna' codec failed (UnicodeError: label too long)"))
    metrics = FinalizationMetrics()
    dispatcher = MailDispatcher(MailClient(transport_factory=factory), executor=ImmediateExecutor(), metrics=metrics)

    assert dispatcher.submit(_job(credentials=_credentials(host=host))) is True

    assert factory.calls == [(host, 465, 30.0)]
    assert metrics.value("mail_failed_total") == 1
    assert metrics.value("mail_delivered_total") == 0


def test_data_rejected_by_relay() -> None:
    replies = HAPPY_REPLIES[:-1] + [Reply(552, ("message too large",))]
    outcome = MailClient(transport_factory=FakeFactory(FakeTransport(replies))).deliver(_job())
    assert outcome is DeliveryOutcome.REJECTED


def test_dot_stuffing_escapes_leading_dots() -> None:
    assert dot_stuff(b"line one\r\n.hidden\r\n..two") == b"line one\r\n..hidden\r\n...two\r\n.\r\n"
    assert dot_stuff(b".start\r\n") == b"..start\r\n.\r\n"


def test_reply_line_parsing() -> None:
    assert parse_reply_line(b"250-SIZE 1000\r\n") == (250, False, "SIZE 1000")
    assert parse_reply_line(b"250 OK\r\n") == (250, True, "OK")
    assert parse_reply_line(b"220\r\n") == (220, True, "")
    with pytest.raises(MailError):
        parse_reply_line(b"hello\r\n")


def test_message_headers() -> None:
    message = build_message(_job())
    assert message["Message-ID"]
    assert message["Date"]
    assert message.is_multipart()


@pytest.mark.parametrize(
    ("credentials", "recipient"),
    [
        (_credentials(enabled=False), "frontdesk@example.org"),
        (_credentials(host=""), "frontdesk@example.org"),
        (_credentials(username=""), "frontdesk@example.org"),
        (_credentials(password=""), "frontdesk@example.org"),
        (_credentials(), ""),
    ],
)
def test_incomplete_configuration_makes_no_connection(credentials: MailCredentials, recipient: str) -> None:
    factory = FakeFactory(FakeTransport(HAPPY_REPLIES))
    metrics = FinalizationMetrics()
    dispatcher = MailDispatcher(
        MailClient(transport_factory=factory),
        executor=ImmediateExecutor(),
        metrics=metrics,
    )

    queued = dispatcher.submit(_job(credentials=credentials, recipient=recipient))

    assert queued is False
    assert factory.calls == []
    assert not mail_configured(credentials, recipient)
    assert metrics.value("mail_skipped_total") == 1
    assert metrics.value("mail_queued_total") == 0


def test_dispatcher_records_outcomes_in_metrics() -> None:
    metrics = FinalizationMetrics()
    delivered = MailDispatcher(
        MailClient(transport_factory=FakeFactory(FakeTransport(HAPPY_REPLIES))),
        executor=ImmediateExecutor(),
        metrics=metrics,
    )
    failed = MailDispatcher(
        MailClient(transport_factory=FakeFactory(error=ConnectionRefusedError())),
        executor=ImmediateExecutor(),
        metrics=metrics,
    )

    assert delivered.submit(_job()) is True
    assert failed.submit(_job()) is True

    assert metrics.value("mail_queued_total") == 2
    assert metrics.value("mail_delivered_total") == 1
    assert metrics.value("mail_failed_total") == 1


def test_thread_pool_dispatch_runs_in_background() -> None:
    transport = FakeTransport(HAPPY_REPLIES)
    dispatcher = MailDispatcher(MailClient(transport_factory=FakeFactory(transport)), max_workers=1)

    assert dispatcher.submit(_job()) is True
    dispatcher.shutdown(wait=True)

    assert transport.sent[-1] == b"QUIT\r\n"


def test_credentials_repr_hides_password() -> None:
    assert "s3cret" not in repr(_credentials())
