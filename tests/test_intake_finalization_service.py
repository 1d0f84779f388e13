"""Tests for intake finalization service HTTP surface."""

import base64
from io import BytesIO
from pathlib import Path
import sys

from fastapi.testclient import TestClient
from PIL import Image
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT / "src"))

from intake_finalization.config import Settings  # noqa: E402
from intake_finalization.context import build_context  # noqa: E402
from intake_finalization.errors import RenderingError  # noqa: E402
from intake_finalization.main import create_app  # noqa: E402


def _signature_b64() -> str:
    buffer = BytesIO()
    Image.new("RGB", (300, 100), "white").save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def _submission(*, first_name: str = "Anna", visit_reason: str = "Aesthetic", language: str = "de") -> dict:
    return {
        "record": {
            "patient_number": "P-3003",
            "language": language,
            "personal": {
                "first_name": first_name,
                "last_name": "Berger",
                "gender": "Female",
                "date_of_birth": "1990-02-01",
            },
            "dental": {
                "visit_reason": visit_reason,
                "aesthetic_sub_type": "Veneers",
                "screener": [1, 1, 1, 1, 1, 1, 3],
            },
            "consents": {"gdpr": True, "driving": True},
            "signature_png": _signature_b64(),
            "submitted_at": "2026-10-19T11:20:00",
        },
        "clinic": {"email": "frontdesk@example.org"},
    }


@pytest.fixture()
def context(tmp_path: Path):
    ctx = build_context(Settings(archive_dir=tmp_path / "archive", archive_max_entries=2))
    yield ctx
    ctx.close()


@pytest.fixture()
def client(context):
    with TestClient(create_app(context)) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["service"] == "intake-finalization-service"


def test_submission_returns_pdf_and_archives_it(client: TestClient) -> None:
    response = client.post("/submissions", json=_submission())

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")
    assert response.headers["x-mail-queued"] == "false"
    assert response.headers["x-risk-score"] == "6"
    entry_id = response.headers["x-archive-entry-id"]

    listing = client.get("/archive").json()["items"]
    assert [item["id"] for item in listing] == [entry_id]
    assert listing[0]["risk_tier"] == "moderate"
    assert listing[0]["score"] == 6
    assert listing[0]["filename"].startswith("PHF_Anna_Berger_")

    document = client.get(f"/archive/{entry_id}/document")
    assert document.status_code == 200
    assert document.content == response.content


def test_archive_listing_respects_retention_cap(client: TestClient) -> None:
    ids = [
        client.post("/submissions", json=_submission(first_name=name)).headers["x-archive-entry-id"]
        for name in ("Anna", "Bea", "Clara")
    ]

    listing = client.get("/archive").json()["items"]
    assert [item["id"] for item in listing] == [ids[2], ids[1]]
    assert client.get(f"/archive/{ids[0]}/document").status_code == 404


def test_delete_archive_entry(client: TestClient) -> None:
    entry_id = client.post("/submissions", json=_submission()).headers["x-archive-entry-id"]

    deleted = client.delete(f"/archive/{entry_id}")
    assert deleted.status_code == 200
    assert deleted.json() == {"entry_id": entry_id, "deleted": True}
    assert client.get("/archive").json()["items"] == []

    again = client.delete(f"/archive/{entry_id}")
    assert again.status_code == 404
    assert again.json()["error"]["code"] == "NOT_FOUND"


def test_unknown_entry_document_is_404(client: TestClient) -> None:
    response = client.get("/archive/does-not-exist/document")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_invalid_submission_returns_validation_envelope(client: TestClient) -> None:
    payload = _submission()
    payload["record"]["dental"]["screener"] = [1, 2, 3]

    response = client.post("/submissions", json=payload)

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "UNPROCESSABLE_ENTITY"
    assert any("screener" in detail["field"] for detail in error["details"])


def test_invalid_base64_signature_is_rejected(client: TestClient) -> None:
    payload = _submission()
    payload["record"]["signature_png"] = "***not base64***"
    assert client.post("/submissions", json=payload).status_code == 422


def test_rendering_failure_maps_to_error_envelope(context, client: TestClient, monkeypatch) -> None:
    def _fail(*args, **kwargs):
        raise RenderingError("broken font")

    monkeypatch.setattr(context.engine._renderer, "render", _fail)

    response = client.post("/submissions", json=_submission())

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "RENDERING_FAILED"
    assert client.get("/archive").json()["items"] == []


def test_metrics_endpoint(client: TestClient) -> None:
    client.post("/submissions", json=_submission())

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "kiosk_intake_finalization_submissions_total 1" in response.text
    assert "kiosk_intake_finalization_archived_documents_total 1" in response.text
    assert "kiosk_intake_finalization_mail_skipped_total 1" in response.text
    assert "kiosk_intake_finalization_render_latency_ms_count 1" in response.text


def test_metrics_endpoint_can_be_disabled(tmp_path: Path) -> None:
    ctx = build_context(Settings(archive_dir=tmp_path / "archive", metrics_enabled=False))
    try:
        with TestClient(create_app(ctx)) as test_client:
            assert test_client.get("/metrics").status_code == 404
    finally:
        ctx.close()


def test_non_ascii_filename_is_encoded_in_content_disposition(client: TestClient) -> None:
    response = client.post("/submissions", json=_submission(first_name="Jürgen"))

    assert response.status_code == 200
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('inline; filename="PHF_Jurgen_Berger_')
    assert "filename*=UTF-8''PHF_J%C3%BCrgen_Berger_" in disposition

    entry_id = response.headers["x-archive-entry-id"]
    assert client.get("/archive").json()["items"][0]["filename"].startswith("PHF_Jürgen_Berger_")
    document = client.get(f"/archive/{entry_id}/document")
    assert document.headers["content-disposition"] == disposition


def test_cyrillic_record_without_unicode_font_is_refused(client: TestClient) -> None:
    response = client.post("/submissions", json=_submission(language="ru"))

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "RENDERING_FAILED"
    assert client.get("/archive").json()["items"] == []
