import asyncio
import json
import logging

import httpx

from app.config import Settings
from app.schemas.uploads import UploadCompletedPayload, UploadedBlob
from app.services import upload_completion
from app.services.upload_completion import (
    build_backend_notification,
    build_notification_headers,
    build_request_origin,
    decode_token_payload,
    process_completed_upload,
    resolve_backend_origin,
)

_BLOB_URL = "https://s3.example.com/temp-uploads/uploads/a-abc123.pdf"


class _FakeS3Client:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.deleted: list[tuple[str, str]] = []

    def delete_object(self, Bucket: str, Key: str):
        if self.fail:
            raise RuntimeError("access denied")
        self.deleted.append((Bucket, Key))
        return {}


def _settings(**overrides) -> Settings:
    values = {"s3_bucket": "temp-uploads", "s3_endpoint_url": "https://s3.example.com"}
    values.update(overrides)
    return Settings(**values)


def _event(token_payload: str | None) -> UploadCompletedPayload:
    return UploadCompletedPayload(
        blob=UploadedBlob(url=_BLOB_URL, pathname="uploads/a-abc123.pdf"),
        token_payload=token_payload,
    )


def _install_backend(monkeypatch, handler) -> None:
    monkeypatch.setattr(
        upload_completion,
        "_create_backend_http_client",
        lambda timeout: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_decode_token_payload_defaults_to_empty_object():
    assert decode_token_payload(None) == {}
    assert decode_token_payload("{broken") == {}
    assert decode_token_payload('{"originalFilename": "a.pdf"}') == {"originalFilename": "a.pdf"}


def test_resolve_backend_origin_prefers_request_then_deployment_then_local():
    settings = _settings(deployment_hostname="preview.example.app", local_origin="http://localhost:3000")

    assert resolve_backend_origin("http://edge.local:3000/", settings) == "http://edge.local:3000"
    assert resolve_backend_origin(None, settings) == "https://preview.example.app"
    assert resolve_backend_origin(None, _settings()) == "http://localhost:3000"


def test_build_backend_notification_uses_original_filename_or_pathname():
    blob = UploadedBlob(url=_BLOB_URL, pathname="uploads/a-abc123.pdf")

    assert build_backend_notification(blob, {"originalFilename": "a.pdf"}).filename == "a.pdf"
    assert build_backend_notification(blob, {}).filename == "uploads/a-abc123.pdf"


def test_build_notification_headers_adds_bypass_only_when_configured():
    assert build_notification_headers(_settings()) == {"Content-Type": "application/json"}
    assert build_notification_headers(_settings(protection_bypass_secret="shh"))["x-vercel-protection-bypass"] == "shh"


def test_process_completed_upload_notifies_backend_then_deletes(monkeypatch):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"document_id": "doc-1"})

    _install_backend(monkeypatch, handler)
    s3_client = _FakeS3Client()

    outcome = asyncio.run(
        process_completed_upload(
            event=_event(json.dumps({"pathname": "a.pdf", "originalFilename": "a.pdf"})),
            request_origin="https://edge.example.com",
            settings=_settings(protection_bypass_secret="shh"),
            s3_client=s3_client,
        )
    )

    assert outcome.notified is True
    assert outcome.deleted is True
    assert outcome.error is None
    assert len(requests) == 1
    assert str(requests[0].url) == "https://edge.example.com/backend/upload-from-url"
    assert requests[0].headers["x-vercel-protection-bypass"] == "shh"
    assert json.loads(requests[0].content) == {"url": _BLOB_URL, "filename": "a.pdf"}
    assert s3_client.deleted == [("temp-uploads", "uploads/a-abc123.pdf")]


def test_process_completed_upload_sends_pathname_without_token_payload(monkeypatch):
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    _install_backend(monkeypatch, handler)

    asyncio.run(
        process_completed_upload(
            event=_event(None),
            request_origin=None,
            settings=_settings(),
            s3_client=_FakeS3Client(),
        )
    )

    assert bodies == [{"url": _BLOB_URL, "filename": "uploads/a-abc123.pdf"}]


def test_process_completed_upload_keeps_object_when_backend_fails(monkeypatch, caplog):
    _install_backend(monkeypatch, lambda request: httpx.Response(502, text="bad gateway"))
    s3_client = _FakeS3Client()

    with caplog.at_level(logging.ERROR, logger="app.services.upload_completion"):
        outcome = asyncio.run(
            process_completed_upload(
                event=_event(None),
                request_origin="https://edge.example.com",
                settings=_settings(),
                s3_client=s3_client,
            )
        )

    assert outcome.notified is False
    assert outcome.deleted is False
    assert "502" in outcome.error
    assert s3_client.deleted == []
    assert "Backend processing failed" in caplog.text


def test_process_completed_upload_aborts_after_timeout(monkeypatch, caplog):
    async def slow_handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    _install_backend(monkeypatch, slow_handler)
    s3_client = _FakeS3Client()

    with caplog.at_level(logging.ERROR, logger="app.services.upload_completion"):
        outcome = asyncio.run(
            process_completed_upload(
                event=_event(None),
                request_origin="https://edge.example.com",
                settings=_settings(notify_timeout_sec=0.05),
                s3_client=s3_client,
            )
        )

    assert outcome.notified is False
    assert "timed out" in outcome.error
    assert s3_client.deleted == []
    assert "timed out" in caplog.text


def test_process_completed_upload_logs_connection_errors(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _install_backend(monkeypatch, handler)

    outcome = asyncio.run(
        process_completed_upload(
            event=_event(None),
            request_origin=None,
            settings=_settings(),
            s3_client=_FakeS3Client(),
        )
    )

    assert outcome.notified is False
    assert "ConnectError" in outcome.error


def test_process_completed_upload_reports_cleanup_failure(monkeypatch, caplog):
    _install_backend(monkeypatch, lambda request: httpx.Response(200, json={"ok": True}))

    with caplog.at_level(logging.ERROR, logger="app.services.upload_completion"):
        outcome = asyncio.run(
            process_completed_upload(
                event=_event(None),
                request_origin=None,
                settings=_settings(),
                s3_client=_FakeS3Client(fail=True),
            )
        )

    assert outcome.notified is True
    assert outcome.deleted is False
    assert outcome.error.startswith("Cleanup failed")
    assert "Failed to delete temporary object" in caplog.text


def test_build_request_origin_uses_first_forwarded_proto():
    assert build_request_origin("edge.example.com", "https, http") == "https://edge.example.com"
    assert build_request_origin("edge.example.com", None) == "https://edge.example.com"
    assert build_request_origin(None, "http") is None


def test_process_completed_upload_refuses_to_delete_foreign_url(monkeypatch, caplog):
    _install_backend(monkeypatch, lambda request: httpx.Response(200, json={}))
    s3_client = _FakeS3Client()
    event = UploadCompletedPayload(
        blob=UploadedBlob(url="https://evil.example/reports/2025/ledger.xlsx", pathname="reports/2025/ledger.xlsx"),
        token_payload=None,
    )

    with caplog.at_level(logging.ERROR, logger="app.services.upload_completion"):
        outcome = asyncio.run(
            process_completed_upload(
                event=event,
                request_origin=None,
                settings=_settings(),
                s3_client=s3_client,
            )
        )

    assert outcome.notified is True
    assert outcome.deleted is False
    assert "not in bucket" in outcome.error
    assert s3_client.deleted == []
    assert "Failed to delete temporary object" in caplog.text


def test_process_completed_upload_refuses_to_delete_outside_upload_prefix(monkeypatch):
    _install_backend(monkeypatch, lambda request: httpx.Response(200, json={}))
    s3_client = _FakeS3Client()
    event = UploadCompletedPayload(
        blob=UploadedBlob(
            url="https://s3.example.com/temp-uploads/reports/2025/ledger.xlsx",
            pathname="reports/2025/ledger.xlsx",
        ),
        token_payload=None,
    )

    outcome = asyncio.run(
        process_completed_upload(
            event=event,
            request_origin=None,
            settings=_settings(),
            s3_client=s3_client,
        )
    )

    assert outcome.deleted is False
    assert "outside upload prefix" in outcome.error
    assert s3_client.deleted == []
