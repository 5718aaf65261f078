"""Post-upload processing: hand the stored object to the backend, then remove it.

`process_completed_upload` runs as a background task after the storage
provider's completion callback has already been acknowledged, so nobody is
waiting on its result. It never raises; every failure ends up in the log and
in the returned `CompletionOutcome`.
"""

import asyncio
import json
import logging
from dataclasses import dataclass

import httpx
from botocore.client import BaseClient
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.schemas.uploads import BackendNotification, UploadCompletedPayload, UploadedBlob
from app.services.s3_storage import (
    create_s3_client,
    delete_object,
    ensure_key_under_prefix,
    ensure_s3_bucket,
    parse_object_url,
)

logger = logging.getLogger(__name__)

UPLOAD_FROM_URL_PATH = "/backend/upload-from-url"
PROTECTION_BYPASS_HEADER = "x-vercel-protection-bypass"


class BackendNotificationError(RuntimeError):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Backend processing failed: {status_code} - {body}")
        self.status_code = status_code
        self.body = body


@dataclass
class CompletionOutcome:
    blob_url: str
    filename: str | None = None
    backend_origin: str | None = None
    notified: bool = False
    deleted: bool = False
    error: str | None = None


def decode_token_payload(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring unparsable token payload")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def build_request_origin(host: str | None, forwarded_proto: str | None) -> str | None:
    if not host:
        return None
    # Proxy chains send a list such as "https,http"; the first hop is the client's.
    scheme = (forwarded_proto or "").split(",", 1)[0].strip()
    return f"{scheme or 'https'}://{host}"


def resolve_backend_origin(request_origin: str | None, settings: Settings) -> str:
    if request_origin:
        return request_origin.rstrip("/")
    if settings.deployment_hostname:
        return f"https://{settings.deployment_hostname}"
    return settings.local_origin


def build_backend_notification(blob: UploadedBlob, token_payload: dict) -> BackendNotification:
    original_filename = token_payload.get("originalFilename")
    if not isinstance(original_filename, str) or not original_filename:
        original_filename = blob.pathname
    return BackendNotification(url=blob.url, filename=original_filename)


def build_notification_headers(settings: Settings) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if settings.protection_bypass_secret:
        headers[PROTECTION_BYPASS_HEADER] = settings.protection_bypass_secret
    return headers


async def notify_backend(
    *,
    origin: str,
    notification: BackendNotification,
    headers: dict[str, str],
    timeout: float,
) -> dict:
    """POST the notification; `asyncio.TimeoutError` once `timeout` seconds pass in total."""
    url = f"{origin}{UPLOAD_FROM_URL_PATH}"
    async with _create_backend_http_client(timeout) as client:
        response = await asyncio.wait_for(
            client.post(url, headers=headers, json=notification.model_dump()),
            timeout=timeout,
        )
    logger.info("Backend responded %s for %s", response.status_code, notification.url)

    if not response.is_success:
        raise BackendNotificationError(response.status_code, response.text)
    try:
        result = response.json()
    except ValueError:
        return {}
    return result if isinstance(result, dict) else {"result": result}


async def process_completed_upload(
    *,
    event: UploadCompletedPayload,
    request_origin: str | None,
    settings: Settings,
    s3_client: BaseClient | None = None,
) -> CompletionOutcome:
    blob = event.blob
    outcome = CompletionOutcome(blob_url=blob.url)
    logger.info("Upload completed: %s", blob.url)

    try:
        notification = build_backend_notification(blob, decode_token_payload(event.token_payload))
        outcome.filename = notification.filename
        outcome.backend_origin = resolve_backend_origin(request_origin, settings)
        logger.info("Processing %s via %s", notification.filename, outcome.backend_origin)

        result = await notify_backend(
            origin=outcome.backend_origin,
            notification=notification,
            headers=build_notification_headers(settings),
            timeout=settings.notify_timeout_sec,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        outcome.error = f"Backend call timed out after {settings.notify_timeout_sec:g}s"
        logger.error("%s; %s left in storage", outcome.error, blob.url)
        return outcome
    except BackendNotificationError as exc:
        outcome.error = str(exc)
        logger.error(
            "Backend processing failed for url=%s filename=%s: %s",
            blob.url,
            outcome.filename,
            exc,
        )
        return outcome
    except Exception as exc:
        outcome.error = f"{type(exc).__name__}: {exc}"
        logger.exception("Error processing upload %s", blob.url)
        return outcome

    outcome.notified = True
    logger.info("Backend processing successful for %s: %s", blob.url, result)

    try:
        bucket = ensure_s3_bucket(settings)
        key = parse_object_url(blob.url, bucket=bucket, endpoint_url=settings.resolved_s3_endpoint_url)
        ensure_key_under_prefix(key, settings.upload_key_prefix)
        client = s3_client or create_s3_client(settings)
        await run_in_threadpool(delete_object, client=client, bucket=bucket, key=key)
    except Exception as exc:
        # Not retried; the bucket's lifecycle policy is the backstop for leftovers.
        outcome.error = f"Cleanup failed: {exc}"
        logger.error("Failed to delete temporary object %s: %s", blob.url, exc)
        return outcome

    outcome.deleted = True
    logger.info("Deleted temporary object %s", blob.url)
    return outcome


def _create_backend_http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout))
