import json
import logging
import time

from botocore.client import BaseClient

from app.config import Settings
from app.schemas.uploads import ClientTokenGrant, ClientTokenRequestPayload, TokenOptions
from app.services.s3_storage import (
    build_object_key,
    build_object_url,
    create_s3_client,
    ensure_s3_bucket,
    generate_presigned_post,
)

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES: tuple[str, ...] = (
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/markdown",
    "text/csv",
)


def parse_client_payload(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def build_token_options(pathname: str, client_payload: str | None) -> TokenOptions:
    payload = parse_client_payload(client_payload)
    original_filename = payload.get("originalFilename")
    if not isinstance(original_filename, str) or not original_filename:
        original_filename = pathname

    return TokenOptions(
        allowed_content_types=list(ALLOWED_CONTENT_TYPES),
        # Stored names always get a random suffix so repeated uploads never collide.
        add_random_suffix=True,
        token_payload=json.dumps({"pathname": pathname, "originalFilename": original_filename}),
    )


def is_content_type_allowed(content_type: str, allowed: list[str]) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type in allowed


def issue_client_token(
    *,
    request: ClientTokenRequestPayload,
    settings: Settings,
    callback_url: str | None,
    s3_client: BaseClient | None = None,
) -> ClientTokenGrant:
    """Build a short-lived direct-upload grant. Nothing is written to storage here."""
    options = build_token_options(request.pathname, request.client_payload)

    # The policy pins Content-Type, so every grant needs one from the allow-list.
    if not request.content_type:
        raise ValueError("contentType is required to issue an upload token")
    if not is_content_type_allowed(request.content_type, options.allowed_content_types):
        raise ValueError(f"Content type {request.content_type} is not allowed")

    bucket = ensure_s3_bucket(settings)
    client = s3_client or create_s3_client(settings)
    key = build_object_key(
        request.pathname,
        prefix=settings.upload_key_prefix,
        add_random_suffix=options.add_random_suffix,
    )
    presigned = generate_presigned_post(
        client=client,
        bucket=bucket,
        key=key,
        token_payload=options.token_payload,
        content_type=request.content_type,
        max_size_bytes=settings.upload_max_size_bytes,
        expires_in=settings.upload_token_ttl_sec,
    )
    logger.info("Issued upload token for %s as %s", request.pathname, key)

    return ClientTokenGrant(
        allowed_content_types=options.allowed_content_types,
        add_random_suffix=options.add_random_suffix,
        token_payload=options.token_payload,
        upload_url=presigned["url"],
        form_fields={name: str(value) for name, value in presigned["fields"].items()},
        pathname=key,
        url=build_object_url(endpoint_url=settings.resolved_s3_endpoint_url, bucket=bucket, key=key),
        maximum_size_in_bytes=settings.upload_max_size_bytes,
        valid_until=int((time.time() + settings.upload_token_ttl_sec) * 1000),
        callback_url=callback_url,
    )
