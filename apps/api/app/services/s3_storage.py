from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import quote, unquote, urlparse
from uuid import uuid4

import boto3
from botocore.client import BaseClient

from app.config import Settings

TOKEN_PAYLOAD_FIELD = "x-amz-meta-token-payload"


def create_s3_client(settings: Settings) -> BaseClient:
    access_key = settings.s3_access_key_id
    secret_key = settings.s3_secret_access_key
    if not access_key or not secret_key:
        raise ValueError("S3 credentials missing: set S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY")

    return boto3.client(
        "s3",
        region_name=settings.s3_region,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        aws_session_token=settings.s3_session_token,
        endpoint_url=settings.resolved_s3_endpoint_url,
    )


def ensure_s3_bucket(settings: Settings) -> str:
    if not settings.s3_bucket:
        raise ValueError("S3_BUCKET is not set")
    return settings.s3_bucket


def sanitize_filename(filename: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]+", "-", filename).strip("-")
    return cleaned or "file"


def build_object_key(pathname: str, *, prefix: str = "uploads", add_random_suffix: bool = True) -> str:
    """Map a client pathname to the stored key, e.g. `docs/a b.pdf` -> `uploads/docs/a-b-<hex>.pdf`."""
    parts = [sanitize_filename(part) for part in PurePosixPath(pathname).parts if part not in {"/", ".", ".."}]
    if not parts:
        parts = ["file"]

    filename = PurePosixPath(parts[-1])
    if add_random_suffix:
        parts[-1] = f"{filename.stem}-{uuid4().hex}{filename.suffix}"

    if prefix:
        parts.insert(0, prefix.strip("/"))
    return "/".join(parts)


def build_object_url(*, endpoint_url: str, bucket: str, key: str) -> str:
    return f"{endpoint_url.rstrip('/')}/{bucket}/{quote(key)}"


def parse_object_url(url: str, *, bucket: str, endpoint_url: str) -> str:
    """Return the object key for a path-style or virtual-hosted URL on `endpoint_url`.

    URLs on any other host, or path-style URLs outside `bucket`, raise `ValueError`.
    """
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError("object url must start with http:// or https://")

    endpoint_host = urlparse(endpoint_url).netloc.lower()
    host = parsed.netloc.lower()
    path = unquote(parsed.path).lstrip("/")
    if host == f"{bucket.lower()}.{endpoint_host}":
        key = path
    elif host == endpoint_host and path.startswith(f"{bucket}/"):
        key = path[len(bucket) + 1 :]
    else:
        raise ValueError(f"object url is not in bucket {bucket}: {url}")

    if not key:
        raise ValueError(f"object url has no key: {url}")
    return key


def ensure_key_under_prefix(key: str, prefix: str) -> str:
    prefix = prefix.strip("/")
    if prefix and not key.startswith(f"{prefix}/"):
        raise ValueError(f"refusing to touch {key}: outside upload prefix {prefix}/")
    return key


def generate_presigned_post(
    *,
    client: BaseClient,
    bucket: str,
    key: str,
    token_payload: str,
    content_type: str,
    max_size_bytes: int | None = None,
    expires_in: int = 900,
) -> dict:
    fields = {TOKEN_PAYLOAD_FIELD: token_payload, "Content-Type": content_type}
    conditions: list = [{TOKEN_PAYLOAD_FIELD: token_payload}, {"Content-Type": content_type}]
    if max_size_bytes:
        conditions.append(["content-length-range", 1, max_size_bytes])

    return client.generate_presigned_post(
        Bucket=bucket,
        Key=key,
        Fields=fields,
        Conditions=conditions,
        ExpiresIn=expires_in,
    )


def delete_object(*, client: BaseClient, bucket: str, key: str) -> None:
    client.delete_object(Bucket=bucket, Key=key)
