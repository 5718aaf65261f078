import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"


def build_backend_url(base_url: str, path: str, query: str | None = None) -> str:
    url = f"{base_url.rstrip('/')}/backend/{path.lstrip('/')}"
    if query:
        url = f"{url}?{query}"
    return url


def build_content_type_header(content_type: str | None) -> dict[str, str]:
    return {"Content-Type": content_type or DEFAULT_CONTENT_TYPE}


async def forward_to_backend(
    *,
    method: str,
    url: str,
    timeout: float,
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
) -> tuple[int, Any]:
    """Send one request to the backend and return its status with the decoded JSON body.

    Raises `httpx.HTTPError` on network failures and `ValueError` when the body is not JSON.
    """
    async with _create_backend_http_client(timeout) as client:
        response = await client.request(method, url, headers=headers, content=content)
    return response.status_code, response.json()


def build_proxy_error(exc: Exception, *, path: str | None = None) -> dict[str, str]:
    body = {"error": "Proxy error", "detail": str(exc) or type(exc).__name__}
    if path is not None:
        body["path"] = path
    return body


def _create_backend_http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout))
