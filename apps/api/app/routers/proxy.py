import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.config import Settings
from app.dependencies import get_settings
from app.services.backend_proxy import (
    build_backend_url,
    build_content_type_header,
    build_proxy_error,
    forward_to_backend,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/backend", tags=["proxy"])


@router.get("/{path:path}")
async def proxy_get(path: str, request: Request, settings: Settings = Depends(get_settings)) -> JSONResponse:
    url = build_backend_url(settings.backend_url, path, request.url.query)
    try:
        status_code, data = await forward_to_backend(
            method="GET",
            url=url,
            timeout=settings.proxy_timeout_sec,
            headers=build_content_type_header(request.headers.get("content-type")),
        )
    except Exception as exc:
        logger.exception("Proxy error on GET %s", url)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=build_proxy_error(exc))
    return JSONResponse(status_code=status_code, content=data)


@router.post("/{path:path}")
async def proxy_post(path: str, request: Request, settings: Settings = Depends(get_settings)) -> JSONResponse:
    url = build_backend_url(settings.backend_url, path)
    try:
        # Raw bytes, so multipart and binary uploads pass through untouched.
        body = await request.body()
        logger.info("POST /backend/%s - body size: %s bytes", path, len(body))
        status_code, data = await forward_to_backend(
            method="POST",
            url=url,
            timeout=settings.proxy_timeout_sec,
            headers=build_content_type_header(request.headers.get("content-type")),
            content=body,
        )
        logger.info("POST /backend/%s - response status: %s", path, status_code)
    except Exception as exc:
        logger.exception("Proxy error on POST %s", url)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=build_proxy_error(exc, path=f"/backend/{path}"),
        )
    return JSONResponse(status_code=status_code, content=data)


@router.delete("/{path:path}")
async def proxy_delete(path: str, settings: Settings = Depends(get_settings)) -> JSONResponse:
    url = build_backend_url(settings.backend_url, path)
    try:
        status_code, data = await forward_to_backend(
            method="DELETE",
            url=url,
            timeout=settings.proxy_timeout_sec,
        )
    except Exception as exc:
        logger.exception("Proxy error on DELETE %s", url)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=build_proxy_error(exc))
    return JSONResponse(status_code=status_code, content=data)
