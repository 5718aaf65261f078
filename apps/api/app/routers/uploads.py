import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.dependencies import get_settings
from app.schemas.uploads import (
    GenerateClientTokenEvent,
    GenerateClientTokenResponse,
    UploadCompletedResponse,
    UploadErrorResponse,
    handle_upload_body_adapter,
)
from app.services.upload_completion import build_request_origin, process_completed_upload
from app.services.upload_tokens import issue_client_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])


def _resolve_callback_url(request: Request, request_origin: str | None, settings: Settings) -> str | None:
    if settings.upload_callback_url:
        return settings.upload_callback_url
    if not request_origin:
        return None
    return f"{request_origin}{request.url.path}"


@router.post("/upload-blob")
async def handle_upload(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Issue direct-upload grants and accept the storage provider's completion callback."""
    request_origin = build_request_origin(
        request.headers.get("host"),
        request.headers.get("x-forwarded-proto"),
    )

    try:
        body = handle_upload_body_adapter.validate_json(await request.body())
        if isinstance(body, GenerateClientTokenEvent):
            grant = await run_in_threadpool(
                issue_client_token,
                request=body.payload,
                settings=settings,
                callback_url=_resolve_callback_url(request, request_origin, settings),
            )
            response_body = GenerateClientTokenResponse(client_token=grant).model_dump(by_alias=True)
        else:
            background_tasks.add_task(
                process_completed_upload,
                event=body.payload,
                request_origin=request_origin,
                settings=settings,
            )
            response_body = UploadCompletedResponse().model_dump(by_alias=True)
    except Exception as exc:
        logger.exception("Upload handshake failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=UploadErrorResponse(error=str(exc) or "Upload failed").model_dump(),
        )

    return JSONResponse(content=response_body)
