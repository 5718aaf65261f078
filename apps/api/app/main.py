from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, load_settings
from app.logging_config import setup_logging
from app.routers import proxy_router, uploads_router


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Upload Edge API",
        description="Direct-to-storage upload tokens and /backend/* pass-through proxy",
        version="0.1.0",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(uploads_router)
    app.include_router(proxy_router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "upload-edge"}

    return app


app = create_app()
