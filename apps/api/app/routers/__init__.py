from app.routers.proxy import router as proxy_router
from app.routers.uploads import router as uploads_router

__all__ = ["proxy_router", "uploads_router"]
