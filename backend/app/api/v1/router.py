from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.api.v1.endpoints import autosave
from app.core.database import ping_db
from app.core.logging_config import logger

api_router = APIRouter()


# Health check used by the studio client's connectivity probe
@api_router.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint, including a database round trip"""
    try:
        await ping_db()
        database = "ok"
    except Exception as e:
        logger.error(f"[HealthCheck] Database check failed: {e}")
        database = "unavailable"

    content = {
        "status": "healthy" if database == "ok" else "degraded",
        "service": "studio-autosave",
        "database": database,
    }
    return JSONResponse(status_code=200 if database == "ok" else 503, content=content)


api_router.include_router(autosave.router)
