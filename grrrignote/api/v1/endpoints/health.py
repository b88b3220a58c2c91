# grrrignote/api/v1/endpoints/health.py
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/", summary="Health check")
async def health_root(request: Request):
    settings = request.app.state.settings
    return {
        "status": "ok",
        "env": settings.ENV,
        "maintenance": settings.MAINTENANCE_MODE,
    }
