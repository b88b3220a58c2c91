# grrrignote/api/pages/dashboard.py
from fastapi import APIRouter, Depends

from grrrignote.core.deps import require_user
from grrrignote.models.users import User

router = APIRouter(tags=["pages"])


@router.get("/", summary="Dashboard")
async def dashboard(user: User = Depends(require_user)):
    return {
        "page": "dashboard",
        "user": {
            "id": user.id,
            "email": user.email,
            "email_verified": user.email_verified_at is not None,
        },
    }


@router.get("/maintenance", summary="Maintenance page")
async def maintenance():
    # 只有 MAINTENANCE_MODE 開啟時才會走到這裡（見 core/errors.py 的 guard）
    return {"page": "maintenance"}
