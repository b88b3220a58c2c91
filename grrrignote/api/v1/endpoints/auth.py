# grrrignote/api/v1/endpoints/auth.py
from fastapi import APIRouter, Depends

from grrrignote.core.deps import get_current_user
from grrrignote.models.users import User
from grrrignote.schemas.user import UserRead

router = APIRouter()


@router.get("/me", response_model=UserRead, summary="Current user")
async def me(current_user: User = Depends(get_current_user)):
    """登入 / 登出都走頁面的 form action；API 只提供目前使用者資訊。"""
    return current_user
