# grrrignote/schemas/user.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr


class UserRead(BaseModel):
    """帳號概覽（/account 頁與 /api/v1/auth/me 共用）；不含密碼雜湊與 session_version。"""

    # Pydantic v2：允許從 ORM 物件轉模型
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    status: str
    email_verified_at: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    created_at: datetime
