# grrrignote/api/pages/router.py
from fastapi import APIRouter

from . import account, auth, dashboard, password, share, signup, verify_email

# === 頁面 + form action（不在 /api 底下） ===
pages_router = APIRouter()

# 首頁 / 維護頁
pages_router.include_router(dashboard.router)

# 登入 / 登出
pages_router.include_router(auth.router)

# 註冊
pages_router.include_router(signup.router)

# 忘記密碼 / 重設密碼
pages_router.include_router(password.router)

# email 驗證
pages_router.include_router(verify_email.router)

# 帳號設定（需登入）
pages_router.include_router(account.router)

# 公開分享頁
pages_router.include_router(share.router)
