# grrrignote/api/v1/router.py
from fastapi import APIRouter

# 匯入所有已定義的 endpoint 模組
from .endpoints import auth, health, insights

# === API v1 主路由 ===
api_router = APIRouter()

# 系統健康檢查
api_router.include_router(health.router, prefix="/health", tags=["health"])

# 目前登入的使用者（session cookie）
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# 儀表板的唯讀計算：進度摘要 / 搜尋排名 / 質地教練
api_router.include_router(insights.router, prefix="/insights", tags=["insights"])
