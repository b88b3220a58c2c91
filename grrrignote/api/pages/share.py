# grrrignote/api/pages/share.py
from dataclasses import asdict

from fastapi import APIRouter, Request
from loguru import logger

from grrrignote.services.share import parse_share_params

router = APIRouter(tags=["pages"])


@router.get("/share", summary="Public share page")
async def share_page(request: Request):
    """公開頁面：只讀 query string，不需要登入也不查 DB。"""
    snapshot = parse_share_params(request.query_params)
    if snapshot.share_id:
        logger.info("Share link opened (sid={})", snapshot.share_id)
    return {
        "page": "share",
        **asdict(snapshot),
        "completion_rate": snapshot.completion_rate,
    }
