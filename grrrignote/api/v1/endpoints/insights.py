# grrrignote/api/v1/endpoints/insights.py
from fastapi import APIRouter, Depends, HTTPException, Request, status

from grrrignote.core.deps import get_current_user
from grrrignote.models.users import User
from grrrignote.schemas.insights import (
    ProgressRequest,
    ProgressSummaryOut,
    SearchHit,
    SearchRequest,
    SearchResponse,
    TextureCoachOut,
    TextureCoachRequest,
)
from grrrignote.services.food_search import search_foods
from grrrignote.services.progress import build_progress_summary
from grrrignote.services.share import build_share_url
from grrrignote.services.texture_coach import build_texture_coach_snapshot

router = APIRouter()


@router.post("/progress", response_model=ProgressSummaryOut, summary="Progress summary")
async def progress(
    payload: ProgressRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    summary = build_progress_summary(payload.foods)
    share_url = build_share_url(
        request.app.state.settings.app_base_url(),
        summary,
        first_name=payload.child_first_name,
        milestone=payload.milestone,
    )
    return ProgressSummaryOut(
        introduced_count=summary.introduced_count,
        total_foods=summary.total_foods,
        liked_count=summary.liked_count,
        recent_food_names=summary.recent_food_names,
        share_url=share_url,
    )


@router.post("/search", response_model=SearchResponse, summary="Rank foods for a search query")
async def search(payload: SearchRequest, current_user: User = Depends(get_current_user)):
    hits = search_foods(payload.foods, payload.query)
    return SearchResponse(
        query=payload.query,
        results=[SearchHit(id=food.id, name=food.name, rank=rank) for food, rank in hits],
    )


@router.post("/texture-coach", response_model=TextureCoachOut, summary="Texture coach snapshot")
async def texture_coach(payload: TextureCoachRequest, current_user: User = Depends(get_current_user)):
    snapshot = build_texture_coach_snapshot(payload.birth_date, payload.entries, today=payload.today)
    if snapshot is None:
        # 沒有出生日期就無法推算月齡
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Missing or invalid birth_date")
    return snapshot
