# grrrignote/services/progress.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from grrrignote.schemas.insights import FoodIn
from grrrignote.services.food_search import collation_key

RECENT_FOOD_NAMES_LIMIT = 3


@dataclass(frozen=True)
class ProgressSummary:
    introduced_count: int
    total_foods: int
    liked_count: int
    recent_food_names: List[str] = field(default_factory=list)


def is_introduced(food: FoodIn) -> bool:
    return food.exposure_count > 0 or food.first_tasted_on is not None


def build_progress_summary(foods: Sequence[FoodIn]) -> ProgressSummary:
    """儀表板 / 分享頁用的進度摘要：已嘗試數、總數、喜歡數、最近嘗試的 3 個食物。"""
    introduced = [f for f in foods if is_introduced(f)]

    recent = [f for f in introduced if f.updated_at]
    recent.sort(key=lambda f: collation_key(f.name))
    recent.sort(key=lambda f: f.updated_at.timestamp(), reverse=True)

    return ProgressSummary(
        introduced_count=len(introduced),
        total_foods=len(foods),
        liked_count=sum(1 for f in foods if f.preference == 1),
        recent_food_names=[f.name for f in recent[:RECENT_FOOD_NAMES_LIMIT]],
    )
