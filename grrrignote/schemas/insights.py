# grrrignote/schemas/insights.py
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class FoodIn(BaseModel):
    id: int
    name: str
    category_name: Optional[str] = None
    exposure_count: int = Field(default=0, ge=0)
    preference: Literal[-1, 0, 1] = 0
    first_tasted_on: Optional[date] = None
    updated_at: Optional[datetime] = None


class TimelineEntryIn(BaseModel):
    food_id: int
    food_name: str
    slot: int = Field(ge=1, le=3)
    # YYYY-MM-DD；格式錯誤的日期排序時視為最舊
    tasted_on: str
    liked: bool = False
    texture_level: Optional[int] = Field(default=None, ge=1, le=4)


# ---- requests ----
class ProgressRequest(BaseModel):
    foods: List[FoodIn] = []
    child_first_name: Optional[str] = None
    milestone: int = Field(default=0, ge=0)


class SearchRequest(BaseModel):
    query: str = ""
    foods: List[FoodIn] = []


class TextureCoachRequest(BaseModel):
    birth_date: Optional[str] = None
    entries: List[TimelineEntryIn] = []
    today: Optional[date] = None


# ---- responses ----
class ProgressSummaryOut(BaseModel):
    introduced_count: int
    total_foods: int
    liked_count: int
    recent_food_names: List[str]
    share_url: str


class SearchHit(BaseModel):
    id: int
    name: str
    rank: Optional[int] = None


class SearchResponse(BaseModel):
    query: str
    results: List[SearchHit]


TextureCoachStatus = Literal["aligned", "watch", "behind", "no_data"]


class TextureCoachOut(BaseModel):
    age_months: int
    target_texture_min: int
    target_texture_max: int
    target_label: str
    observed_texture_level: Optional[int]
    observed_label: str
    goal_texture_level: int
    status: TextureCoachStatus
    status_label: str
    status_description: str
    action_label: str
    suggested_foods: List[str]
    textured_entries_count: int
    total_entries_count: int
    coverage_percent: int
