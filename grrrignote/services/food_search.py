# grrrignote/services/food_search.py
"""
全域食物搜尋（純函式，不碰 DB）：
- 名稱與查詢字串先正規化：NFD 拆解後去掉重音符號、轉小寫、去頭尾空白
- 排名：0 = 名稱以查詢開頭、1 = 某個單字以查詢開頭、2 = 名稱包含查詢；都不符合則排除
- 查詢為空時改回傳最近更新的食物（最多 RECENT_FOODS_LIMIT 筆）

公開函式：
- normalize_search_value(value) -> str
- get_search_rank(normalized_name, normalized_query) -> Optional[int]
- search_foods(foods, query) -> List[(food, rank)]
"""
from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from grrrignote.schemas.insights import FoodIn

RANK_PREFIX = 0
RANK_WORD_PREFIX = 1
RANK_CONTAINS = 2
RECENT_FOODS_LIMIT = 15

_WORD_SPLIT_RE = re.compile(r"\s+")


def normalize_search_value(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


def collation_key(name: str) -> Tuple[str, str]:
    # 近似法文排序：先比去重音、不分大小寫的名稱，再比原字串讓結果穩定
    return normalize_search_value(name), name


def get_search_rank(normalized_name: str, normalized_query: str) -> Optional[int]:
    if not normalized_query:
        return RANK_PREFIX
    if normalized_name.startswith(normalized_query):
        return RANK_PREFIX
    if any(word.startswith(normalized_query) for word in _WORD_SPLIT_RE.split(normalized_name)):
        return RANK_WORD_PREFIX
    if normalized_query in normalized_name:
        return RANK_CONTAINS
    return None


def _updated_ts(food: FoodIn) -> float:
    value: Optional[datetime] = food.updated_at
    return value.timestamp() if value else 0.0


def recent_foods(foods: Sequence[FoodIn], limit: int = RECENT_FOODS_LIMIT) -> List[FoodIn]:
    candidates = [f for f in foods if f.updated_at]
    candidates.sort(key=lambda f: collation_key(f.name))
    candidates.sort(key=_updated_ts, reverse=True)
    return candidates[:limit]


def search_foods(foods: Sequence[FoodIn], query: str) -> List[Tuple[FoodIn, Optional[int]]]:
    normalized_query = normalize_search_value(query)
    if not normalized_query:
        return [(food, None) for food in recent_foods(foods)]

    hits: List[Tuple[FoodIn, int]] = []
    for food in foods:
        rank = get_search_rank(normalize_search_value(food.name), normalized_query)
        if rank is not None:
            hits.append((food, rank))

    hits.sort(key=lambda hit: (hit[1], collation_key(hit[0].name)))
    return list(hits)
