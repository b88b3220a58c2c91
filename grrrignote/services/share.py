# grrrignote/services/share.py
"""
公開分享頁：所有資料都在 query string 裡，沒有 DB 查詢。
輸入一律截斷 / 夾在範圍內，格式不對的值退回預設值。
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional
from urllib.parse import urlencode

from grrrignote.services.progress import ProgressSummary

MAX_RECENT_FOODS = 3
MAX_FIRST_NAME_LENGTH = 40
MAX_FOOD_NAME_LENGTH = 30
MAX_COUNT = 500
SHARE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{8,80}$")


@dataclass(frozen=True)
class ShareSnapshot:
    first_name: str
    introduced_count: int
    total_foods: int
    liked_count: int
    milestone: int
    recent_foods: List[str] = field(default_factory=list)
    share_id: Optional[str] = None

    @property
    def completion_rate(self) -> int:
        if self.total_foods <= 0:
            return 0
        return int(math.floor(self.introduced_count / self.total_foods * 100 + 0.5))


def _param(params: Mapping[str, str], key: str) -> str:
    return str(params.get(key) or "").strip()


def _safe_int(params: Mapping[str, str], key: str, fallback: int = 0) -> int:
    raw = _param(params, key)
    if not raw:
        return fallback
    try:
        value = float(raw)
    except ValueError:
        return fallback
    if not math.isfinite(value):
        return fallback
    return max(0, min(MAX_COUNT, int(value)))


def parse_share_params(params: Mapping[str, str]) -> ShareSnapshot:
    introduced = _safe_int(params, "i")
    total = _safe_int(params, "t")

    raw_recent = _param(params, "r")
    recent = [name.strip()[:MAX_FOOD_NAME_LENGTH] for name in raw_recent.split("|")] if raw_recent else []
    recent = [name for name in recent if name][:MAX_RECENT_FOODS]

    share_id = _param(params, "sid")
    return ShareSnapshot(
        first_name=_param(params, "n")[:MAX_FIRST_NAME_LENGTH],
        introduced_count=introduced,
        # 總數不可小於已嘗試數
        total_foods=max(total, introduced),
        liked_count=_safe_int(params, "l"),
        milestone=_safe_int(params, "m"),
        recent_foods=recent,
        share_id=share_id if SHARE_ID_RE.fullmatch(share_id) else None,
    )


def build_share_url(
    base_url: str,
    summary: ProgressSummary,
    *,
    first_name: Optional[str] = None,
    milestone: int = 0,
    share_id: Optional[str] = None,
) -> str:
    query = {
        "n": (first_name or "").strip()[:MAX_FIRST_NAME_LENGTH],
        "i": summary.introduced_count,
        "t": summary.total_foods,
        "l": summary.liked_count,
        "m": milestone,
        "r": "|".join(name[:MAX_FOOD_NAME_LENGTH] for name in summary.recent_food_names[:MAX_RECENT_FOODS]),
        "sid": share_id or "",
    }
    query = {k: v for k, v in query.items() if v not in ("", 0)}
    return f"{base_url}/share?{urlencode(query)}" if query else f"{base_url}/share"
