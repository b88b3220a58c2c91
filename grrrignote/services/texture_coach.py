# grrrignote/services/texture_coach.py
"""
質地教練（texture coach）：依寶寶月齡給出目標質地區間，
再以最近 12 筆有填質地的紀錄估算目前觀察到的質地，比較兩者給出建議。

質地等級：1 = 滑順、2 = 壓碎、3 = 軟嫩、4 = 需咀嚼
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from grrrignote.schemas.insights import TextureCoachOut, TimelineEntryIn
from grrrignote.services.food_search import collation_key

RECENT_TEXTURE_ENTRY_LIMIT = 12
SUGGESTED_FOODS_LIMIT = 3
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TEXTURE_LABEL_BY_LEVEL = {
    1: "Lisse",
    2: "Ecrase",
    3: "Fondant",
    4: "A macher",
}


@dataclass(frozen=True)
class TextureTarget:
    min: int
    max: int
    label: str


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if not value or not _ISO_DATE_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def clamp_texture_level(value: int) -> int:
    return max(1, min(4, int(value)))


def format_texture_level_label(level: Optional[int]) -> str:
    if level is None:
        return "Non renseigne"
    return f"Niveau {level} ({TEXTURE_LABEL_BY_LEVEL[level]})"


def age_in_months(birth_date: date, today: date) -> int:
    months = (today.year - birth_date.year) * 12 + (today.month - birth_date.month)
    if today.day < birth_date.day:
        months -= 1
    return max(0, months)


def texture_target_for_age(age_months: int) -> TextureTarget:
    if age_months < 6:
        return TextureTarget(1, 1, "Niveau 1 (lisse)")
    if age_months < 8:
        return TextureTarget(1, 2, "Niveaux 1-2 (lisse -> ecrase)")
    if age_months < 10:
        return TextureTarget(2, 3, "Niveaux 2-3 (ecrase -> fondant)")
    if age_months < 12:
        return TextureTarget(3, 4, "Niveaux 3-4 (fondant -> a macher)")
    return TextureTarget(4, 4, "Niveau 4 (a macher / morceaux)")


def coach_status(target_min: int, observed: Optional[int]) -> str:
    if observed is None:
        return "no_data"
    gap = target_min - observed
    if gap <= 0:
        return "aligned"
    if gap == 1:
        return "watch"
    return "behind"


STATUS_LABELS = {
    "aligned": "Dans la cible",
    "watch": "A renforcer",
    "behind": "Priorite texture",
    "no_data": "A activer",
}


def status_description(status: str, age_months: int, target_label: str, observed_label: str) -> str:
    if status == "no_data":
        return "Le coach a besoin de textures renseignees pour produire des conseils fiables."
    if status == "aligned":
        return (
            f"A {age_months} mois, {observed_label.lower()} reste coherent "
            f"avec la cible {target_label.lower()}."
        )
    if status == "watch":
        return (
            f"Leger decalage: la cible a {age_months} mois est {target_label.lower()}, "
            f"mais le niveau observe est {observed_label.lower()}."
        )
    return (
        f"Decalage important: la cible a {age_months} mois est {target_label.lower()}, "
        f"alors que le niveau observe est {observed_label.lower()}."
    )


def goal_texture_level(target_min: int, observed: Optional[int]) -> int:
    if observed is None or observed < target_min:
        return target_min
    return clamp_texture_level(observed + 1)


def action_label(status: str, goal: int) -> str:
    if status == "no_data":
        return "Renseigne la texture sur 3 repas pour debloquer un plan personnalise."
    if status == "aligned":
        return f"Cap utile: maintenir 2 essais par semaine au niveau {goal} pour consolider l'acquisition."
    if status == "watch":
        return f"Plan court: ajouter 2 essais par semaine au niveau {goal} avec des aliments deja acceptes."
    return f"Priorite pratique: remonter progressivement vers le niveau {goal} pour eviter le blocage sur le lisse."


def _entry_order(entry: TimelineEntryIn) -> Tuple[int, int]:
    # 日期無效的紀錄視為最舊；同一天以 slot 區分先後
    parsed = parse_iso_date(entry.tasted_on)
    return (parsed.toordinal() if parsed else 0, entry.slot)


@dataclass
class _FoodTextureStats:
    food_name: str
    max_liked: Optional[int] = None
    max_tried: Optional[int] = None
    last_liked: Tuple[int, int] = (0, 0)


def suggested_foods(entries: Sequence[TimelineEntryIn], goal: int) -> List[str]:
    """
    建議下一步練習的食物：已經喜歡過接近目標的質地（>= goal - 1），
    但還沒試過目標質地。最近喜歡的優先。
    """
    stats: Dict[int, _FoodTextureStats] = {}
    for entry in entries:
        if entry.texture_level is None:
            continue
        s = stats.setdefault(entry.food_id, _FoodTextureStats(food_name=entry.food_name))
        level = entry.texture_level
        s.max_tried = clamp_texture_level(max(s.max_tried or 0, level))
        if entry.liked:
            s.max_liked = clamp_texture_level(max(s.max_liked or 0, level))
            s.last_liked = max(s.last_liked, _entry_order(entry))

    candidates = [
        s
        for s in stats.values()
        if s.max_liked is not None
        and s.max_liked >= goal - 1
        and s.max_tried is not None
        and s.max_tried < goal
    ]
    candidates.sort(key=lambda s: collation_key(s.food_name))
    candidates.sort(key=lambda s: (s.last_liked, s.max_liked or 0), reverse=True)
    return [s.food_name for s in candidates[:SUGGESTED_FOODS_LIMIT]]


def build_texture_coach_snapshot(
    birth_date: Optional[str],
    entries: Sequence[TimelineEntryIn],
    today: Optional[date] = None,
) -> Optional[TextureCoachOut]:
    """沒有（或無效的）出生日期時回傳 None。"""
    parsed_birth = parse_iso_date(birth_date)
    if parsed_birth is None:
        return None

    age_months = age_in_months(parsed_birth, today or date.today())
    target = texture_target_for_age(age_months)

    textured = [e for e in entries if e.texture_level is not None]
    recent = sorted(textured, key=_entry_order, reverse=True)[:RECENT_TEXTURE_ENTRY_LIMIT]

    observed: Optional[int] = None
    if recent:
        mean = sum(e.texture_level for e in recent) / len(recent)
        observed = clamp_texture_level(math.floor(mean + 0.5))

    status = coach_status(target.min, observed)
    goal = goal_texture_level(target.min, observed)
    observed_label = format_texture_level_label(observed)
    total = len(entries)

    return TextureCoachOut(
        age_months=age_months,
        target_texture_min=target.min,
        target_texture_max=target.max,
        target_label=target.label,
        observed_texture_level=observed,
        observed_label=observed_label,
        goal_texture_level=goal,
        status=status,
        status_label=STATUS_LABELS[status],
        status_description=status_description(status, age_months, target.label, observed_label),
        action_label=action_label(status, goal),
        suggested_foods=suggested_foods(entries, goal),
        textured_entries_count=len(textured),
        total_entries_count=total,
        coverage_percent=int(math.floor(len(textured) / total * 100 + 0.5)) if total else 0,
    )
