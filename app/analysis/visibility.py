"""Visibility aggregation over the mention-event log.

Visibility is presence frequency: the share of analyzed prompts in which
an entity appeared at least once, independent of how often it appeared.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from app.analysis.types import MentionRow, VisibilityStat

POSITION_MIN = 1.0
POSITION_MAX = 10.0
POSITION_SCALE = 100
UNKNOWN_ENTITY_URL = "https://unknown.com"

_EntityKey = tuple[str, str, str | None, int | None]


def _entity_key(row: MentionRow) -> _EntityKey:
    return (row.entity_type, row.entity_name, row.entity_domain, row.competitor_id)


def _mean(values: Iterable[float | None]) -> float | None:
    present = [float(v) for v in values if v is not None]
    return sum(present) / len(present) if present else None


def clamp_metric(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def aggregate_visibility(rows: Sequence[MentionRow]) -> list[VisibilityStat]:
    """Per-entity visibility for a window of mention rows, highest first.

    Empty input (no analyzed prompts) yields an empty list.
    """
    total_prompts = len({row.brand_prompt_id for row in rows})
    if total_prompts == 0:
        return []

    groups: dict[_EntityKey, list[MentionRow]] = {}
    for row in rows:
        groups.setdefault(_entity_key(row), []).append(row)

    total_all_entities = sum(row.mention_count or 0 for row in rows)

    stats: list[VisibilityStat] = []
    for (entity_type, name, domain, competitor_id), group in groups.items():
        prompts_mentioned = len({row.brand_prompt_id for row in group})
        avg_position = _mean(row.position for row in group)
        stats.append(
            VisibilityStat(
                entity_type=entity_type,
                entity_name=name,
                entity_domain=domain,
                competitor_id=competitor_id,
                visibility=round(prompts_mentioned / total_prompts * 100, 2),
                prompts_mentioned=prompts_mentioned,
                total_prompts=total_prompts,
                total_mentions=sum(row.mention_count or 0 for row in group),
                total_all_entities=total_all_entities,
                avg_position=round(avg_position or 0.0, 1),
                avg_sentiment=_mean(row.sentiment for row in group),
            )
        )

    stats.sort(key=lambda s: s.visibility, reverse=True)
    return stats


def aggregate_daily_visibility(rows: Sequence[MentionRow]) -> dict[str, dict[str, dict]]:
    """``{date: {domain_or_name: {...}}}`` with each day as its own denominator."""
    by_day: dict[str, list[MentionRow]] = {}
    for row in rows:
        if row.analyzed_at is None:
            continue
        by_day.setdefault(row.analyzed_at.date().isoformat(), []).append(row)

    history: dict[str, dict[str, dict]] = {}
    for day in sorted(by_day):
        day_rows = by_day[day]
        total_prompts = len({row.brand_prompt_id for row in day_rows})
        entities: dict[tuple[str, str, str | None], set[int]] = {}
        for row in day_rows:
            entities.setdefault((row.entity_type, row.entity_name, row.entity_domain), set()).add(row.brand_prompt_id)

        history[day] = {}
        for (entity_type, name, domain), prompt_ids in entities.items():
            history[day][domain or name] = {
                "visibility": round(len(prompt_ids) / total_prompts * 100, 2),
                "entity_name": name,
                "entity_type": entity_type,
                "prompts_mentioned": len(prompt_ids),
                "total_prompts": total_prompts,
            }
    return history


# ---------------------------------------------------------------------------
# Competitive snapshots
# ---------------------------------------------------------------------------


def snapshot_position(avg_position: float | None) -> float:
    """Rescale a raw character-offset average onto the stored 1.0-10.0 scale."""
    raw = avg_position if avg_position is not None else 5 * POSITION_SCALE
    return round(clamp_metric(raw / POSITION_SCALE, POSITION_MIN, POSITION_MAX), 1)


def snapshot_entity_url(stat: VisibilityStat, brand_website: str | None) -> str:
    if stat.entity_domain:
        return f"https://{stat.entity_domain}"
    if stat.entity_type == "brand" and brand_website:
        return brand_website
    return UNKNOWN_ENTITY_URL


def snapshot_values(stat: VisibilityStat, brand_website: str | None) -> dict:
    """Column values for one BrandCompetitiveStat row."""
    sentiment = None
    if stat.avg_sentiment is not None:
        sentiment = int(round(clamp_metric(stat.avg_sentiment, 0, 100)))
    return {
        "entity_type": stat.entity_type,
        "competitor_id": stat.competitor_id,
        "entity_name": stat.entity_name,
        "entity_url": snapshot_entity_url(stat, brand_website),
        "visibility": clamp_metric(stat.visibility, 0, 100),
        "sentiment": sentiment,
        "position": snapshot_position(stat.avg_position),
        "raw_data": {
            "prompts_mentioned": stat.prompts_mentioned,
            "total_prompts": stat.total_prompts,
            "total_mentions": stat.total_mentions,
            "calculation_method": "presence_based",
        },
    }


def trend(current: float | None, previous: float | None, tolerance: float = 0.0) -> str:
    """``up`` / ``down`` / ``stable`` against the previous snapshot, ``new`` without one."""
    if previous is None:
        return "new"
    if current is None:
        return "stable"
    delta = float(current) - float(previous)
    if delta > tolerance:
        return "up"
    if delta < -tolerance:
        return "down"
    return "stable"


def position_trend(current: float | None, previous: float | None) -> str:
    """Lower positions are better, so the direction is inverted."""
    direction = trend(current, previous)
    return {"up": "down", "down": "up"}.get(direction, direction)


def window_bounds(end: datetime, days: int) -> tuple[datetime, datetime]:
    return end - timedelta(days=days), end
