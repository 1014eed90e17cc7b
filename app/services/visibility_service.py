"""Mention logging, presence-based visibility and competitive snapshots.

BrandMention is an append-only log written after each analysis; visibility
is always recomputed from it for a window, and BrandCompetitiveStat rows are
inserted (never updated) as a time series of those computations.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.analysis.mentions import brand_target, competitor_target, extract_mentions, sanitize_text
from app.analysis.types import MentionEvent, MentionRow, VisibilityStat
from app.analysis.visibility import (
    aggregate_daily_visibility,
    aggregate_visibility,
    position_trend,
    snapshot_values,
    trend,
    window_bounds,
)
from app.core.config import settings
from app.models.brand import Brand
from app.models.brand_mention import BrandMention
from app.models.brand_prompt import BrandPrompt
from app.models.competitive_stat import BrandCompetitiveStat

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mention logging
# ---------------------------------------------------------------------------


async def extract_and_log_mentions(
    db: AsyncSession,
    brand: Brand,
    brand_prompt: BrandPrompt,
    session_id: str | None = None,
) -> list[MentionEvent]:
    """Scan the prompt's stored answer and append one BrandMention per entity found."""
    answer = brand_prompt.ai_response or ""
    if not answer.strip():
        return []

    targets = [brand_target(brand.name, brand.website, brand_prompt.sentiment)]
    targets.extend(
        competitor_target(c.id, c.name, c.domain, c.tracked_names, brand_prompt.competitor_mentions)
        for c in brand.accepted_competitors
    )

    events = extract_mentions(answer, targets)
    now = datetime.now(timezone.utc)
    for event in events:
        db.add(
            BrandMention(
                brand_prompt_id=brand_prompt.id,
                brand_id=brand.id,
                ai_model_id=brand_prompt.ai_model_id,
                entity_type=event.entity_type.value,
                competitor_id=event.competitor_id,
                entity_name=event.entity_name,
                entity_domain=event.entity_domain or None,
                mention_count=event.mention_count,
                position=event.position,
                context=sanitize_text(event.context),
                sentiment=event.sentiment,
                session_id=session_id or brand_prompt.session_id,
                analyzed_at=now,
            )
        )
    await db.flush()

    logger.info(
        "Logged %d mentions for brand prompt %d",
        len(events),
        brand_prompt.id,
        extra={"brand_id": brand.id, "brand_prompt_id": brand_prompt.id},
    )
    return events


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


async def fetch_mention_rows(
    db: AsyncSession,
    brand_id: int,
    start: datetime,
    end: datetime,
    ai_model_id: int | None = None,
) -> list[MentionRow]:
    query = select(BrandMention).where(
        BrandMention.brand_id == brand_id,
        BrandMention.analyzed_at >= start,
        BrandMention.analyzed_at <= end,
    )
    if ai_model_id is not None:
        query = query.where(BrandMention.ai_model_id == ai_model_id)

    result = await db.execute(query.order_by(BrandMention.analyzed_at))
    return [
        MentionRow(
            brand_prompt_id=m.brand_prompt_id,
            entity_type=m.entity_type,
            entity_name=m.entity_name,
            entity_domain=m.entity_domain,
            competitor_id=m.competitor_id,
            mention_count=m.mention_count,
            position=m.position,
            sentiment=m.sentiment,
            analyzed_at=m.analyzed_at,
        )
        for m in result.scalars().all()
    ]


async def calculate_visibility(
    db: AsyncSession,
    brand_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    ai_model_id: int | None = None,
) -> list[VisibilityStat]:
    """Visibility per entity over ``[start, end]``; empty when nothing was logged."""
    if end is None:
        end = datetime.now(timezone.utc)
    if start is None:
        start, _ = window_bounds(end, settings.visibility_window_days)
    rows = await fetch_mention_rows(db, brand_id, start, end, ai_model_id)
    stats = aggregate_visibility(rows)
    if not stats:
        logger.info("No mention data for brand %d in window", brand_id, extra={"brand_id": brand_id})
    return stats


async def get_historical_visibility(
    db: AsyncSession,
    brand_id: int,
    start: datetime,
    end: datetime,
) -> dict[str, dict[str, dict]]:
    rows = await fetch_mention_rows(db, brand_id, start, end)
    return aggregate_daily_visibility(rows)


# ---------------------------------------------------------------------------
# Competitive snapshots
# ---------------------------------------------------------------------------


async def update_competitive_stats(
    db: AsyncSession,
    brand: Brand,
    session_id: str | None = None,
    ai_model_id: int | None = None,
) -> list[BrandCompetitiveStat]:
    """Insert a fresh snapshot row for every entity with visibility data."""
    stats = await calculate_visibility(db, brand.id, ai_model_id=ai_model_id)
    if not stats:
        return []

    session_id = session_id or f"visibility_{uuid.uuid4().hex[:12]}"
    now = datetime.now(timezone.utc)
    rows = [
        BrandCompetitiveStat(
            brand_id=brand.id,
            ai_model_id=ai_model_id,
            analysis_session_id=session_id,
            analyzed_at=now,
            **snapshot_values(stat, brand.website),
        )
        for stat in stats
    ]
    db.add_all(rows)
    await db.flush()
    logger.info("Stored %d competitive stat snapshots for brand %d", len(rows), brand.id, extra={"brand_id": brand.id})
    return rows


async def get_latest_stats_with_trends(db: AsyncSession, brand_id: int) -> list[dict]:
    """Most recent snapshot per entity with up/down/stable against the one before."""
    result = await db.execute(
        select(BrandCompetitiveStat)
        .where(BrandCompetitiveStat.brand_id == brand_id)
        .order_by(desc(BrandCompetitiveStat.analyzed_at), desc(BrandCompetitiveStat.id))
    )

    history: dict[tuple[str, str, int | None], list[BrandCompetitiveStat]] = {}
    for row in result.scalars().all():
        history.setdefault((row.entity_type, row.entity_name, row.competitor_id), []).append(row)

    latest: list[dict] = []
    for rows in history.values():
        current = rows[0]
        previous = rows[1] if len(rows) > 1 else None
        latest.append(
            {
                "entity_type": current.entity_type,
                "entity_name": current.entity_name,
                "entity_url": current.entity_url,
                "competitor_id": current.competitor_id,
                "visibility": float(current.visibility),
                "sentiment": current.sentiment,
                "position": float(current.position),
                "analyzed_at": current.analyzed_at.isoformat() if current.analyzed_at else None,
                "trends": {
                    "visibility": trend(current.visibility, previous.visibility if previous else None),
                    "sentiment": trend(current.sentiment, previous.sentiment if previous else None),
                    "position": position_trend(current.position, previous.position if previous else None),
                },
            }
        )
    latest.sort(key=lambda item: item["visibility"], reverse=True)
    return latest

