"""AI competitor suggestions for a brand.

Asks an OpenAI model for the brand's direct competitors as JSON and upserts
them by domain as ``suggested``/``ai`` rows. A suggestion never overrides a
status the user already set.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.analysis.mentions import extract_domain
from app.core.config import settings
from app.gateway.gateway import ProviderGateway
from app.gateway.types import ProviderId
from app.models.brand import Brand, Competitor
from app.services.model_registry import find_model_by_name, get_enabled_models

logger = logging.getLogger(__name__)

DEFAULT_MENTIONS = 10
DISCOVERY_MAX_TOKENS = 4000


def build_competitor_prompt(brand_url: str) -> str:
    return (
        "You are an expert in brand and market competitor analysis.\n"
        f'Given the following information about the brand at URL "{brand_url}", including its products, values '
        "and customer reviews, analyze deeply and strictly:\n"
        "Identify and list ONLY the brands that are direct competitors in the market (offering similar products, "
        "similar customer segments).\n"
        "For each competitor include:\n"
        "- the brand name\n"
        "- the official website\n"
        '- the total number of times that competitor is mentioned (as a brand or product) within the dataset ("Mentions")\n'
        '- if a brand is not mentioned directly, estimate mentions based on product similarity or leave as "10"\n\n'
        "The JSON response should be an array of objects, where each object has the following structure:\n"
        "{\n"
        '    "name": "{brand name}",\n'
        '    "domain": "{brand website url}",\n'
        '    "mentions": {total number of times competitor is mentioned}\n'
        "}\n"
        "Return only the JSON array."
    )


def parse_competitor_suggestions(content: str) -> list[dict[str, Any]]:
    """Accept a bare array or ``{"competitors": [...]}``; anything else is empty."""
    text = (content or "").strip()
    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if not starts:
        return []
    try:
        data, _ = json.JSONDecoder().raw_decode(text[min(starts) :])
    except json.JSONDecodeError:
        logger.warning("Competitor suggestions are not valid JSON: %s", text[:200])
        return []

    if isinstance(data, dict):
        data = data.get("competitors")
    if not isinstance(data, list):
        return []

    suggestions: list[dict[str, Any]] = []
    for item in data:
        if not isinstance(item, dict) or not item.get("name") or not item.get("domain"):
            continue
        mentions = item.get("mentions", DEFAULT_MENTIONS)
        try:
            mentions = int(mentions)
        except (TypeError, ValueError):
            mentions = DEFAULT_MENTIONS
        suggestions.append(
            {
                "name": str(item["name"]).strip()[:255],
                "domain": (extract_domain(str(item["domain"])) or str(item["domain"]).strip())[:255],
                "mentions": mentions,
            }
        )
    return suggestions


async def fetch_competitors(db: AsyncSession, gateway: ProviderGateway, brand: Brand) -> list[dict[str, Any]]:
    """Store suggestions for ``brand``; returns what was upserted."""
    models = await get_enabled_models(db)
    model = find_model_by_name(models, ProviderId.OPENAI.value)
    if model is None or not model.has_api_key:
        logger.error("No enabled OpenAI model with API key found for fetching competitors")
        return []

    response = await gateway.complete(
        model,
        build_competitor_prompt(brand.website or brand.name),
        timeout=settings.provider_timeout_seconds,
        max_tokens=DISCOVERY_MAX_TOKENS,
    )
    suggestions = parse_competitor_suggestions(response.text)
    if not suggestions:
        logger.error("No usable competitor suggestions for brand %d", brand.id, extra={"brand_id": brand.id})
        return []

    for suggestion in suggestions:
        stmt = pg_insert(Competitor.__table__).values(
            brand_id=brand.id,
            name=suggestion["name"],
            domain=suggestion["domain"],
            mentions=suggestion["mentions"],
            status="suggested",
            source="ai",
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_competitor_brand_domain",
            set_={"name": stmt.excluded.name, "mentions": stmt.excluded.mentions},
        )
        await db.execute(stmt)

    logger.info("Upserted %d competitor suggestions for brand %d", len(suggestions), brand.id, extra={"brand_id": brand.id})
    return suggestions
