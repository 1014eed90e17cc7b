"""Brand prompt analysis — ask a model, parse its self-report, store resources.

Flow for one BrandPrompt:
  1. Build the answer-and-analyze prompt (brand, accepted competitors, subreddits)
  2. Resolve a model (preferred name, else distribution strategy)
  3. Call the provider through the gateway
  4. Parse sections and metrics, extract citation resources
  5. Replace the prompt's BrandPromptResource rows (delete + insert)

Provider failures propagate; the owning task records them and retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.analysis.mentions import extract_domain, sentiment_score
from app.analysis.prompt_builder import build_analysis_prompt
from app.analysis.resource_extractor import extract_resources
from app.analysis.response_parser import parse_response
from app.analysis.types import BrandAnalysis, ResourceEntry
from app.core.config import settings
from app.distribution.selector import ModelSelector
from app.gateway.gateway import ProviderGateway
from app.models.brand import Brand
from app.models.brand_prompt import BrandPrompt, BrandPromptResource
from app.services.model_registry import get_enabled_models, resolve_model

logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    ai_response: str
    resources: list[ResourceEntry] = field(default_factory=list)
    analysis: BrandAnalysis = field(default_factory=BrandAnalysis)
    ai_model_id: int | None = None
    model_name: str = ""

    @property
    def sentiment_score(self) -> int:
        return sentiment_score(self.analysis.sentiment)


async def load_brand(db: AsyncSession, brand_id: int) -> Brand | None:
    """Brand with competitors and subreddits eagerly loaded."""
    result = await db.execute(
        select(Brand)
        .where(Brand.id == brand_id)
        .options(selectinload(Brand.competitors), selectinload(Brand.subreddits))
    )
    return result.scalar_one_or_none()


def competitor_match_terms(brand: Brand) -> list[str]:
    """Names and bare domains of accepted competitors for URL classification."""
    terms: list[str] = []
    for competitor in brand.accepted_competitors:
        terms.append(competitor.name)
        domain = extract_domain(competitor.domain)
        if domain:
            terms.append(domain)
    return terms


class BrandPromptAnalyzer:
    """Runs the analysis pipeline for brand prompts within one DB session."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: ProviderGateway,
        selector: ModelSelector,
        strategy: str | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.selector = selector
        self.strategy = strategy or settings.distribution_strategy

    async def analyze_prompt(
        self,
        brand_prompt: BrandPrompt,
        brand: Brand,
        preferred_model: str | None = None,
        session_id: str | None = None,
    ) -> AnalysisOutcome:
        prompt = build_analysis_prompt(
            brand.name,
            [c.name for c in brand.accepted_competitors],
            brand_prompt.prompt,
            brand.active_subreddit_names,
        )

        models = await get_enabled_models(self.db)
        model = await resolve_model(models, self.selector, preferred_model, session_id, self.strategy)
        logger.info(
            "Analyzing brand prompt %d with %s",
            brand_prompt.id,
            model.name,
            extra={"brand_prompt_id": brand_prompt.id, "provider": model.name},
        )

        response = await self.gateway.complete(model, prompt, timeout=settings.provider_timeout_seconds)
        parsed = parse_response(response.text)
        resources = extract_resources(parsed.analysis_text, parsed.html_response, competitor_match_terms(brand))

        await self.replace_resources(brand_prompt.id, resources)

        return AnalysisOutcome(
            ai_response=parsed.html_response,
            resources=resources,
            analysis=parsed.analysis,
            ai_model_id=model.id,
            model_name=model.name,
        )

    async def replace_resources(self, brand_prompt_id: int, resources: list[ResourceEntry]) -> int:
        """Delete the prompt's resource rows and insert the new set."""
        await self.db.execute(delete(BrandPromptResource).where(BrandPromptResource.brand_prompt_id == brand_prompt_id))
        for entry in resources:
            self.db.add(
                BrandPromptResource(
                    brand_prompt_id=brand_prompt_id,
                    url=entry.url[:2048],
                    type=entry.type,
                    domain=entry.domain[:255] if entry.domain else None,
                    title=entry.title or None,
                    description=entry.description or None,
                    is_competitor_url=entry.is_competitor_url,
                )
            )
        await self.db.flush()
        logger.info(
            "Saved %d resources for brand prompt %d (%d competitor URLs)",
            len(resources),
            brand_prompt_id,
            sum(1 for r in resources if r.is_competitor_url),
        )
        return len(resources)


def apply_outcome(brand_prompt: BrandPrompt, outcome: AnalysisOutcome, session_id: str | None) -> None:
    """Overwrite the prompt's latest-analysis columns."""
    brand_prompt.ai_response = outcome.ai_response
    brand_prompt.resources = [r.to_dict() for r in outcome.resources]
    brand_prompt.sentiment = outcome.sentiment_score
    brand_prompt.position = outcome.analysis.position
    brand_prompt.competitor_mentions = outcome.analysis.competitor_mentions
    brand_prompt.analysis_completed_at = datetime.now(timezone.utc)
    brand_prompt.analysis_failed_at = None
    brand_prompt.analysis_error = None
    brand_prompt.session_id = session_id or brand_prompt.session_id
    brand_prompt.ai_model_id = outcome.ai_model_id


async def record_failure(db: AsyncSession, brand_prompt_id: int, error: str) -> None:
    """Stamp the failure on the prompt row without touching its last good analysis."""
    await db.execute(
        update(BrandPrompt)
        .where(BrandPrompt.id == brand_prompt_id)
        .values(analysis_failed_at=datetime.now(timezone.utc), analysis_error=error[:2000])
    )


async def get_prompts_with_competitor_urls(db: AsyncSession, brand_id: int, competitor_domain: str) -> list[dict]:
    """Brand prompts whose stored resources point at a competitor domain."""
    domain = extract_domain(competitor_domain) or competitor_domain
    pattern = f"%{domain}%"
    result = await db.execute(
        select(BrandPrompt, BrandPromptResource)
        .join(BrandPromptResource, BrandPromptResource.brand_prompt_id == BrandPrompt.id)
        .where(
            BrandPrompt.brand_id == brand_id,
            or_(BrandPromptResource.domain.ilike(pattern), BrandPromptResource.url.ilike(pattern)),
        )
        .order_by(BrandPrompt.id, BrandPromptResource.id)
    )

    grouped: dict[int, dict] = {}
    for prompt, resource in result.all():
        entry = grouped.setdefault(
            prompt.id,
            {"brand_prompt_id": prompt.id, "prompt": prompt.prompt, "resources": []},
        )
        entry["resources"].append(
            {"url": resource.url, "type": resource.type, "title": resource.title, "domain": resource.domain}
        )
    return list(grouped.values())
