"""Post citation check — does a post get cited for the questions it targets?

The post's selected prompts are sampled proportionally per generating
provider (largest remainder, capped), joined into one query and sent to each
citation-check provider. Each provider's JSON verdict is upserted as the
post's current PostCitation for that provider.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.analysis.citation_allocator import combine_prompts, select_prompts, selection_breakdown
from app.core.config import settings
from app.gateway.gateway import ProviderGateway
from app.gateway.types import ProviderId
from app.gateway.vendor_adapters import ProviderConfigError, ProviderError
from app.models.post import Post, PostCitation, PostPrompt
from app.services.model_registry import find_model_by_name, get_enabled_models

logger = logging.getLogger(__name__)

CITATION_PROVIDERS: dict[str, str] = {
    ProviderId.OPENAI.value: "OpenAI",
    ProviderId.GEMINI.value: "Gemini",
    ProviderId.PERPLEXITY.value: "Perplexity",
}

# Search-capable defaults when the model config names none
CITATION_DEFAULT_MODELS: dict[str, str] = {
    ProviderId.OPENAI.value: "gpt-4o-search-preview",
    ProviderId.GEMINI.value: "gemini-pro",
    ProviderId.PERPLEXITY.value: "sonar-pro",
}

CITATION_SYSTEM_MESSAGE = "You are a citation verification assistant. Provide accurate JSON responses only."
CITATION_TEMPERATURE = 0.3
CITATION_MAX_TOKENS = 500
CITATION_TIMEOUT = 30.0

_JSON_BLOB = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class CitationResult:
    provider: str
    success: bool
    is_mentioned: bool = False
    position: int | None = None
    citation_text: str | None = None
    referrer_url: str | None = None
    confidence: float = 0.5
    source_url: str | None = None
    prompts_analyzed: int = 0
    prompts_mentioning_url: int = 0
    search_context: str | None = None
    raw_response: str = ""
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "provider": self.provider,
            "is_mentioned": self.is_mentioned,
            "position": self.position,
            "citation_text": self.citation_text,
            "referrer_url": self.referrer_url,
            "confidence": self.confidence,
            "source_url": self.source_url,
            "prompts_analyzed": self.prompts_analyzed,
            "prompts_mentioning_url": self.prompts_mentioning_url,
            "search_context": self.search_context,
            "raw_response": self.raw_response,
        }
        if self.error:
            data["error"] = self.error
        data.update(self.extra)
        return data


# ---------------------------------------------------------------------------
# Prompt + parsing
# ---------------------------------------------------------------------------


def build_citation_prompt(url: str, combined_prompts: str, cap: int = 25) -> str:
    return (
        f"Please check if the URL '{url}' is cited or mentioned as a source in response to these prompts: "
        f"{combined_prompts}.\n"
        "Note: These prompts have been selected from a larger set using proportional distribution across "
        f"AI models (maximum {cap} prompts).\n"
        "Please respond with a JSON object containing:\n"
        "- 'is_mentioned': boolean (true if the URL is mentioned/cited)\n"
        "- 'position': integer or null (the position/rank of the citation, 1 being first, null if not mentioned)\n"
        "- 'citation_text': string or null (the exact text where the URL is mentioned)\n"
        "- 'referrer_url': string or null (the URL/page where you found this citation or would reference it - "
        f"the page that cites/mentions '{url}')\n"
        "- 'confidence': float (confidence level between 0 and 1)\n"
        f"- 'source_url': string (the URL being checked: '{url}')\n"
        "- 'prompts_analyzed': integer (total number of prompts/questions analyzed)\n"
        "- 'prompts_mentioning_url': integer (number of prompts where this URL was found as a source)\n"
        "- 'search_context': string (brief description of how/where the URL was found or not found)\n"
        "Only respond with the JSON object, no additional text."
    )


def parse_citation_response(content: str, provider: str) -> CitationResult:
    """Read the first ``{...}`` blob; missing fields take neutral defaults."""
    match = _JSON_BLOB.search(content or "")
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return CitationResult(
                provider=provider,
                success=True,
                is_mentioned=bool(data.get("is_mentioned", False)),
                position=data.get("position"),
                citation_text=data.get("citation_text"),
                referrer_url=data.get("referrer_url"),
                confidence=data.get("confidence", 0.5),
                source_url=data.get("source_url"),
                prompts_analyzed=data.get("prompts_analyzed", 0),
                prompts_mentioning_url=data.get("prompts_mentioning_url", 0),
                search_context=data.get("search_context"),
                raw_response=content,
            )

    logger.warning("Could not parse citation response from %s", provider, extra={"provider": provider})
    return CitationResult(
        provider=provider,
        success=False,
        confidence=0.0,
        search_context="Failed to parse AI response",
        raw_response=content or "",
        extra={"parse_error": "Failed to parse JSON response"},
    )


# ---------------------------------------------------------------------------
# Prompt pool
# ---------------------------------------------------------------------------


async def selected_prompts_by_provider(db: AsyncSession, post_id: int) -> dict[str, list[str]]:
    result = await db.execute(
        select(PostPrompt)
        .where(PostPrompt.post_id == post_id, PostPrompt.is_selected.is_(True))
        .order_by(PostPrompt.order, PostPrompt.id)
    )
    grouped: dict[str, list[str]] = {}
    for prompt in result.scalars().all():
        grouped.setdefault(prompt.ai_provider or "unknown", []).append(prompt.prompt)
    return grouped


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class CitationCheckService:
    def __init__(self, db: AsyncSession, gateway: ProviderGateway, cap: int | None = None):
        self.db = db
        self.gateway = gateway
        self.cap = cap or settings.citation_prompt_cap

    async def run_citation_check(self, post: Post) -> dict:
        grouped = await selected_prompts_by_provider(self.db, post.id)
        selection_info = selection_breakdown(grouped, self.cap)
        combined = combine_prompts(select_prompts(grouped, self.cap))

        if not combined:
            return {
                "success": False,
                "message": "No prompts found for the brand associated with this post",
                "results": {},
                "prompt_selection_info": selection_info,
            }

        models = await get_enabled_models(self.db)
        results: dict[str, dict] = {}
        for provider, display_name in CITATION_PROVIDERS.items():
            try:
                result = await self.check_with_provider(models, provider, display_name, post.url, combined)
            except (ProviderConfigError, ProviderError) as e:
                logger.error("Citation check failed for %s on post %d: %s", provider, post.id, e)
                results[provider] = {"success": False, "error": str(e), "is_mentioned": False, "position": None}
                continue
            await self.store_result(post, result)
            results[provider] = result.to_dict()

        return {
            "success": True,
            "post_id": post.id,
            "post_url": post.url,
            "combined_prompts": combined,
            "prompt_selection_info": selection_info,
            "results": results,
        }

    async def check_with_provider(
        self, models: list, provider: str, display_name: str, url: str, combined_prompts: str
    ) -> CitationResult:
        model = find_model_by_name(models, provider)
        if model is None or not model.has_api_key:
            raise ProviderConfigError(f"{display_name} API key not configured")

        prompt = f"{CITATION_SYSTEM_MESSAGE}\n\n{build_citation_prompt(url, combined_prompts, self.cap)}"
        response = await self.gateway.complete(
            model,
            prompt,
            timeout=CITATION_TIMEOUT,
            temperature=CITATION_TEMPERATURE,
            max_tokens=CITATION_MAX_TOKENS,
            default_model=CITATION_DEFAULT_MODELS[provider],
        )
        return parse_citation_response(response.text, provider)

    async def store_result(self, post: Post, result: CitationResult) -> None:
        """Upsert the (post, provider) citation row."""
        table = PostCitation.__table__
        metadata = {
            "confidence": result.confidence,
            "raw_response": result.raw_response,
            "provider": result.provider,
            "success": result.success,
            "source_url": result.source_url or post.url,
            "referrer_url": result.referrer_url,
            "prompts_analyzed": result.prompts_analyzed,
            "prompts_mentioning_url": result.prompts_mentioning_url,
            "search_context": result.search_context,
        }
        values = {
            "post_id": post.id,
            "ai_model": result.provider,
            "is_mentioned": result.is_mentioned,
            "position": result.position if isinstance(result.position, int) else None,
            "citation_text": result.citation_text,
            "citation_url": result.referrer_url,
            "confidence": _as_float(result.confidence),
            "metadata": metadata,
            "checked_at": datetime.now(timezone.utc),
        }
        stmt = pg_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_post_citation_post_model",
            set_={key: stmt.excluded[key] for key in values if key not in ("post_id", "ai_model")},
        )
        await self.db.execute(stmt)


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
