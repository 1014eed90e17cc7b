"""Prompt generation service — multi-model question generation for brands and posts.

Every enabled model with an API key is asked for its share of questions.
The pooled answers are de-duplicated and stored with the provider that
produced them; if no model produced anything, fallback templates are stored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.gateway.gateway import ProviderGateway
from app.gateway.types import PRIMARY_PROVIDERS, resolve_provider
from app.models.ai_model import AiModel
from app.models.brand import Brand
from app.models.brand_prompt import BrandPrompt
from app.models.post import Post, PostPrompt
from app.prompt_engine.dedup import remove_duplicate_prompts, select_prompts_with_ratio
from app.prompt_engine.generator import (
    SOURCE_AI,
    SOURCE_FALLBACK,
    SOURCE_USER,
    SubjectContext,
    fallback_questions,
    generate_questions,
)
from app.services.model_registry import get_enabled_models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------


def brand_prompt_count(model: AiModel) -> int:
    return model.prompts_per_brand or settings.prompts_per_model


def post_prompt_count(model: AiModel) -> int:
    """Primary search-style providers get the full share, the rest a sample."""
    if resolve_provider(model.name) in PRIMARY_PROVIDERS:
        return settings.prompts_per_model
    return settings.secondary_prompts_per_model


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


async def collect_questions(
    gateway: ProviderGateway,
    models: list[AiModel],
    subject: SubjectContext,
    count_for: Callable[[AiModel], int],
) -> list[tuple[str, str]]:
    """(question, provider) pairs from every usable model, de-duplicated.

    A model that fails contributes nothing; fallbacks are decided by the caller.
    """
    pooled: list[tuple[str, str]] = []
    for model in models:
        if not model.has_api_key:
            logger.info("Skipping %s for question generation: no API key", model.name)
            continue
        generated = await generate_questions(
            gateway,
            model,
            subject,
            count_for(model),
            use_fallback=False,
            timeout=settings.provider_timeout_seconds,
        )
        pooled.extend((question, model.name) for question in generated.questions)

    unique = remove_duplicate_prompts(pooled, text_of=lambda pair: pair[0])
    logger.info(
        "Collected %d questions for %s (%d after de-duplication)",
        len(pooled),
        subject.label,
        len(unique),
    )
    return unique


def _questions_or_fallback(questions: list[tuple[str, str]], subject: SubjectContext) -> tuple[list[tuple[str, str]], str]:
    if questions:
        return questions, SOURCE_AI
    logger.warning("No model produced questions for %s, storing fallback templates", subject.label)
    return [(q, SOURCE_FALLBACK) for q in fallback_questions(subject)], SOURCE_FALLBACK


async def generate_prompts_for_brand(
    db: AsyncSession,
    gateway: ProviderGateway,
    brand: Brand,
    session_id: str,
    description: str = "",
    replace_existing: bool = False,
) -> list[BrandPrompt]:
    if replace_existing:
        await db.execute(delete(BrandPrompt).where(BrandPrompt.brand_id == brand.id))
        logger.info("Deleted existing prompts for brand %d", brand.id, extra={"brand_id": brand.id})

    subject = SubjectContext(
        kind="brand",
        url=brand.website or brand.name,
        name=brand.name,
        description=description or brand.description or "",
    )
    models = await get_enabled_models(db)
    questions, source = _questions_or_fallback(
        await collect_questions(gateway, models, subject, brand_prompt_count), subject
    )

    start = await _max_brand_order(db, brand.id)
    rows = [
        BrandPrompt(
            brand_id=brand.id,
            prompt=question.strip(),
            source=source,
            ai_provider=provider,
            order=start + index + 1,
            status="suggested",
            is_active=True,
            country_code=brand.country,
            session_id=session_id,
        )
        for index, (question, provider) in enumerate(questions)
    ]
    db.add_all(rows)
    await db.flush()
    logger.info("Stored %d %s prompts for brand %d", len(rows), source, brand.id, extra={"brand_id": brand.id})
    return rows


async def generate_prompts_for_post(
    db: AsyncSession,
    gateway: ProviderGateway,
    post: Post,
    session_id: str,
    description: str = "",
    replace_existing: bool = False,
) -> list[PostPrompt]:
    if replace_existing:
        await db.execute(delete(PostPrompt).where(PostPrompt.post_id == post.id))
        logger.info("Deleted existing prompts for post %d", post.id)

    subject = SubjectContext(
        kind="post",
        url=post.url,
        title=post.title or "",
        description=description or post.description or "",
    )
    models = await get_enabled_models(db)
    questions, source = _questions_or_fallback(
        await collect_questions(gateway, models, subject, post_prompt_count), subject
    )

    start = await _max_post_order(db, post.id)
    rows = [
        PostPrompt(
            post_id=post.id,
            session_id=session_id,
            prompt=question.strip(),
            source=source,
            ai_provider=provider,
            order=start + index + 1,
            is_selected=True,
        )
        for index, (question, provider) in enumerate(questions)
    ]
    db.add_all(rows)
    await db.flush()
    logger.info("Stored %d %s prompts for post %d", len(rows), source, post.id)
    return rows


# ---------------------------------------------------------------------------
# Manual prompts and listing
# ---------------------------------------------------------------------------


async def _max_brand_order(db: AsyncSession, brand_id: int) -> int:
    result = await db.execute(select(func.max(BrandPrompt.order)).where(BrandPrompt.brand_id == brand_id))
    return result.scalar() or 0


async def _max_post_order(db: AsyncSession, post_id: int) -> int:
    result = await db.execute(select(func.max(PostPrompt.order)).where(PostPrompt.post_id == post_id))
    return result.scalar() or 0


async def add_custom_prompt(db: AsyncSession, brand: Brand, session_id: str, prompt_text: str) -> BrandPrompt:
    """Append a user-written prompt after the existing ones."""
    row = BrandPrompt(
        brand_id=brand.id,
        prompt=prompt_text.strip(),
        source=SOURCE_USER,
        ai_provider=None,
        order=await _max_brand_order(db, brand.id) + 1,
        status="active",
        is_active=True,
        country_code=brand.country,
        session_id=session_id,
    )
    db.add(row)
    await db.flush()
    return row


async def add_custom_post_prompt(db: AsyncSession, post: Post, session_id: str, prompt_text: str) -> PostPrompt:
    row = PostPrompt(
        post_id=post.id,
        session_id=session_id,
        prompt=prompt_text.strip(),
        source=SOURCE_USER,
        ai_provider=None,
        order=await _max_post_order(db, post.id) + 1,
        is_selected=True,
    )
    db.add(row)
    await db.flush()
    return row


async def get_post_prompts_with_ratio(db: AsyncSession, post: Post, limit: int = 25, offset: int = 0) -> list[PostPrompt]:
    """AI-generated prompts of currently enabled models, balanced across providers."""
    active_names = [m.name for m in await get_enabled_models(db)]
    if not active_names:
        return []

    result = await db.execute(
        select(PostPrompt)
        .where(
            PostPrompt.post_id == post.id,
            PostPrompt.source != SOURCE_FALLBACK,
            PostPrompt.ai_provider.in_(active_names),
        )
        .order_by(PostPrompt.order)
    )
    prompts = remove_duplicate_prompts(list(result.scalars().all()), text_of=lambda p: p.prompt)
    return select_prompts_with_ratio(prompts, limit, offset)


async def get_brand_prompts_with_ratio(
    db: AsyncSession, brand: Brand, limit: int = 25, offset: int = 0
) -> list[BrandPrompt]:
    active_names = [m.name for m in await get_enabled_models(db)]
    if not active_names:
        return []

    result = await db.execute(
        select(BrandPrompt)
        .where(
            BrandPrompt.brand_id == brand.id,
            BrandPrompt.source != SOURCE_FALLBACK,
            BrandPrompt.ai_provider.in_(active_names),
        )
        .order_by(BrandPrompt.order)
    )
    prompts = remove_duplicate_prompts(list(result.scalars().all()), text_of=lambda p: p.prompt)
    return select_prompts_with_ratio(prompts, limit, offset)
