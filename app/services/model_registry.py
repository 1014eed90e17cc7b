"""Model registry — enabled-model lookups and analysis model resolution."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.metrics import MODELS_DISABLED
from app.distribution.selector import DistributionStrategy, ModelSelector
from app.gateway.gateway import ConnectionCheck, ProviderGateway
from app.models.ai_model import AiModel

logger = logging.getLogger(__name__)


class NoEnabledModelError(LookupError):
    """No model can serve the request; every downstream step depends on one."""


async def get_enabled_models(db: AsyncSession) -> list[AiModel]:
    """Enabled models in distribution order."""
    result = await db.execute(select(AiModel).where(AiModel.is_enabled.is_(True)).order_by(AiModel.order, AiModel.id))
    return list(result.scalars().all())


def find_model_by_name(models: list[AiModel], name: str | None) -> AiModel | None:
    """Case-insensitive name match among the given models."""
    wanted = (name or "").strip().lower()
    if not wanted:
        return None
    return next((m for m in models if m.name.lower() == wanted), None)


async def resolve_model(
    models: list[AiModel],
    selector: ModelSelector,
    preferred_name: str | None = None,
    session_id: str | None = None,
    strategy: DistributionStrategy | str = DistributionStrategy.WEIGHTED,
) -> AiModel:
    """Preferred model if enabled, otherwise the distribution's pick.

    Raises NoEnabledModelError when nothing is available.
    """
    if preferred_name:
        model = find_model_by_name(models, preferred_name)
        if model is not None:
            return model
        logger.warning(
            "Preferred model '%s' is not enabled (enabled: %s), using distribution",
            preferred_name,
            ", ".join(m.name for m in models) or "none",
        )

    model = await selector.select_model(models, strategy, session_id)
    if model is None:
        raise NoEnabledModelError("No enabled AI model found")
    return model


async def disable_model(db: AsyncSession, model: AiModel) -> None:
    model.is_enabled = False
    db.add(model)
    await db.flush()
    logger.warning("Disabled AI model %s (%s)", model.name, model.display_name)


async def check_and_disable_models(db: AsyncSession, gateway: ProviderGateway) -> tuple[int, list[ConnectionCheck]]:
    """Probe every enabled model and disable the ones that fail.

    Returns the number of models tested and the failed checks.
    """
    models = await get_enabled_models(db)
    failures: list[ConnectionCheck] = []
    for model in models:
        label = model.display_name or model.name
        logger.info("Testing AI model: %s", label, extra={"provider": model.name})
        try:
            check = await gateway.check_model(model)
        except Exception as e:
            logger.exception("Health check crashed for %s", label, extra={"provider": model.name})
            check = ConnectionCheck(False, label, f"{label} request failed.", error=str(e), error_type="api_error")
        if check.success:
            continue
        await disable_model(db, model)
        MODELS_DISABLED.labels(provider=model.name).inc()
        failures.append(check)

    logger.info("AI models health check completed: tested=%d failed=%d", len(models), len(failures))
    return len(models), failures
