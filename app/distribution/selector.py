"""Distribution strategies for choosing the next model.

Callers pass the enabled models (ordered by ``order``); the selector never
touches the database. Selection fails softly: no models, no choice.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from enum import Enum
from typing import Any, Protocol

from app.distribution.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

ROUND_ROBIN_KEY = "ai_model_round_robin_index"
PERFORMANCE_KEY = "ai_model_performance_metrics"
USAGE_KEY_TEMPLATE = "ai_model_usage_{session_id}"

COUNTER_TTL_SECONDS = 24 * 3600
PERFORMANCE_TTL_SECONDS = 7 * 24 * 3600

DEFAULT_SUCCESS_RATE = 1.0
DEFAULT_AVG_RESPONSE_TIME = 5.0


class DistributionStrategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    WEIGHTED = "weighted"
    RANDOM = "random"
    PERFORMANCE_BASED = "performance_based"


class SelectableModel(Protocol):
    id: int
    name: str
    display_name: str
    order: int


def parse_strategy(value: DistributionStrategy | str | None) -> DistributionStrategy:
    """Unknown or empty names fall back to weighted."""
    if isinstance(value, DistributionStrategy):
        return value
    try:
        return DistributionStrategy((value or "").strip().lower())
    except ValueError:
        logger.warning("Unknown distribution strategy '%s', using weighted", value)
        return DistributionStrategy.WEIGHTED


def model_weight(model: SelectableModel) -> int:
    """Distribution weight from ``order``; non-positive orders count as 1."""
    order = getattr(model, "order", None) or 0
    return order if order > 0 else 1


class ModelSelector:
    """Picks models under a strategy, persisting its counters in a KeyValueStore."""

    def __init__(self, store: KeyValueStore, rng: random.Random | None = None):
        self.store = store
        self._rng = rng or random.Random()

    async def select_model(
        self,
        models: Sequence[SelectableModel],
        strategy: DistributionStrategy | str = DistributionStrategy.WEIGHTED,
        session_id: str | None = None,
    ) -> SelectableModel | None:
        if not models:
            logger.warning("No enabled AI models available for distribution")
            return None

        strategy = parse_strategy(strategy)
        if strategy == DistributionStrategy.ROUND_ROBIN:
            return await self._round_robin(models)
        if strategy == DistributionStrategy.RANDOM:
            return self._rng.choice(list(models))
        if strategy == DistributionStrategy.PERFORMANCE_BASED:
            return await self._performance_based(models)
        return await self._weighted(models, session_id)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _round_robin(self, models: Sequence[SelectableModel]) -> SelectableModel:
        index = int(await self.store.get(ROUND_ROBIN_KEY, 0) or 0)
        selected = models[index % len(models)]
        await self.store.set(ROUND_ROBIN_KEY, index + 1, COUNTER_TTL_SECONDS)
        return selected

    async def _weighted(self, models: Sequence[SelectableModel], session_id: str | None) -> SelectableModel:
        """Pick the model furthest below its weight share for this session."""
        usage: dict[str, int] = {}
        usage_key = USAGE_KEY_TEMPLATE.format(session_id=session_id) if session_id else None
        if usage_key:
            usage = dict(await self.store.get(usage_key, {}) or {})

        total_weight = sum(model_weight(m) for m in models)
        total_usage = sum(usage.values()) or 1

        selected = models[0]
        lowest_gap = float("inf")
        for model in models:
            desired = model_weight(model) / total_weight
            actual = usage.get(str(model.id), 0) / total_usage
            gap = actual - desired
            if gap < lowest_gap:
                lowest_gap = gap
                selected = model

        if usage_key:
            usage[str(selected.id)] = usage.get(str(selected.id), 0) + 1
            await self.store.set(usage_key, usage, COUNTER_TTL_SECONDS)
        return selected

    async def _performance_based(self, models: Sequence[SelectableModel]) -> SelectableModel:
        metrics: dict[str, dict[str, Any]] = await self.store.get(PERFORMANCE_KEY, {}) or {}

        best: SelectableModel | None = None
        best_score = 0.0
        for model in models:
            stats = metrics.get(str(model.id), {})
            score = performance_score(
                stats.get("success_rate", DEFAULT_SUCCESS_RATE),
                stats.get("avg_response_time", DEFAULT_AVG_RESPONSE_TIME),
            )
            if score > best_score:
                best_score = score
                best = model
        return best or models[0]

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    async def update_performance_metrics(self, model: SelectableModel, success: bool, response_time: float) -> dict:
        """Fold one call outcome (latency in seconds) into the model's rolling stats."""
        metrics: dict[str, dict[str, Any]] = await self.store.get(PERFORMANCE_KEY, {}) or {}
        stats = metrics.get(str(model.id)) or {
            "success_count": 0,
            "total_count": 0,
            "total_response_time": 0.0,
        }

        stats["total_count"] = stats.get("total_count", 0) + 1
        stats["total_response_time"] = stats.get("total_response_time", 0.0) + response_time
        if success:
            stats["success_count"] = stats.get("success_count", 0) + 1

        stats["success_rate"] = stats["success_count"] / stats["total_count"]
        stats["avg_response_time"] = stats["total_response_time"] / stats["total_count"]

        metrics[str(model.id)] = stats
        await self.store.set(PERFORMANCE_KEY, metrics, PERFORMANCE_TTL_SECONDS)
        return stats

    async def distribute_models_for_prompts(
        self,
        models: Sequence[SelectableModel],
        prompt_count: int,
        strategy: DistributionStrategy | str = DistributionStrategy.WEIGHTED,
        session_id: str | None = None,
    ) -> dict[int, str]:
        """Assign a model name to each prompt index; unassignable indexes are left out."""
        distribution: dict[int, str] = {}
        for i in range(prompt_count):
            model = await self.select_model(models, strategy, session_id)
            if model is not None:
                distribution[i] = model.name
        return distribution

    async def get_distribution_stats(self, models: Sequence[SelectableModel], session_id: str) -> list[dict]:
        """Per-model usage counts and shares recorded for a session."""
        usage: dict[str, int] = await self.store.get(USAGE_KEY_TEMPLATE.format(session_id=session_id), {}) or {}
        total = sum(usage.values())

        stats = []
        for model in models:
            count = usage.get(str(model.id), 0)
            stats.append(
                {
                    "model": model.name,
                    "display_name": model.display_name,
                    "count": count,
                    "percentage": round(count / total * 100, 2) if total > 0 else 0,
                }
            )
        return stats


def performance_score(success_rate: float, avg_response_time: float) -> float:
    return success_rate * (10 / max(avg_response_time, 1))
