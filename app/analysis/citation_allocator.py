"""Proportional prompt sampling for citation checks (largest-remainder method).

Given prompts grouped by the provider that generated them, pick at most
``cap`` prompts so each provider keeps its share of the pool:

  1. every provider gets ``floor(count / total * cap)`` slots
  2. leftover slots go one each to the providers with the largest
     fractional remainders (ties keep group order)
  3. each provider contributes its first N prompts, in original order

Arithmetic is done on integers so the remainders compare exactly.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TypeVar

T = TypeVar("T")

DEFAULT_CAP = 25


def allocate_counts(counts: Mapping[str, int], cap: int = DEFAULT_CAP) -> dict[str, int]:
    """Slots per provider. Pools within the cap are taken whole."""
    total = sum(counts.values())
    if total <= cap:
        return dict(counts)

    # exact share = count * cap / total = floor + remainder / total
    allocated = {provider: (count * cap) // total for provider, count in counts.items()}
    fractions = {provider: (count * cap) % total for provider, count in counts.items()}

    leftover = cap - sum(allocated.values())
    by_fraction = sorted(counts, key=lambda provider: fractions[provider], reverse=True)
    for provider in by_fraction[:leftover]:
        allocated[provider] += 1
    return allocated


def select_prompts(prompts_by_provider: Mapping[str, Sequence[T]], cap: int = DEFAULT_CAP) -> list[T]:
    """Concatenate each provider's allotted prompts, in group order."""
    allocation = allocate_counts({p: len(items) for p, items in prompts_by_provider.items()}, cap)
    selected: list[T] = []
    for provider, items in prompts_by_provider.items():
        selected.extend(list(items)[: allocation[provider]])
    return selected


def combine_prompts(prompts: Sequence[str]) -> str:
    """Single query string sent to the citation-check models."""
    return ", ".join(prompts)


def selection_breakdown(prompts_by_provider: Mapping[str, Sequence[T]], cap: int = DEFAULT_CAP) -> dict:
    """Per-provider share and selected count, stored alongside citation results."""
    counts = {provider: len(items) for provider, items in prompts_by_provider.items()}
    total = sum(counts.values())
    allocation = allocate_counts(counts, cap)
    return {
        "total_prompts_available": total,
        "max_prompts_limit": cap,
        "providers_breakdown": {
            provider: {
                "total_prompts": count,
                "proportion": f"{round(count / total * 100, 2):.2f}%" if total else "0.00%",
                "selected_count": allocation[provider],
            }
            for provider, count in counts.items()
        },
    }
