"""Duplicate removal and provider-balanced selection for generated prompts."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")

SIMILARITY_THRESHOLD = 0.8

_WORD = re.compile(r"[a-z'-]+")


def _words(text: str) -> set[str]:
    return set(_WORD.findall(text))


def word_overlap(a: set[str], b: set[str]) -> float:
    """Shared words divided by the larger word set."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return len(a & b) / longest


def remove_duplicate_prompts(items: Sequence[T], text_of: Callable[[T], str] = str) -> list[T]:
    """Drop exact (case-insensitive) repeats and near-duplicates.

    An item is a near-duplicate when it shares at least 80% of its words with
    an item already kept. First occurrence wins.
    """
    kept: list[T] = []
    seen_texts: set[str] = set()
    seen_words: list[set[str]] = []

    for item in items:
        text = text_of(item).strip().lower()
        if text in seen_texts:
            continue
        words = _words(text)
        if any(word_overlap(words, existing) >= SIMILARITY_THRESHOLD for existing in seen_words):
            continue
        kept.append(item)
        seen_texts.add(text)
        seen_words.append(words)
    return kept


def select_prompts_with_ratio(
    items: Sequence[T],
    limit: int,
    offset: int = 0,
    provider_of: Callable[[T], str | None] = lambda item: getattr(item, "ai_provider", None),
) -> list[T]:
    """Interleave items across providers, one per provider per round, then page."""
    grouped: dict[str, list[T]] = {}
    for item in items:
        grouped.setdefault(provider_of(item) or "unknown", []).append(item)
    if not grouped:
        return []

    needed = offset + limit
    selected: list[T] = []
    longest = max(len(group) for group in grouped.values())
    for round_index in range(longest):
        for group in grouped.values():
            if round_index < len(group):
                selected.append(group[round_index])
                if len(selected) >= needed:
                    return selected[offset:needed]
    return selected[offset:needed]
