"""Brand / competitor mention detection in AI answers.

Search is a case-insensitive substring scan over name variants. The bare
domain is only consulted when no name variant matched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from numbers import Real
from typing import Any

from app.analysis.types import EntityType, MentionEvent, MentionMatch, MentionTarget

logger = logging.getLogger(__name__)

CONTEXT_RADIUS = 100
NEUTRAL_SENTIMENT = 50

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_SCHEME = re.compile(r"^https?://")
_WWW = re.compile(r"^www\.")


# ---------------------------------------------------------------------------
# Search terms
# ---------------------------------------------------------------------------


def extract_domain(url: str | None) -> str | None:
    """``https://www.Acme.com/path`` -> ``acme.com``."""
    if not url:
        return None
    value = _WWW.sub("", _SCHEME.sub("", url.strip().lower()))
    host = value.split("/", 1)[0]
    return host or None


def _unique_terms(terms: Iterable[str | None]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for term in terms:
        term = (term or "").strip()
        if term and term.lower() not in seen:
            seen.add(term.lower())
            result.append(term)
    return result


def _domain_terms(domain: str | None) -> list[str]:
    if not domain:
        return []
    parts = domain.split(".")
    return [domain, parts[0]] if len(parts) > 1 else [domain]


def brand_search_terms(name: str, website: str | None) -> list[str]:
    """Brand name, website domain and the domain's first label."""
    return _unique_terms([name, *_domain_terms(extract_domain(website))])


def competitor_search_terms(name: str, domain: str | None, tracked_names: Sequence[str] | None = None) -> list[str]:
    """Competitor name, tracked aliases, domain and the domain's first label."""
    return _unique_terms([name, *(tracked_names or []), *_domain_terms(extract_domain(domain))])


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def sanitize_text(text: str | None) -> str | None:
    """Drop control characters other than tab/newline/CR."""
    if text is None:
        return None
    return _CONTROL_CHARS.sub("", text)


def _context_window(text: str, position: int, length: int) -> str:
    start = max(0, position - CONTEXT_RADIUS)
    end = min(len(text), position + length + CONTEXT_RADIUS)
    return sanitize_text(text[start:end]) or ""


def find_mentions_in_text(text: str, terms: Sequence[str], domain: str | None = None) -> MentionMatch:
    """Count term occurrences; locate the first hit of the first matching term."""
    lowered = (text or "").lower()
    match = MentionMatch()

    for term in terms:
        needle = term.lower()
        if not needle:
            continue
        occurrences = lowered.count(needle)
        if occurrences == 0:
            continue
        match.found = True
        match.count += occurrences
        if match.position is None:
            match.position = lowered.find(needle)
            match.context = _context_window(text, match.position, len(needle))

    if domain and not match.found:
        needle = domain.lower()
        occurrences = lowered.count(needle)
        if occurrences > 0:
            match.found = True
            match.count = occurrences
            match.position = lowered.find(needle)
            match.context = _context_window(text, match.position, len(needle))

    return match


def extract_mentions(answer_text: str, targets: Sequence[MentionTarget]) -> list[MentionEvent]:
    """One MentionEvent per target found in the answer."""
    events: list[MentionEvent] = []
    for target in targets:
        found = find_mentions_in_text(answer_text, target.terms, target.domain or None)
        if not found.found:
            continue
        events.append(
            MentionEvent(
                entity_type=target.entity_type,
                entity_name=target.name,
                entity_domain=target.domain,
                mention_count=found.count,
                position=found.position,
                context=found.context,
                sentiment=target.sentiment,
                competitor_id=target.competitor_id,
            )
        )
    return events


# ---------------------------------------------------------------------------
# Sentiment
# ---------------------------------------------------------------------------


def sentiment_score(value: Any) -> int:
    """Normalize a sentiment label or number to a 0-100 integer.

    Numbers at or below 10 are treated as a 1-10 scale.
    """
    if value is None:
        return NEUTRAL_SENTIMENT

    number: float | None = None
    if isinstance(value, Real) and not isinstance(value, bool):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = None

    if number is not None:
        if number <= 10:
            number *= 10
        return int(max(0, min(100, round(number))))

    label = str(getattr(value, "value", value)).strip().lower()
    if "very positive" in label or "excellent" in label:
        return 90
    if "positive" in label:
        return 75
    if "very negative" in label or "poor" in label:
        return 15
    if "negative" in label:
        return 30
    return NEUTRAL_SENTIMENT


def competitor_sentiment(competitor_mentions: Mapping[str, Any] | None, name: str) -> float | None:
    """Sentiment the model self-reported for a competitor, when numeric."""
    if not competitor_mentions:
        return None
    data = competitor_mentions.get(name)
    if not isinstance(data, Mapping):
        return None
    raw = data.get("sentiment")
    if isinstance(raw, Real) and not isinstance(raw, bool):
        return float(int(raw))
    if isinstance(raw, str):
        try:
            return float(int(float(raw)))
        except ValueError:
            return None
    return None


def brand_target(name: str, website: str | None, sentiment: float | None) -> MentionTarget:
    return MentionTarget(
        entity_type=EntityType.BRAND,
        name=name,
        domain=extract_domain(website) or "",
        terms=brand_search_terms(name, website),
        sentiment=sentiment if sentiment is not None else NEUTRAL_SENTIMENT,
    )


def competitor_target(
    competitor_id: int | None,
    name: str,
    domain: str | None,
    tracked_names: Sequence[str] | None,
    competitor_mentions: Mapping[str, Any] | None,
) -> MentionTarget:
    return MentionTarget(
        entity_type=EntityType.COMPETITOR,
        name=name,
        domain=extract_domain(domain) or "",
        terms=competitor_search_terms(name, domain, tracked_names),
        competitor_id=competitor_id,
        sentiment=competitor_sentiment(competitor_mentions, name),
    )
