"""Best-effort extraction of the answer and self-reported metrics.

Models do not reliably follow the requested layout, so every field has a
documented default and nothing here raises on malformed input:

  - missing HTML_RESPONSE markers  -> the whole raw text is the answer
  - missing ANALYSIS markers       -> empty analysis text
  - no / unrecognized sentiment    -> neutral
  - no Brand_Position number       -> 0
  - absent or invalid JSON mentions -> {}
"""

from __future__ import annotations

import json
import logging
import re

from app.analysis.types import BrandAnalysis, ParsedResponse, SentimentLabel

logger = logging.getLogger(__name__)

_HTML_SECTION = re.compile(r"HTML_RESPONSE_START(.*?)HTML_RESPONSE_END", re.DOTALL)
_ANALYSIS_SECTION = re.compile(r"ANALYSIS_START(.*?)ANALYSIS_END", re.DOTALL)
_SENTIMENT = re.compile(r"Brand_Sentiment:\s*([^\n]+)", re.IGNORECASE)
_POSITION = re.compile(r"Brand_Position:\s*(\d+)%?", re.IGNORECASE)
_COMPETITOR_MENTIONS = re.compile(r"Competitor_Mentions:\s*(?=\{)")

_json_decoder = json.JSONDecoder()


def parse_response(raw: str) -> ParsedResponse:
    """Split a raw model answer into the answer text and the analysis block."""
    raw = raw or ""

    html_match = _HTML_SECTION.search(raw)
    html_response = html_match.group(1).strip() if html_match else raw

    analysis_match = _ANALYSIS_SECTION.search(raw)
    analysis_text = analysis_match.group(1).strip() if analysis_match else ""

    if not html_match:
        logger.warning("AI response has no HTML_RESPONSE section, using the full text as the answer")
    if not analysis_match:
        logger.warning("AI response has no ANALYSIS section, analysis defaults apply")

    return ParsedResponse(
        html_response=html_response,
        analysis_text=analysis_text,
        analysis=parse_analysis_text(analysis_text),
        has_html_section=html_match is not None,
        has_analysis_section=analysis_match is not None,
    )


def parse_analysis_text(analysis_text: str) -> BrandAnalysis:
    return BrandAnalysis(
        sentiment=parse_sentiment(analysis_text),
        position=parse_position(analysis_text),
        competitor_mentions=parse_competitor_mentions(analysis_text),
    )


def parse_sentiment(analysis_text: str) -> SentimentLabel:
    match = _SENTIMENT.search(analysis_text or "")
    if not match:
        return SentimentLabel.NEUTRAL
    value = match.group(1).strip().lower()
    if "positive" in value:
        return SentimentLabel.POSITIVE
    if "negative" in value:
        return SentimentLabel.NEGATIVE
    return SentimentLabel.NEUTRAL


def parse_position(analysis_text: str) -> int:
    match = _POSITION.search(analysis_text or "")
    return int(match.group(1)) if match else 0


def parse_competitor_mentions(analysis_text: str) -> dict:
    """Decode the JSON object following ``Competitor_Mentions:``.

    Decoding starts at the opening brace and stops at its matching close,
    so nested objects survive.
    """
    match = _COMPETITOR_MENTIONS.search(analysis_text or "")
    if not match:
        return {}
    blob = analysis_text[match.end():]
    try:
        value, _ = _json_decoder.raw_decode(blob)
    except ValueError as e:
        logger.warning("Failed to parse competitor mentions JSON: %s (%s)", blob[:200], e)
        return {}
    if not isinstance(value, dict):
        logger.warning("Competitor mentions is not a JSON object: %r", value)
        return {}
    return value
