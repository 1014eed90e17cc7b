"""Core types for response analysis and visibility aggregation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ResourceType(str, Enum):
    """Normalized citation categories stored on BrandPromptResource."""

    COMPETITOR = "competitor"
    INDUSTRY_REPORT = "industry_report"
    NEWS = "news"
    DOCUMENTATION = "documentation"
    BLOG = "blog"
    RESEARCH = "research"
    SOCIAL = "social"
    REDDIT = "reddit"
    YOUTUBE = "youtube"
    MARKETPLACE = "marketplace"
    REVIEWS = "reviews"
    OTHER = "other"


class EntityType(str, Enum):
    BRAND = "brand"
    COMPETITOR = "competitor"


# ---------------------------------------------------------------------------
# Parsed model output
# ---------------------------------------------------------------------------


@dataclass
class BrandAnalysis:
    """Self-reported metrics from the ANALYSIS block. Defaults apply per field."""

    sentiment: SentimentLabel = SentimentLabel.NEUTRAL
    position: int = 0  # percentage prominence, 0 when not mentioned
    competitor_mentions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "sentiment": self.sentiment.value,
            "position": self.position,
            "competitor_mentions": self.competitor_mentions,
        }


@dataclass
class ParsedResponse:
    html_response: str
    analysis_text: str = ""
    analysis: BrandAnalysis = field(default_factory=BrandAnalysis)
    has_html_section: bool = False
    has_analysis_section: bool = False


@dataclass
class ResourceEntry:
    """One citation URL with its normalized classification."""

    url: str
    type: str = ResourceType.OTHER.value
    domain: str = ""
    title: str = ""
    description: str = ""
    is_competitor_url: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Mentions & visibility
# ---------------------------------------------------------------------------


@dataclass
class MentionTarget:
    """An entity to search for in an answer, with its prepared search terms."""

    entity_type: EntityType
    name: str
    domain: str = ""
    terms: list[str] = field(default_factory=list)
    competitor_id: int | None = None
    sentiment: float | None = None


@dataclass
class MentionMatch:
    found: bool = False
    count: int = 0
    position: int | None = None  # char offset of the first hit
    context: str = ""


@dataclass
class MentionEvent:
    """One entity found in one answer; persisted as a BrandMention row."""

    entity_type: EntityType
    entity_name: str
    entity_domain: str
    mention_count: int
    position: int | None
    context: str
    sentiment: float | None = None
    competitor_id: int | None = None


@dataclass
class MentionRow:
    """The slice of a stored BrandMention used for aggregation."""

    brand_prompt_id: int
    entity_type: str
    entity_name: str
    entity_domain: str | None
    competitor_id: int | None
    mention_count: int
    position: int | None = None
    sentiment: float | None = None
    analyzed_at: datetime | None = None


@dataclass
class VisibilityStat:
    entity_type: str
    entity_name: str
    entity_domain: str | None
    competitor_id: int | None
    visibility: float  # 0-100, presence frequency
    prompts_mentioned: int
    total_prompts: int
    total_mentions: int
    total_all_entities: int
    avg_position: float
    avg_sentiment: float | None

    def to_dict(self) -> dict:
        return asdict(self)
