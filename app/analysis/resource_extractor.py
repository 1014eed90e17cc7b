"""Citation resource extraction — structured Resources block plus URL harvesting.

Sources, in priority order:
  - ``Resources:`` block in the analysis text (``- URL:`` / ``- Type:`` /
    ``- Title:`` / ``- Description:`` lines, a new URL line starts a new entry)
  - Bare URLs in the answer text
  - ``href="..."`` attributes in the answer HTML

Entries are deduplicated by exact URL, first occurrence wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from urllib.parse import urlparse

from app.analysis.types import ResourceEntry, ResourceType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_RESOURCES_BLOCK = re.compile(r"Resources:\s*(.+?)(?=Brand_Sentiment:|$)", re.DOTALL)

_URL_LINE = re.compile(r"^-?\s*URL:\s*(.+)$", re.IGNORECASE)
_TYPE_LINE = re.compile(r"^-?\s*Type:\s*(.+)$", re.IGNORECASE)
_TITLE_LINE = re.compile(r"^-?\s*Title:\s*(.+)$", re.IGNORECASE)
_DESCRIPTION_LINE = re.compile(r"^-?\s*Description:\s*(.+)$", re.IGNORECASE)

_BARE_URL = re.compile(r"https?://[^\s<>\"]+", re.IGNORECASE)
_HREF = re.compile(r"href=[\"']([^\"']+)[\"']", re.IGNORECASE)

_TYPE_SYNONYMS: dict[str, ResourceType] = {
    "competitor_website": ResourceType.COMPETITOR,
    "competitor": ResourceType.COMPETITOR,
    "industry_report": ResourceType.INDUSTRY_REPORT,
    "news_article": ResourceType.NEWS,
    "news": ResourceType.NEWS,
    "documentation": ResourceType.DOCUMENTATION,
    "docs": ResourceType.DOCUMENTATION,
    "blog_post": ResourceType.BLOG,
    "blog": ResourceType.BLOG,
    "research_paper": ResourceType.RESEARCH,
    "research": ResourceType.RESEARCH,
    "social_media": ResourceType.SOCIAL,
    "social": ResourceType.SOCIAL,
    "reddit": ResourceType.REDDIT,
    "youtube": ResourceType.YOUTUBE,
    "marketplace": ResourceType.MARKETPLACE,
    "review_site": ResourceType.REVIEWS,
    "reviews": ResourceType.REVIEWS,
    "other": ResourceType.OTHER,
}

# Self-reported types that may be refined from the domain
_REFINABLE_TYPES = {"other", "social_media", "social"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clean_url(url: str) -> str:
    url = url.strip().strip("[]<>()\"'")
    return url.rstrip(".,;:)")


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in url


def url_host(url: str) -> str:
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def normalize_resource_type(raw_type: str) -> str:
    """Map a self-reported type through the synonym table, defaulting to ``other``."""
    return _TYPE_SYNONYMS.get((raw_type or "").strip().lower(), ResourceType.OTHER).value


def is_competitor_url(domain: str, competitors: Iterable[str]) -> bool:
    """Loose competitor match on a URL host.

    True when the host equals a competitor name/domain or either string
    contains the other. Short competitor names can produce false positives;
    this is a known heuristic limitation kept for parity with stored data.
    """
    host = (domain or "").lower()
    if not host:
        return False
    for competitor in competitors:
        needle = (competitor or "").strip().lower()
        if not needle:
            continue
        if host == needle or needle in host or host in needle:
            return True
    return False


def create_resource_entry(
    url: str,
    raw_type: str,
    title: str,
    description: str,
    competitors: Sequence[str],
) -> ResourceEntry | None:
    """Validate and classify one URL; invalid URLs yield None."""
    url = _clean_url(url)
    if not is_valid_url(url):
        logger.debug("Skipping invalid resource URL: %s", url[:200])
        return None

    domain = url_host(url)
    resource_type = (raw_type or "other").strip().lower()

    if resource_type in _REFINABLE_TYPES and domain:
        if "reddit.com" in domain or "redd.it" in domain:
            resource_type = "reddit"
        elif "youtube.com" in domain or "youtu.be" in domain:
            resource_type = "youtube"

    return ResourceEntry(
        url=url,
        type=normalize_resource_type(resource_type),
        domain=domain,
        title=(title or "").strip()[:500],
        description=(description or "").strip(),
        is_competitor_url=is_competitor_url(domain, competitors),
    )


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def parse_structured_resources(resources_text: str, competitors: Sequence[str]) -> list[ResourceEntry]:
    """Parse the line-oriented Resources grammar."""
    entries: list[ResourceEntry] = []
    current: dict[str, str] = {}

    def flush() -> None:
        if current:
            entry = create_resource_entry(
                current.get("url", ""),
                current.get("type", "other"),
                current.get("title", ""),
                current.get("description", ""),
                competitors,
            )
            if entry is not None:
                entries.append(entry)

    for raw_line in (resources_text or "").split("\n"):
        line = raw_line.strip()
        if not line or line == "-":
            continue

        if match := _URL_LINE.match(line):
            flush()
            current = {"url": match.group(1).strip()}
        elif match := _TYPE_LINE.match(line):
            current["type"] = match.group(1).strip()
        elif match := _TITLE_LINE.match(line):
            current["title"] = match.group(1).strip()
        elif match := _DESCRIPTION_LINE.match(line):
            current["description"] = match.group(1).strip()

    flush()
    return entries


def harvest_urls(html_response: str) -> list[str]:
    """Bare URLs first, then valid href targets, in document order."""
    urls = [_clean_url(u) for u in _BARE_URL.findall(html_response or "")]
    urls.extend(_clean_url(h) for h in _HREF.findall(html_response or "") if is_valid_url(_clean_url(h)))
    return urls


def extract_resources(
    analysis_text: str,
    html_response: str,
    competitors: Sequence[str] = (),
) -> list[ResourceEntry]:
    """All citation resources for one analyzed answer, unique by URL."""
    resources: list[ResourceEntry] = []
    seen_urls: set[str] = set()

    block = _RESOURCES_BLOCK.search(analysis_text or "")
    if block:
        for entry in parse_structured_resources(block.group(1), competitors):
            if entry.url not in seen_urls:
                seen_urls.add(entry.url)
                resources.append(entry)

    for url in harvest_urls(html_response):
        if url in seen_urls:
            continue
        entry = create_resource_entry(url, "other", "", "", competitors)
        if entry is not None:
            seen_urls.add(entry.url)
            resources.append(entry)

    logger.debug(
        "Extracted %d resources (%d competitor)",
        len(resources),
        sum(1 for r in resources if r.is_competitor_url),
    )
    return resources
