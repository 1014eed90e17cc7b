"""Analysis instruction prompt: answer the question, then grade the answer.

The model fills two delimited sections in one call; ``response_parser``
reads them back and tolerates models that ignore the layout.
"""

from __future__ import annotations

from collections.abc import Sequence

HTML_START = "HTML_RESPONSE_START"
HTML_END = "HTML_RESPONSE_END"
ANALYSIS_START = "ANALYSIS_START"
ANALYSIS_END = "ANALYSIS_END"

RESOURCE_TYPES = (
    "competitor_website",
    "industry_report",
    "news_article",
    "documentation",
    "blog_post",
    "research_paper",
    "social_media",
    "reddit",
    "youtube",
    "marketplace",
    "review_site",
    "other",
)


def _community_requirements(phrase: str, subreddits: Sequence[str]) -> str:
    lines: list[str] = []
    if subreddits:
        targets = ", ".join(f"r/{name}" for name in subreddits)
        lines.append(
            f"**CRITICAL REQUIREMENT**: You MUST include AT LEAST 2-3 relevant Reddit posts/discussions from these "
            f"target subreddits: {targets}. Include actual Reddit URLs (e.g., "
            f"https://reddit.com/r/subreddit/comments/...) that discuss topics related to [{phrase}] in these "
            "communities."
        )
    youtube = f"**MANDATORY**: Include at least 1-2 YouTube videos (youtube.com or youtu.be URLs) related to [{phrase}]."
    if not subreddits:
        youtube += f" Also include at least 1-2 Reddit discussions (reddit.com URLs) from relevant subreddits discussing [{phrase}]."
    lines.append(youtube)
    return "\n\n".join(lines)


def build_analysis_prompt(
    brand_name: str,
    competitors: Sequence[str],
    phrase: str,
    subreddits: Sequence[str] = (),
) -> str:
    """Build the answer-and-analyze prompt for one tracked question."""
    competitor_list = ", ".join(competitors)
    requirements = _community_requirements(phrase, subreddits)
    resource_types = ", ".join(RESOURCE_TYPES)

    return f"""You are an AI assistant. Your task is to generate a natural response to a user question, and then analyze that response.

USER QUESTION: [{phrase}]

INSTRUCTIONS:

STEP 1: GENERATE STANDARD RESPONSE
Generate a natural, helpful, and objective HTML-formatted response to the question above.
- Answer EXACTLY as you would if a normal user asked this on your platform.
- Do NOT force mentions of [{brand_name}] or its competitors unless they are naturally the best answer.
- Do NOT interpret the analysis requirements below as instructions for this response text.
- Keep the tone professional, objective, and informative.

STEP 2: ANALYZE THE RESPONSE
After generating the response, analyze it based on the following context:
- Target Brand: [{brand_name}]
- Competitors: [{competitor_list}]

{requirements}

STRUCTURE YOUR RESPONSE AS FOLLOWS:

{HTML_START}
[Insert your natural, unbiased HTML response here]
{HTML_END}

{ANALYSIS_START}
Resources: [List referenced or relevant resources here. Format:
- URL: [url]
- Type: [one of: {resource_types}]
- Title: [title]
- Description: [brief description]
]

Brand_Sentiment: [Positive/Neutral/Negative score 1-10 for [{brand_name}] if mentioned]
Brand_Position: [Percentage prominence of [{brand_name}], 0 if not mentioned]
Competitor_Mentions: [JSON object of mentioned competitors, e.g. {{"Name": {{"count": 2, "sentiment": 70}}}}]
{ANALYSIS_END}"""
