"""Candidate question generation for brands and posts.

An LLM is asked for N end-user questions, one per line; the raw answer is
cleaned into a list of question strings. When the model fails or yields
nothing usable, fixed template questions about the subject are used instead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from app.gateway.gateway import ProviderGateway
from app.gateway.vendor_adapters import ProviderConfigError, ProviderError
from app.models.ai_model import AiModel

logger = logging.getLogger(__name__)

SOURCE_AI = "ai_generated"
SOURCE_FALLBACK = "fallback"
SOURCE_USER = "user_added"

_NUMBERING = re.compile(r"^\d+\.?\s*")
_INTERROGATIVE = re.compile(
    r"^(what|how|why|when|where|which|who|can|is|are|do|does|will|would|should)\b",
    re.IGNORECASE,
)


@dataclass
class SubjectContext:
    """What the questions are about: a brand website or a single post."""

    kind: str  # brand | post
    url: str
    name: str = ""
    title: str = ""
    description: str = ""

    @property
    def label(self) -> str:
        return self.title or self.name or self.url


@dataclass
class GeneratedQuestions:
    questions: list[str]
    source: str
    provider: str


# ---------------------------------------------------------------------------
# Instruction prompts
# ---------------------------------------------------------------------------


def build_question_prompt(website: str, description: str = "", count: int = 25) -> str:
    """Instruction prompt asking for generic, brand-free questions about a website's domain."""
    context = ""
    if description:
        context = (
            f"\n\nKEY FOCUS AREAS / TARGET KEYWORDS: {description}\n\n"
            "IMPORTANT: Generate questions that naturally incorporate these keywords and focus areas "
            "while remaining generic and avoiding brand names."
        )
    return (
        f"Given the website {website}, analyze its content to identify key themes, products, benefits, "
        f"problems solved and target user needs. Then generate {count} unique, generic questions that "
        "reflect natural user intents, as if potential customers were looking for solutions where the "
        f"website's offerings would be highly relevant.{context}\n\n"
        "Ensure each question:\n"
        f"1. Does NOT include {website} or any brand name, keeping it fully generic.\n"
        "2. Focuses on user problems, remedies or comparisons in the website's domain.\n"
        "3. Varies in intent (how-to, alternatives, product comparisons, best options).\n"
        "4. Is concise and under 20 words.\n"
        "5. Reflects real search behavior.\n\n"
        "Requirements:\n"
        "- Return ONLY the questions, one per line\n"
        "- No numbering, bullets, or other formatting\n"
        "- No explanations or additional text\n\n"
        f"Generate exactly {count} questions:"
    )


def build_post_prompt(url: str, title: str = "", description: str = "", count: int = 25) -> str:
    """Instruction prompt asking for questions a given post would be cited for."""
    context = f"\n\nAdditional context about this post: {description}" if description else ""
    return (
        f"Analyze the post URL {url} and the post title '{title}' and generate {count} questions that people "
        f"would search for where this specific post would be a valuable and relevant source.{context}\n\n"
        "Requirements:\n"
        f"- Focus on questions where {url} would be cited as a source or reference\n"
        "- Make questions specific to the content, topic or information this post provides\n"
        "- Questions should be natural search queries that would lead to this post being mentioned\n"
        "- Return ONLY the questions, one per line\n"
        "- No numbering, bullets, or other formatting\n"
        "- No explanations or additional text\n\n"
        f"Generate exactly {count} citation-worthy questions:"
    )


def build_subject_prompt(subject: SubjectContext, count: int) -> str:
    if subject.kind == "post":
        return build_post_prompt(subject.url, subject.title, subject.description, count)
    return build_question_prompt(subject.url, subject.description, count)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def is_question(line: str) -> bool:
    return bool(line) and ("?" in line or bool(_INTERROGATIVE.match(line)))


def parse_questions(content: str, count: int | None = None) -> list[str]:
    """Clean a raw model answer into question strings.

    Lines are trimmed, ``"1. "`` prefixes dropped, and anything that neither
    contains ``?`` nor opens with an interrogative word is discarded.
    """
    questions: list[str] = []
    for raw_line in (content or "").split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        line = _NUMBERING.sub("", line).strip()
        if is_question(line):
            questions.append(line)
    if count is not None:
        questions = questions[:count]
    return questions


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

_BRAND_FALLBACKS = [
    "What are the key features of {subject}?",
    "How can {subject} help with business needs?",
    "What makes {subject} different from competitors?",
    "Is {subject} suitable for small businesses?",
    "What are the pricing options available for {subject}?",
    "What are the main benefits of using {subject}?",
    "How do I get started with {subject}?",
    "What customer support options does {subject} offer?",
    "Can {subject} integrate with other tools?",
    "What are users saying about {subject}?",
]

_POST_FALLBACKS = [
    "What information is provided in {url}?",
    "What are the main points discussed in {title}?",
    "How does {url} address the topic?",
    "What insights can be found in {title}?",
    "What evidence does {url} provide?",
    "How reliable is the information in {title}?",
    "What sources does {url} reference?",
    "What conclusions are drawn in {title}?",
    "How current is the information in {url}?",
    "What methodology is used in {title}?",
]


def fallback_questions(subject: SubjectContext) -> list[str]:
    """Template questions used when no model produced anything."""
    if subject.kind == "post":
        title = subject.title or subject.url
        return [q.format(url=subject.url, title=title) for q in _POST_FALLBACKS]
    return [q.format(subject=subject.name or subject.url) for q in _BRAND_FALLBACKS]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


async def generate_questions(
    gateway: ProviderGateway,
    model: AiModel,
    subject: SubjectContext,
    count: int,
    *,
    use_fallback: bool = True,
    timeout: float | None = None,
) -> GeneratedQuestions:
    """Ask one model for ``count`` questions about ``subject``.

    With ``use_fallback`` a failed call or an unusable answer yields the
    template questions; without it the result is simply empty.
    """
    prompt = build_subject_prompt(subject, count)
    try:
        response = await gateway.complete(model, prompt, timeout=timeout)
        questions = parse_questions(response.text, count)
    except (ProviderConfigError, ProviderError) as e:
        logger.error("Question generation failed for %s via %s: %s", subject.label, model.name, e)
        questions = []

    if questions:
        logger.info("Generated %d questions for %s via %s", len(questions), subject.label, model.name)
        return GeneratedQuestions(questions=questions, source=SOURCE_AI, provider=model.name)

    if not use_fallback:
        return GeneratedQuestions(questions=[], source=SOURCE_AI, provider=model.name)

    logger.warning("No usable questions from %s for %s, using fallback templates", model.name, subject.label)
    return GeneratedQuestions(questions=fallback_questions(subject), source=SOURCE_FALLBACK, provider=SOURCE_FALLBACK)
