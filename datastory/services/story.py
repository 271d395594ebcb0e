"""
Story orchestrator - turn an analysis into a publishable long-form draft.

The story caller walks a primary-then-secondary provider chain by default;
only after every attempt fails is a StoryGenerationError raised, carrying the
primary provider's failure message.
"""
import logging
import time
from typing import List, Optional

from datastory.core.config import get_settings
from datastory.core.errors import GenerationAttemptsExhausted, StoryGenerationError
from datastory.core.sanitization import sanitize_for_prompt
from datastory.core.schemas import AnalysisResult, Dataset, StoryDraft, StoryResult
from datastory.services.providers import GenerativeCaller

logger = logging.getLogger(__name__)

SYSTEM_PROMPTS = {
    "en": "You are a professional data journalist who writes data-driven news stories. Reply with JSON only.",
    "ar": "أنت صحفي بيانات محترف متخصص في كتابة القصص الإخبارية باللغة العربية. أجب بصيغة JSON فقط.",
}

LANGUAGE_NAMES = {
    "en": "English",
    "ar": "Modern Standard Arabic",
}

RESPONSE_SHAPE = """{
  "title": "a compelling headline",
  "subtitle": "a subheadline stating the main idea",
  "excerpt": "a short summary (2-3 sentences)",
  "content": "the full story as HTML (use <p>, <h2>, <strong>, <ul>, <li>)",
  "outline": {
    "sections": [
      {
        "heading": "section heading",
        "content": "section content",
        "dataReferences": ["chart-1", "chart-2"]
      }
    ]
  }
}"""


def _numbered(items: List[str]) -> str:
    if not items:
        return "(none)"
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def build_story_prompt(
    dataset: Dataset,
    analysis: AnalysisResult,
    source_name: str,
    locale: Optional[str] = None,
) -> str:
    """Story prompt: dataset basics, the insights and the available charts."""
    locale = locale or get_settings().locale
    insights = analysis.insights
    column_names = ", ".join(sanitize_for_prompt(c.name, 60) for c in dataset.columns)
    charts = "\n".join(
        f"- {chart.id} ({chart.type}): {sanitize_for_prompt(chart.title, 120)}"
        for chart in analysis.charts
    ) or "(none)"

    return f"""Write a data-driven news story from the analysis below.

Basics:
- File name: {sanitize_for_prompt(source_name)}
- Records: {dataset.row_count}
- Columns: {column_names}

Key findings:
{_numbered(insights.key_findings)}

Trends:
{_numbered(insights.trends)}

Recommendations:
{_numbered(insights.recommendations)}

Narrative summary:
{insights.narrative}

Available charts (reference them by id in dataReferences):
{charts}

The story must be engaging and easy to read, supported by the numbers and facts above,
logically organized, and written in {LANGUAGE_NAMES.get(locale, LANGUAGE_NAMES["en"])},
with a headline, a subheadline and complete content.

Return the result as a JSON object with exactly this shape:
{RESPONSE_SHAPE}"""


def generate_story(
    dataset: Dataset,
    analysis: AnalysisResult,
    source_name: str,
    caller: GenerativeCaller,
    locale: Optional[str] = None,
) -> StoryResult:
    """
    Generate a story draft from a completed analysis.

    Every provider in the caller's chain receives the same prompt.

    Raises:
        StoryGenerationError: all attempts failed; message is the primary failure's
    """
    locale = locale or get_settings().locale
    prompt = build_story_prompt(dataset, analysis, source_name, locale)
    system_prompt = SYSTEM_PROMPTS.get(locale, SYSTEM_PROMPTS["en"])

    start = time.perf_counter()
    try:
        draft, completion = caller.generate(system_prompt, prompt, StoryDraft)
    except GenerationAttemptsExhausted as e:
        logger.error(f"Story generation failed after {len(e.failures)} attempt(s): {e}")
        raise StoryGenerationError(str(e.primary_error)) from e.primary_error
    generation_time_ms = int((time.perf_counter() - start) * 1000)

    logger.info(
        f"Story '{draft.title[:60]}' generated by {completion.provider}/{completion.model} "
        f"in {generation_time_ms}ms"
    )
    return StoryResult(
        draft=draft,
        provider=completion.provider,
        model=completion.model,
        tokens_used=completion.tokens_used,
        generation_time_ms=generation_time_ms,
    )
