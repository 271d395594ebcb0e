"""
Insight orchestrator.

Builds the structured analysis prompt from dataset shape, statistics and a
small preview, and asks the insight caller for an AIInsights document. The
default insight caller is single-provider, single-attempt: any failure
surfaces as InsightGenerationError.
"""
import json
import logging
from typing import Optional

from datastory.core.config import get_settings
from datastory.core.errors import GenerationAttemptsExhausted, InsightGenerationError
from datastory.core.performance import track_performance
from datastory.core.sanitization import sanitize_for_prompt
from datastory.core.schemas import AIInsights, Dataset, DatasetStatistics, InsightResult
from datastory.services.providers import GenerativeCaller

logger = logging.getLogger(__name__)

PROMPT_PREVIEW_ROWS = 5

SYSTEM_PROMPTS = {
    "en": "You are an expert data analyst who extracts insights from data and turns them into compelling news stories. Reply with JSON only.",
    "ar": "أنت محلل بيانات خبير متخصص في استخراج الرؤى من البيانات وتحويلها إلى قصص إخبارية جذابة. أجب بصيغة JSON فقط.",
}

LANGUAGE_INSTRUCTIONS = {
    "en": "Write in clear English. Focus on the insights that could make a compelling news story.",
    "ar": "استخدم اللغة العربية الفصحى. ركز على الرؤى القيمة التي يمكن أن تصنع قصة إخبارية مثيرة.",
}

RESPONSE_SHAPE = """{
  "keyFindings": ["finding 1", "finding 2", "..."],
  "trends": ["trend 1", "trend 2", "..."],
  "anomalies": ["anomaly or unusual observation 1", "..."],
  "recommendations": ["recommendation 1", "recommendation 2", "..."],
  "narrative": "a narrative summary of the data (3-4 paragraphs)"
}"""


def _to_json(value) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def build_insight_prompt(
    dataset: Dataset,
    statistics: DatasetStatistics,
    source_name: str,
    locale: Optional[str] = None,
) -> str:
    """Analysis prompt: counts, column list, full statistics, first preview rows."""
    locale = locale or get_settings().locale
    columns = "\n".join(
        f"- {sanitize_for_prompt(c.name, 60)} ({c.type})" for c in dataset.columns
    )
    preview = dataset.preview_data[:PROMPT_PREVIEW_ROWS]

    return f"""Analyze the following dataset and extract the key insights.

File name: {sanitize_for_prompt(source_name)}
Rows: {dataset.row_count}
Columns: {dataset.column_count}

Columns:
{columns}

Statistics:
{_to_json(statistics.model_dump(mode="json"))}

Sample data (first {PROMPT_PREVIEW_ROWS} rows):
{_to_json(preview)}

Return the result as a JSON object with exactly this shape:
{RESPONSE_SHAPE}

{LANGUAGE_INSTRUCTIONS.get(locale, LANGUAGE_INSTRUCTIONS["en"])}"""


@track_performance("generate_insights")
def generate_insights(
    dataset: Dataset,
    statistics: DatasetStatistics,
    source_name: str,
    caller: GenerativeCaller,
    locale: Optional[str] = None,
) -> InsightResult:
    """
    Generate structured insights for a dataset.

    Raises:
        InsightGenerationError: carrying the provider's error message verbatim
    """
    locale = locale or get_settings().locale
    prompt = build_insight_prompt(dataset, statistics, source_name, locale)
    system_prompt = SYSTEM_PROMPTS.get(locale, SYSTEM_PROMPTS["en"])

    try:
        insights, completion = caller.generate(system_prompt, prompt, AIInsights)
    except GenerationAttemptsExhausted as e:
        logger.error(f"Insight generation failed: {e}")
        raise InsightGenerationError(str(e.primary_error)) from e.primary_error

    logger.info(
        f"Insights generated by {completion.provider}/{completion.model}: "
        f"{len(insights.key_findings)} findings, {completion.tokens_used} tokens"
    )
    return InsightResult(
        insights=insights,
        provider=completion.provider,
        model=completion.model,
        tokens_used=completion.tokens_used,
    )
