"""
Unit tests for the story orchestrator.
"""
import json
import pytest
from conftest import INSIGHTS_JSON, STORY_JSON
from datastory.core.errors import StoryGenerationError
from datastory.core.schemas import AIInsights, AnalysisResult
from datastory.services.charts import generate_charts
from datastory.services.parsers import parse_csv
from datastory.services.providers import GenerativeCaller
from datastory.services.statistics import compute_dataset_statistics
from datastory.services.story import build_story_prompt, generate_story


@pytest.fixture
def sales(sales_csv):
    dataset = parse_csv(sales_csv)
    statistics = compute_dataset_statistics(dataset)
    analysis = AnalysisResult(
        statistics=statistics,
        insights=AIInsights.model_validate(json.loads(INSIGHTS_JSON)),
        charts=generate_charts(dataset, statistics, locale="en"),
        provider="groq",
        model="llama-test",
    )
    return dataset, analysis


@pytest.mark.unit
def test_prompt_embeds_insights_and_charts(sales):
    dataset, analysis = sales
    prompt = build_story_prompt(dataset, analysis, "sales.csv", locale="en")

    assert "File name: sales.csv" in prompt
    assert "Records: 4" in prompt
    assert "1. Ali scored highest with 90" in prompt
    assert "1. Collect the missing score" in prompt
    assert "Two of three students" in prompt
    assert "- chart-1 (bar): revenue by region" in prompt
    assert "- chart-3 (line)" in prompt
    assert '"dataReferences"' in prompt


@pytest.mark.unit
def test_generate_story_from_primary(sales, fake_provider):
    dataset, analysis = sales
    primary = fake_provider("groq", [STORY_JSON])
    secondary = fake_provider("gemini", [STORY_JSON])

    result = generate_story(dataset, analysis, "sales.csv", GenerativeCaller([primary, secondary], retry_count=1))

    assert result.provider == "groq"
    assert secondary.calls == []
    assert result.draft.title == "Scores at a glance"
    assert result.draft.outline.sections[0].data_references == ["chart-1"]
    assert result.generation_time_ms >= 0


@pytest.mark.unit
def test_primary_failure_falls_back_to_secondary(sales, fake_provider):
    """The secondary provider gets the same prompt once, and provenance names it."""
    dataset, analysis = sales
    primary = fake_provider("groq", [RuntimeError("groq timeout")])
    secondary = fake_provider("gemini", [STORY_JSON], model="gemini-test")

    result = generate_story(dataset, analysis, "sales.csv", GenerativeCaller([primary, secondary], retry_count=1))

    assert len(primary.calls) == 1
    assert len(secondary.calls) == 1
    assert secondary.calls[0]["prompt"] == primary.calls[0]["prompt"]
    assert result.provider == "gemini"
    assert result.model == "gemini-test"


@pytest.mark.unit
def test_both_providers_failing_raises_primary_message(sales, fake_provider):
    dataset, analysis = sales
    primary = fake_provider("groq", [RuntimeError("groq quota exceeded")])
    secondary = fake_provider("gemini", ["not json at all"])

    with pytest.raises(StoryGenerationError) as exc_info:
        generate_story(dataset, analysis, "sales.csv", GenerativeCaller([primary, secondary], retry_count=1))

    assert str(exc_info.value) == "groq quota exceeded"
    assert len(secondary.calls) == 1


@pytest.mark.unit
@pytest.mark.parametrize("thin_draft", [
    {"title": "", "content": ""},
    {"title": "Scores", "subtitle": "s", "excerpt": "e", "content": "   ", "outline": {"sections": []}},
    {"title": "Scores", "content": "<p>Only a body</p>"},
])
def test_empty_draft_falls_back_to_secondary(sales, fake_provider, thin_draft):
    """A blank or partial draft is a failed attempt, never a completed story."""
    dataset, analysis = sales
    primary = fake_provider("groq", [json.dumps(thin_draft)])
    secondary = fake_provider("gemini", [STORY_JSON])

    result = generate_story(dataset, analysis, "sales.csv", GenerativeCaller([primary, secondary], retry_count=1))

    assert len(secondary.calls) == 1
    assert result.provider == "gemini"
    assert result.draft.title == "Scores at a glance"
