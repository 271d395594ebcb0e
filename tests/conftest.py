"""
Shared fixtures: fake generative providers, settings and an in-memory pipeline.
"""
import json
import pytest
from datastory.core.config import Settings
from datastory.core.performance import PerformanceMonitor
from datastory.core.storage import InMemoryRepository
from datastory.services.pipeline import DataStoryPipeline
from datastory.services.providers import Completion, GenerativeCaller, GenerativeProvider

INSIGHTS_JSON = json.dumps({
    "keyFindings": ["Ali scored highest with 90", "One score is missing"],
    "trends": ["Scores decline with id"],
    "anomalies": ["Sara has no score"],
    "recommendations": ["Collect the missing score"],
    "narrative": "Two of three students have scores averaging 80.",
})

STORY_JSON = json.dumps({
    "title": "Scores at a glance",
    "subtitle": "Average of 80 across recorded scores",
    "excerpt": "Three students, two scores.",
    "content": "<h2>Scores</h2><p>The average score is <strong>80</strong>.</p>",
    "outline": {
        "sections": [
            {"heading": "Scores", "content": "Average of 80", "dataReferences": ["chart-1"]}
        ]
    },
})


class FakeProvider(GenerativeProvider):
    """Replays scripted responses; an Exception entry is raised instead of returned."""

    def __init__(self, name, responses, model=None, tokens_used=42):
        super().__init__(model or f"{name}-test-model")
        self.name = name
        self.responses = list(responses)
        self.tokens_used = tokens_used
        self.calls = []

    def generate(self, system_prompt, prompt, max_tokens, temperature):
        self.calls.append({"system_prompt": system_prompt, "prompt": prompt})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return Completion(text=response, provider=self.name, model=self.model, tokens_used=self.tokens_used)


@pytest.fixture
def fake_provider():
    """Factory: fake_provider("groq", [INSIGHTS_JSON])."""
    return FakeProvider


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def insight_provider():
    return FakeProvider("groq", [INSIGHTS_JSON])


@pytest.fixture
def story_primary():
    return FakeProvider("groq", [STORY_JSON])


@pytest.fixture
def story_secondary():
    return FakeProvider("gemini", [STORY_JSON])


@pytest.fixture
def pipeline(settings, insight_provider, story_primary, story_secondary):
    """Pipeline with the default stage policies: insights single-shot, stories with one fallback."""
    return DataStoryPipeline(
        repository=InMemoryRepository(),
        insight_caller=GenerativeCaller([insight_provider], retry_count=0),
        story_caller=GenerativeCaller([story_primary, story_secondary], retry_count=1),
        settings=settings,
    )


@pytest.fixture
def scores_csv():
    return b'id,name,score\n1,"Ali",90\n2,"Sara",\n3,"Omar",70\n'


@pytest.fixture
def sales_csv():
    return (
        b"date,revenue,region\n"
        b"2024-01-03,1100,East\n"
        b"2024-01-01,1000,North\n"
        b"2024-01-02,1200,South\n"
        b"2024-01-04,900,North\n"
    )


@pytest.fixture(autouse=True)
def clear_metrics():
    PerformanceMonitor.clear_metrics()
    yield
