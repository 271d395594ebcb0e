"""
Unit tests for generative providers and the provider-chain caller.
"""
import json
import pytest
from types import SimpleNamespace
from conftest import INSIGHTS_JSON
from datastory.core.config import Settings
from datastory.core.errors import GenerationAttemptsExhausted, ProviderError
from datastory.core.schemas import AIInsights
from datastory.services.providers import (
    GeminiProvider,
    GenerativeCaller,
    GroqProvider,
    build_insight_caller,
    build_provider,
    build_story_caller,
    parse_json_response,
)


@pytest.mark.unit
def test_parse_json_response_strips_code_fences():
    assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_response('```\n[1, 2]\n```') == [1, 2]
    assert parse_json_response('  {"b": true} ') == {"b": True}


@pytest.mark.unit
@pytest.mark.parametrize("text", ["", "   ", "not json"])
def test_parse_json_response_rejects_bad_text(text):
    with pytest.raises(ValueError):
        parse_json_response(text)


@pytest.mark.unit
def test_single_attempt_caller_does_not_retry(fake_provider):
    provider = fake_provider("groq", [RuntimeError("boom")])
    caller = GenerativeCaller([provider], retry_count=0)

    with pytest.raises(GenerationAttemptsExhausted) as exc_info:
        caller.generate("system", "prompt", AIInsights)

    assert len(provider.calls) == 1
    assert str(exc_info.value.primary_error) == "boom"


@pytest.mark.unit
def test_fallback_chain_uses_secondary_once(fake_provider):
    primary = fake_provider("groq", [ProviderError("rate limited", provider="groq")])
    secondary = fake_provider("gemini", [INSIGHTS_JSON])
    caller = GenerativeCaller([primary, secondary], retry_count=1)

    insights, completion = caller.generate("system", "prompt", AIInsights)

    assert len(primary.calls) == 1
    assert len(secondary.calls) == 1
    assert secondary.calls[0] == primary.calls[0]
    assert completion.provider == "gemini"
    assert insights.key_findings[0] == "Ali scored highest with 90"


@pytest.mark.unit
def test_malformed_json_counts_as_failure(fake_provider):
    primary = fake_provider("groq", ["this is not json"])
    secondary = fake_provider("gemini", [INSIGHTS_JSON])
    caller = GenerativeCaller([primary, secondary], retry_count=1)

    _, completion = caller.generate("system", "prompt", AIInsights)
    assert completion.provider == "gemini"


@pytest.mark.unit
def test_response_missing_required_fields_counts_as_failure(fake_provider):
    provider = fake_provider("groq", ['{"keyFindings": []}'])
    caller = GenerativeCaller([provider], retry_count=0)

    with pytest.raises(GenerationAttemptsExhausted):
        caller.generate("system", "prompt", AIInsights)


@pytest.mark.unit
def test_blank_narrative_counts_as_failure(fake_provider):
    blank = json.loads(INSIGHTS_JSON)
    blank["narrative"] = "  "
    provider = fake_provider("groq", [json.dumps(blank)])
    caller = GenerativeCaller([provider], retry_count=0)

    with pytest.raises(GenerationAttemptsExhausted):
        caller.generate("system", "prompt", AIInsights)


@pytest.mark.unit
def test_all_attempts_failing_keeps_primary_error(fake_provider):
    primary = fake_provider("groq", [RuntimeError("primary down")])
    secondary = fake_provider("gemini", [RuntimeError("secondary down")])
    caller = GenerativeCaller([primary, secondary], retry_count=1)

    with pytest.raises(GenerationAttemptsExhausted) as exc_info:
        caller.generate("system", "prompt", AIInsights)

    assert str(exc_info.value.primary_error) == "primary down"
    assert [name for name, _ in exc_info.value.failures] == ["groq", "gemini"]


@pytest.mark.unit
def test_retries_beyond_chain_reuse_last_provider(fake_provider):
    only = fake_provider("groq", [RuntimeError("flaky"), INSIGHTS_JSON])
    caller = GenerativeCaller([only], retry_count=2)

    assert [p.name for p in caller.attempt_plan()] == ["groq", "groq", "groq"]
    _, completion = caller.generate("system", "prompt", AIInsights)
    assert len(only.calls) == 2
    assert completion.tokens_used == 42


@pytest.mark.unit
def test_caller_requires_providers():
    with pytest.raises(ValueError):
        GenerativeCaller([], retry_count=0)


@pytest.mark.unit
def test_missing_api_keys_fail_at_call_time():
    with pytest.raises(ProviderError):
        GroqProvider(api_key=None, model="m").generate("s", "p", 10, 0.1)
    with pytest.raises(ProviderError):
        GeminiProvider(api_key=None, model="m").generate("s", "p", 10, 0.1)


@pytest.mark.unit
def test_groq_provider_with_injected_client():
    captured = {}

    def create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"ok": true}'))],
            usage=SimpleNamespace(total_tokens=17),
        )

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    provider = GroqProvider(api_key=None, model="llama-test", timeout=5, client=client)

    completion = provider.generate("system", "prompt", 100, 0.5)

    assert completion.text == '{"ok": true}'
    assert completion.provider == "groq"
    assert completion.tokens_used == 17
    assert captured["model"] == "llama-test"
    assert captured["response_format"] == {"type": "json_object"}
    assert captured["messages"][0] == {"role": "system", "content": "system"}


@pytest.mark.unit
def test_gemini_provider_with_injected_client():
    captured = {}

    class FakeModel:
        def generate_content(self, prompt, generation_config=None, request_options=None):
            captured.update(prompt=prompt, generation_config=generation_config, request_options=request_options)
            return SimpleNamespace(text='{"ok": true}', usage_metadata=SimpleNamespace(total_token_count=9))

    provider = GeminiProvider(api_key=None, model="gemini-test", timeout=7, client=FakeModel())
    completion = provider.generate("system", "prompt", 100, 0.5)

    assert completion.provider == "gemini"
    assert completion.tokens_used == 9
    assert captured["prompt"] == "system\n\nprompt"
    assert captured["generation_config"]["response_mime_type"] == "application/json"
    assert captured["request_options"] == {"timeout": 7}


@pytest.mark.unit
def test_build_provider_from_settings():
    settings = Settings(groq_model="g-model", gemini_model="m-model")
    assert build_provider("groq", settings).model == "g-model"
    assert build_provider("gemini", settings).model == "m-model"
    with pytest.raises(ValueError):
        build_provider("openai", settings)


@pytest.mark.unit
def test_stage_callers_follow_configured_policies():
    settings = Settings()

    insight_caller = build_insight_caller(settings)
    story_caller = build_story_caller(settings)

    assert [p.name for p in insight_caller.attempt_plan()] == ["groq"]
    assert [p.name for p in story_caller.attempt_plan()] == ["groq", "gemini"]
    assert story_caller.max_tokens == settings.story_max_tokens


@pytest.mark.unit
def test_insight_policy_is_configurable():
    settings = Settings(insight_providers="gemini,groq", insight_retry_count=1)
    caller = build_insight_caller(settings)
    assert [p.name for p in caller.attempt_plan()] == ["gemini", "groq"]
