"""
Tests for centralized configuration.
"""
import pytest
from pydantic import ValidationError
from datastory.core.config import Settings, get_settings, reload_settings


def test_settings_defaults(monkeypatch):
    """Test that settings have sensible defaults."""
    for key in ("MAX_FILE_SIZE_MB", "INSIGHT_PROVIDERS", "STORY_PROVIDERS",
                "INSIGHT_RETRY_COUNT", "STORY_RETRY_COUNT", "LOCALE", "STORAGE_BACKEND"):
        monkeypatch.delenv(key, raising=False)

    settings = Settings.from_env()

    assert settings.max_file_size_mb == 10
    assert settings.rate_limit_per_minute == 10
    assert settings.locale == "en"
    assert settings.insight_provider_chain == ["groq"]
    assert settings.insight_retry_count == 0
    assert settings.story_provider_chain == ["groq", "gemini"]
    assert settings.story_retry_count == 1
    assert settings.storage_backend == "memory"
    assert settings.retain_full_rows is False


def test_settings_from_env(monkeypatch):
    """Test loading settings from environment variables."""
    monkeypatch.setenv("MAX_FILE_SIZE_MB", "100")
    monkeypatch.setenv("STORY_PROVIDERS", " Gemini , groq ")
    monkeypatch.setenv("STORY_RETRY_COUNT", "2")
    monkeypatch.setenv("LOCALE", "AR")
    monkeypatch.setenv("RETAIN_FULL_ROWS", "true")

    try:
        settings = reload_settings()

        assert settings.max_file_size_mb == 100
        assert settings.max_file_size_bytes == 100 * 1024 * 1024
        assert settings.story_provider_chain == ["gemini", "groq"]
        assert settings.story_retry_count == 2
        assert settings.locale == "ar"
        assert settings.retain_full_rows is True
        assert get_settings() is settings
    finally:
        monkeypatch.undo()
        reload_settings()


@pytest.mark.parametrize("field,value", [
    ("log_level", "VERBOSE"),
    ("log_format", "xml"),
    ("locale", "fr"),
    ("insight_providers", "openai"),
    ("story_providers", " , "),
    ("storage_backend", "postgres"),
    ("max_file_size_mb", 0),
    ("story_retry_count", -1),
])
def test_settings_validation(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_allowed_origins_list():
    settings = Settings(allowed_origins="http://a.test, http://b.test,")
    assert settings.allowed_origins_list == ["http://a.test", "http://b.test"]


def test_api_keys_hidden_from_repr():
    settings = Settings(groq_api_key="secret-key")
    assert "secret-key" not in repr(settings)
