"""
Centralized configuration management.

All application configuration is loaded and validated here.
"""
import os
import logging
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("groq", "gemini")
SUPPORTED_LOCALES = ("en", "ar")


class Settings(BaseModel):
    """Application settings with validation."""

    # File upload settings
    max_file_size_mb: int = Field(default=10, ge=1, le=1000, description="Maximum file size in MB")

    # Rate limiting
    rate_limit_per_minute: int = Field(default=10, ge=1, le=1000, description="Rate limit per minute per IP")

    # Request timeout
    request_timeout_seconds: int = Field(default=300, ge=1, le=3600, description="Request timeout in seconds")

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="'text' or 'json'")

    # Language used for chart titles, prompts and error messages
    locale: str = Field(default="en", description="Output locale ('en' or 'ar')")

    # AI provider credentials and models
    groq_api_key: Optional[str] = Field(default=None, repr=False)
    groq_model: str = Field(default="llama-3.3-70b-versatile", description="Groq model to use")
    gemini_api_key: Optional[str] = Field(default=None, repr=False)
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model to use")
    ai_timeout_seconds: float = Field(default=60.0, gt=0, le=600, description="Per-call provider timeout")

    # Insight stage: single provider, fails loud
    insight_providers: str = Field(default="groq", description="Comma-separated provider chain")
    insight_retry_count: int = Field(default=0, ge=0, le=5)
    insight_max_tokens: int = Field(default=2000, ge=100, le=32000)
    insight_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # Story stage: primary plus one fallback
    story_providers: str = Field(default="groq,gemini", description="Comma-separated provider chain")
    story_retry_count: int = Field(default=1, ge=0, le=5)
    story_max_tokens: int = Field(default=4000, ge=100, le=32000)
    story_temperature: float = Field(default=0.8, ge=0.0, le=2.0)

    # Persistence
    storage_backend: str = Field(default="memory", description="'memory' or 'redis'")
    redis_url: Optional[str] = Field(default=None)
    retain_full_rows: bool = Field(default=False, description="Keep all parsed rows on the source record")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError(f"LOG_FORMAT must be 'text' or 'json', got '{v}'")
        return v.lower()

    @field_validator('locale')
    @classmethod
    def validate_locale(cls, v: str) -> str:
        if v.lower() not in SUPPORTED_LOCALES:
            raise ValueError(f"LOCALE must be one of {list(SUPPORTED_LOCALES)}, got '{v}'")
        return v.lower()

    @field_validator('insight_providers', 'story_providers')
    @classmethod
    def validate_provider_chain(cls, v: str) -> str:
        """A provider chain must name at least one known provider."""
        names = [name.strip().lower() for name in v.split(",") if name.strip()]
        if not names:
            raise ValueError("Provider chain must contain at least one provider")
        unknown = [name for name in names if name not in SUPPORTED_PROVIDERS]
        if unknown:
            raise ValueError(f"Unknown providers {unknown}; supported: {list(SUPPORTED_PROVIDERS)}")
        return ",".join(names)

    @field_validator('storage_backend')
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        if v.lower() not in ("memory", "redis"):
            raise ValueError(f"STORAGE_BACKEND must be 'memory' or 'redis', got '{v}'")
        return v.lower()

    @property
    def max_file_size_bytes(self) -> int:
        """Get max file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_origins_list(self) -> List[str]:
        """Get allowed origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def insight_provider_chain(self) -> List[str]:
        return self.insight_providers.split(",")

    @property
    def story_provider_chain(self) -> List[str]:
        return self.story_providers.split(",")

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "10")),
            rate_limit_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "10")),
            request_timeout_seconds=int(os.getenv("REQUEST_TIMEOUT_SECONDS", "300")),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5000"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
            locale=os.getenv("LOCALE", "en"),
            groq_api_key=os.getenv("GROQ_API_KEY") or None,
            groq_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            ai_timeout_seconds=float(os.getenv("AI_TIMEOUT_SECONDS", "60")),
            insight_providers=os.getenv("INSIGHT_PROVIDERS", "groq"),
            insight_retry_count=int(os.getenv("INSIGHT_RETRY_COUNT", "0")),
            insight_max_tokens=int(os.getenv("INSIGHT_MAX_TOKENS", "2000")),
            insight_temperature=float(os.getenv("INSIGHT_TEMPERATURE", "0.7")),
            story_providers=os.getenv("STORY_PROVIDERS", "groq,gemini"),
            story_retry_count=int(os.getenv("STORY_RETRY_COUNT", "1")),
            story_max_tokens=int(os.getenv("STORY_MAX_TOKENS", "4000")),
            story_temperature=float(os.getenv("STORY_TEMPERATURE", "0.8")),
            storage_backend=os.getenv("STORAGE_BACKEND", "memory"),
            redis_url=os.getenv("REDIS_URL") or None,
            retain_full_rows=os.getenv("RETAIN_FULL_ROWS", "false").lower() in ("1", "true", "yes"),
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.info("Configuration loaded and validated successfully")
    return _settings


def reload_settings() -> Settings:
    """Reload settings (useful for testing)."""
    global _settings
    _settings = None
    return get_settings()
