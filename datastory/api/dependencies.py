"""
Request dependencies shared by the API routers.
"""
import logging
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from datastory.core.config import get_settings
from datastory.core.storage import get_repository
from datastory.services.pipeline import DataStoryPipeline
from datastory.services.providers import build_insight_caller, build_story_caller

logger = logging.getLogger(__name__)

# Per-IP rate limiter, registered on app.state by main.py
limiter = Limiter(key_func=get_remote_address)

_pipeline: Optional[DataStoryPipeline] = None


def upload_rate_limit() -> str:
    """Upload limit, read from settings on every request."""
    return f"{get_settings().rate_limit_per_minute}/minute"


def get_pipeline() -> DataStoryPipeline:
    """Pipeline wired from settings: configured repository and provider chains (singleton)."""
    global _pipeline
    if _pipeline is None:
        settings = get_settings()
        _pipeline = DataStoryPipeline(
            repository=get_repository(settings),
            insight_caller=build_insight_caller(settings),
            story_caller=build_story_caller(settings),
            settings=settings,
        )
        logger.info(
            f"Pipeline ready: insights via {settings.insight_providers} "
            f"(retries={settings.insight_retry_count}), stories via {settings.story_providers} "
            f"(retries={settings.story_retry_count})"
        )
    return _pipeline