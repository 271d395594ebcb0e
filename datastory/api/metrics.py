"""
Metrics endpoint for pipeline monitoring.
"""
from fastapi import APIRouter, Request
from datastory.core.performance import PerformanceMonitor

router = APIRouter()


@router.get("/metrics")
async def get_metrics(request: Request):
    """
    Get pipeline metrics.

    `performance` holds duration statistics (count, mean, percentiles, errors)
    for every tracked stage and for request handling; `pipeline` shows the
    provider chains and storage backend the service is running with.
    """
    settings = request.app.state.settings
    return {
        'performance': PerformanceMonitor.get_all_metrics(),
        'pipeline': {
            'insight_providers': settings.insight_provider_chain,
            'insight_retry_count': settings.insight_retry_count,
            'story_providers': settings.story_provider_chain,
            'story_retry_count': settings.story_retry_count,
            'storage_backend': settings.storage_backend,
            'locale': settings.locale,
        }
    }
