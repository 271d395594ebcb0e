"""
Performance monitoring for pipeline stages and requests.
"""
import time
import inspect
import logging
import threading
from collections import defaultdict
from functools import wraps
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Keep only the most recent samples per metric
MAX_SAMPLES_PER_METRIC = 1000

_metrics_lock = threading.Lock()
_metrics: Dict[str, List[Dict[str, Any]]] = defaultdict(list)


class PerformanceMonitor:
    """Record and summarize duration metrics."""

    @staticmethod
    def record_metric(name: str, value: float, metadata: Optional[Dict[str, Any]] = None):
        """
        Record a performance metric.

        Args:
            name: Metric name (e.g., 'parse_csv', 'generate_story')
            value: Metric value, a duration in seconds
            metadata: Optional metadata (status, error, path, ...)
        """
        with _metrics_lock:
            samples = _metrics[name]
            samples.append({
                'value': value,
                'timestamp': time.time(),
                'metadata': metadata or {}
            })
            if len(samples) > MAX_SAMPLES_PER_METRIC:
                del samples[:-MAX_SAMPLES_PER_METRIC]

    @staticmethod
    def get_stats(metric_name: str) -> Optional[Dict[str, float]]:
        """
        Get statistics for a metric.

        Returns:
            Dict with count, min, max, mean, p50, p95, p99 and error count,
            or None if nothing was recorded
        """
        with _metrics_lock:
            samples = list(_metrics.get(metric_name, []))
        if not samples:
            return None

        values = sorted(s['value'] for s in samples)
        n = len(values)
        return {
            'count': n,
            'errors': sum(1 for s in samples if s['metadata'].get('status') == 'error'),
            'min': values[0],
            'max': values[-1],
            'mean': sum(values) / n,
            'p50': values[n // 2],
            'p95': values[min(int(n * 0.95), n - 1)],
            'p99': values[min(int(n * 0.99), n - 1)],
        }

    @staticmethod
    def get_all_metrics() -> Dict[str, Dict[str, float]]:
        """Get statistics for all metrics."""
        with _metrics_lock:
            names = list(_metrics.keys())
        return {name: PerformanceMonitor.get_stats(name) for name in names}

    @staticmethod
    def clear_metrics():
        """Clear all metrics (useful for testing)."""
        with _metrics_lock:
            _metrics.clear()


def _finish(metric_name: str, started: float, error: Optional[BaseException] = None) -> None:
    duration = time.perf_counter() - started
    if error is None:
        PerformanceMonitor.record_metric(metric_name, duration, {'status': 'success'})
        logger.debug(
            f"{metric_name} completed in {duration:.3f}s",
            extra={'metric': metric_name, 'duration': duration}
        )
    else:
        PerformanceMonitor.record_metric(
            metric_name, duration, {'status': 'error', 'error': str(error)}
        )
        logger.warning(
            f"{metric_name} failed after {duration:.3f}s: {error}",
            extra={'metric': metric_name, 'duration': duration}
        )


def track_performance(metric_name: str):
    """
    Decorator to track function execution time.

    Usage:
        @track_performance("parse_csv")
        def parse_csv(content):
            ...
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                started = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _finish(metric_name, started, e)
                    raise
                _finish(metric_name, started)
                return result
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _finish(metric_name, started, e)
                raise
            _finish(metric_name, started)
            return result
        return sync_wrapper

    return decorator
