"""
Metrics collection and emission for observability.

This module provides metrics tracking for:
- Analysis request duration and outcome
- Outbound call latency (AI service, store, image fetch)
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from snaptriage.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


class AnalysisMetrics:
    """
    Collects metrics during a single analysis request.

    Tracks:
    - Request start/end time
    - Outbound call counts and latency per service
    - Final status and failure reason
    """

    def __init__(self, request_id: str):
        self.request_id = request_id
        self.analysis_id: Optional[str] = None

        # Timing metrics
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.duration_ms: Optional[int] = None

        # Image metrics
        self.image_size_bytes: int = 0

        # API metrics
        self.api_calls: Dict[str, int] = {}
        self.api_latencies: Dict[str, list[float]] = {}

        # Status
        self.status: str = "running"
        self.error_message: Optional[str] = None

    def start(self) -> None:
        """Mark request start."""
        self.start_time = datetime.now(timezone.utc)
        self.status = "running"

    def complete(self, status: str = "ok", error_message: Optional[str] = None) -> None:
        """
        Mark request completion and log the summary.

        Args:
            status: Final status ('ok' or 'failed')
            error_message: Failure reason if failed
        """
        self.end_time = datetime.now(timezone.utc)
        self.status = status
        self.error_message = error_message

        if self.start_time:
            duration = (self.end_time - self.start_time).total_seconds()
            self.duration_ms = int(duration * 1000)

        logger.info(
            f"Analysis request finished with status {self.status}",
            extra=self.get_metrics_summary(),
        )

    def record_api_call(self, service: str, duration_ms: float) -> None:
        """
        Record an outbound call and its latency.

        Args:
            service: Service name (e.g., 'openai', 'mysql')
            duration_ms: Call duration in milliseconds
        """
        self.api_calls[service] = self.api_calls.get(service, 0) + 1
        self.api_latencies.setdefault(service, []).append(duration_ms)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of collected metrics."""
        summary: Dict[str, Any] = {
            "request_id": self.request_id,
            "analysis_id": self.analysis_id,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "image_size_bytes": self.image_size_bytes,
            "api_calls": self.api_calls,
        }

        if self.api_latencies:
            latency_stats = {}
            for service, latencies in self.api_latencies.items():
                if latencies:
                    latency_stats[service] = {
                        "count": len(latencies),
                        "min_ms": round(min(latencies), 2),
                        "max_ms": round(max(latencies), 2),
                        "avg_ms": round(sum(latencies) / len(latencies), 2),
                    }
            summary["api_latencies"] = latency_stats

        if self.error_message:
            summary["error_message"] = self.error_message

        return summary


@asynccontextmanager
async def track_api_call(
    metrics: Optional[AnalysisMetrics],
    service: str,
    logger_adapter,
    endpoint: str = "",
    method: str = "",
):
    """
    Context manager to track outbound call timing.

    Usage:
        async with track_api_call(metrics, "openai", logger, "chat.completions", "POST"):
            reply = await client.chat.completions.create(...)
    """
    start_time = time.time()
    error = None

    try:
        yield
    except Exception as e:
        error = e
        raise
    finally:
        duration_ms = (time.time() - start_time) * 1000

        if metrics:
            metrics.record_api_call(service, duration_ms)

        log_api_call(
            logger_adapter,
            service=service,
            endpoint=endpoint,
            method=method,
            duration_ms=duration_ms,
            error=str(error) if error else None
        )


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric.

    Metrics are written to the structured log; a log-based pipeline turns
    them into counters.
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
