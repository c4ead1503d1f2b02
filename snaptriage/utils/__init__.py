"""
Utility modules for SnapTriage.
"""

from snaptriage.utils.logging import (
    get_logger,
    setup_logging,
    log_api_call,
    log_error_with_context,
)
from snaptriage.utils.metrics import (
    AnalysisMetrics,
    track_api_call,
    emit_metric,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_api_call",
    "log_error_with_context",
    "AnalysisMetrics",
    "track_api_call",
    "emit_metric",
]
