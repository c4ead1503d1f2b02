"""Data models for SnapTriage."""

from .analysis import (
    AnalysisFailure,
    AnalysisRecord,
    AnalysisStatus,
    ImageUpload,
    KeyTextBlock,
    ProbableCause,
    RawAnalysis,
    RequestMetadata,
    Severity,
    StoredAnalysis,
)

__all__ = [
    # Enums
    "ProbableCause",
    "Severity",
    "AnalysisStatus",
    # Analysis models
    "KeyTextBlock",
    "RawAnalysis",
    "AnalysisRecord",
    "StoredAnalysis",
    "RequestMetadata",
    "AnalysisFailure",
    # Upload
    "ImageUpload",
]
