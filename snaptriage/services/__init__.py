"""Business logic services package."""

from snaptriage.services.image_analysis import (
    ImageAnalysisService,
    ImageValidationError,
    validate_image,
)
from snaptriage.services.image_fetcher import (
    ImageFetcher,
    ImageFetchError,
)
from snaptriage.services.analysis_store import (
    AnalysisStore,
    AnalysisStoreError,
)

__all__ = [
    'ImageAnalysisService',
    'ImageValidationError',
    'validate_image',
    'ImageFetcher',
    'ImageFetchError',
    'AnalysisStore',
    'AnalysisStoreError',
]
