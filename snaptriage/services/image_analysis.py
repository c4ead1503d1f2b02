"""
Image analysis pipeline.

One invocation runs a single linear pass:

    validate -> call vision model -> parse reply -> normalize -> persist -> return

Validation and parsing failures exit early with a domain exception. A failed
store write is logged and swallowed: the caller still gets the analysis even
though it will be missing from history.
"""

from typing import Optional

from snaptriage.analyzers.response_parser import normalize_analysis, parse_model_reply
from snaptriage.analyzers.vision_client import VisionClient
from snaptriage.models import AnalysisRecord, ImageUpload, RequestMetadata
from snaptriage.utils.logging import get_logger, log_error_with_context
from snaptriage.utils.metrics import AnalysisMetrics, emit_metric, track_api_call


ALLOWED_CONTENT_TYPES = ("image/png", "image/jpeg")
DEFAULT_MAX_IMAGE_BYTES = 15 * 1024 * 1024

_MIB = 1024 * 1024


class ImageValidationError(Exception):
    """Raised when an upload is rejected before any outbound call."""

    def __init__(self, reason: str, error: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.error = error


def size_exceeded_reason(size: int, max_bytes: int) -> str:
    return f"File size {size / _MIB:.2f} MB exceeds maximum of {max_bytes / _MIB:g} MB"


def validate_image(upload: Optional[ImageUpload], max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> ImageUpload:
    """
    Validate an upload's presence, declared type and size.

    Returns:
        The upload, unchanged

    Raises:
        ImageValidationError: On the first failing check
    """
    if upload is None or not upload.data:
        raise ImageValidationError("No file provided", error="Missing required field: file")

    if upload.content_type not in ALLOWED_CONTENT_TYPES:
        raise ImageValidationError(
            f"Invalid file type: {upload.content_type}. Only PNG and JPEG are supported."
        )

    if upload.size > max_bytes:
        raise ImageValidationError(size_exceeded_reason(upload.size, max_bytes))

    return upload


class ImageAnalysisService:
    """Runs the screenshot analysis pipeline for one request at a time."""

    def __init__(self, vision_client: VisionClient, store, max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES):
        """
        Args:
            vision_client: Client for the vision model
            store: AnalysisStore (or anything with an async save_analysis)
            max_image_bytes: Upload size limit
        """
        self.vision_client = vision_client
        self.store = store
        self.max_image_bytes = max_image_bytes

    async def analyze(
        self,
        upload: Optional[ImageUpload],
        metadata: RequestMetadata,
        request_id: Optional[str] = None,
        metrics: Optional[AnalysisMetrics] = None,
    ) -> AnalysisRecord:
        """
        Analyze one screenshot.

        Raises:
            ImageValidationError: Missing, wrong-type or oversized image
            AIServiceError: The vision model call failed
            AIResponseParseError: The reply was not a JSON object
        """
        request_logger = get_logger(__name__, request_id=request_id)

        upload = validate_image(upload, self.max_image_bytes)
        if metrics:
            metrics.image_size_bytes = upload.size
        request_logger.info(
            f"File validated: {upload.filename} {upload.content_type} {upload.size} bytes"
        )

        async with track_api_call(metrics, "openai", request_logger, "chat.completions", "POST"):
            content = await self.vision_client.analyze_image(upload.to_data_url())

        raw = parse_model_reply(content)
        record = normalize_analysis(raw)
        if metrics:
            metrics.analysis_id = record.analysis_id

        await self._persist(record, metadata, request_logger.with_context(analysis_id=record.analysis_id), metrics)

        emit_metric(
            "analysis.completed",
            1,
            probable_cause=record.probable_cause.value,
            severity=record.severity.value,
        )
        return record

    async def _persist(self, record: AnalysisRecord, metadata: RequestMetadata, request_logger, metrics) -> None:
        # TODO: decide with product whether a lost history write should fail the request
        try:
            async with track_api_call(metrics, "mysql", request_logger, "image_analyses", "INSERT"):
                await self.store.save_analysis(record, metadata)
        except Exception as e:
            log_error_with_context(
                request_logger,
                "Database error, returning analysis without persisting it",
                e,
            )
            emit_metric("analysis.persist_failed", 1)
