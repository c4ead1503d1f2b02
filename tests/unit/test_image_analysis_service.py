"""
Unit tests for the image analysis pipeline.
"""

from unittest.mock import AsyncMock

import pytest

from snaptriage.analyzers.response_parser import AIResponseParseError
from snaptriage.analyzers.vision_client import AIServiceError
from snaptriage.models import (
    AnalysisStatus,
    ImageUpload,
    ProbableCause,
    RequestMetadata,
    Severity,
)
from snaptriage.services.analysis_store import AnalysisStoreError
from snaptriage.services.image_analysis import (
    ImageAnalysisService,
    ImageValidationError,
    validate_image,
)
from snaptriage.utils.metrics import AnalysisMetrics

from tests.conftest import completion, make_png

MIB = 1024 * 1024


@pytest.fixture
def service(vision_client, store):
    return ImageAnalysisService(vision_client, store)


@pytest.fixture
def metadata():
    return RequestMetadata(
        image_filename="error.png",
        image_size_bytes=2048,
        requester_ip="10.0.0.1",
        user_agent="pytest",
    )


class TestValidateImage:
    """Test pre-call upload validation."""

    def test_missing_upload(self):
        with pytest.raises(ImageValidationError) as exc_info:
            validate_image(None)

        assert exc_info.value.reason == "No file provided"
        assert exc_info.value.error == "Missing required field: file"

    def test_empty_upload(self):
        with pytest.raises(ImageValidationError) as exc_info:
            validate_image(ImageUpload("a.png", "image/png", b""))

        assert exc_info.value.reason == "No file provided"

    @pytest.mark.parametrize("content_type", ["image/gif", "image/webp", "application/pdf", None])
    def test_rejects_unsupported_types(self, content_type):
        with pytest.raises(ImageValidationError) as exc_info:
            validate_image(ImageUpload("a", content_type, b"data"))

        assert exc_info.value.reason.startswith("Invalid file type: ")
        assert str(content_type) in exc_info.value.reason

    def test_rejects_oversized(self):
        upload = ImageUpload("big.jpg", "image/jpeg", b"\x00" * (15 * MIB + 1))

        with pytest.raises(ImageValidationError) as exc_info:
            validate_image(upload)

        assert exc_info.value.reason == "File size 15.00 MB exceeds maximum of 15 MB"

    def test_accepts_exactly_max_size(self):
        upload = ImageUpload("edge.jpg", "image/jpeg", b"\x00" * (15 * MIB))
        assert validate_image(upload) is upload

    def test_accepts_png_and_jpeg(self, png_upload):
        assert validate_image(png_upload) is png_upload
        jpeg = ImageUpload("a.jpg", "image/jpeg", b"\xff\xd8\xff")
        assert validate_image(jpeg) is jpeg


class TestImageAnalysisService:
    """Test the validate -> call -> parse -> persist pipeline."""

    @pytest.mark.asyncio
    async def test_successful_analysis(self, service, sdk_client, store, png_upload, metadata):
        metrics = AnalysisMetrics("req_1")
        metrics.start()

        record = await service.analyze(png_upload, metadata, request_id="req_1", metrics=metrics)

        assert record.status == AnalysisStatus.OK
        assert record.error_title == "Login failed"
        assert record.probable_cause == ProbableCause.AUTHENTICATION_ERROR
        assert record.severity == Severity.HIGH
        assert record.error_code is None
        assert record.key_text_blocks == []

        sdk_client.chat.completions.create.assert_awaited_once()
        store.save_analysis.assert_awaited_once_with(record, metadata)
        assert metrics.analysis_id == record.analysis_id
        assert metrics.api_calls == {"openai": 1, "mysql": 1}

    @pytest.mark.asyncio
    async def test_image_sent_as_data_url(self, service, sdk_client, png_upload, metadata):
        await service.analyze(png_upload, metadata)

        messages = sdk_client.chat.completions.create.call_args.kwargs["messages"]
        url = messages[1]["content"][1]["image_url"]["url"]
        assert url == png_upload.to_data_url()
        assert url.startswith("data:image/png;base64,iVBORw0KGgo")

    @pytest.mark.asyncio
    async def test_invalid_type_makes_no_outbound_call(self, service, sdk_client, store, metadata):
        upload = ImageUpload("a.gif", "image/gif", b"GIF89a")

        with pytest.raises(ImageValidationError):
            await service.analyze(upload, metadata)

        sdk_client.chat.completions.create.assert_not_awaited()
        store.save_analysis.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_makes_no_outbound_call(self, service, sdk_client, metadata):
        upload = ImageUpload("big.png", "image/png", make_png(15 * MIB + 10))

        with pytest.raises(ImageValidationError):
            await service.analyze(upload, metadata)

        sdk_client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_error_propagates_and_nothing_is_stored(self, service, vision_client, store, png_upload, metadata):
        vision_client.analyze_image = AsyncMock(side_effect=AIServiceError("OpenAI API error", status_code=500))

        with pytest.raises(AIServiceError):
            await service.analyze(png_upload, metadata)

        store.save_analysis.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unparseable_reply_propagates_and_nothing_is_stored(
        self, service, sdk_client, store, png_upload, metadata
    ):
        sdk_client.chat.completions.create = AsyncMock(return_value=completion("Sorry, no JSON today"))

        with pytest.raises(AIResponseParseError) as exc_info:
            await service.analyze(png_upload, metadata)

        assert exc_info.value.raw_content == "Sorry, no JSON today"
        store.save_analysis.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_still_returns_record(self, service, store, png_upload, metadata):
        store.save_analysis = AsyncMock(side_effect=AnalysisStoreError("connection refused"))

        record = await service.analyze(png_upload, metadata)

        assert record.status == AnalysisStatus.OK
        assert record.error_title == "Login failed"

    @pytest.mark.asyncio
    async def test_identical_requests_get_distinct_ids(self, service, store, png_upload, metadata):
        first = await service.analyze(png_upload, metadata)
        second = await service.analyze(png_upload, metadata)

        assert first.analysis_id != second.analysis_id
        assert store.save_analysis.await_count == 2

    @pytest.mark.asyncio
    async def test_custom_size_limit(self, vision_client, store, metadata):
        service = ImageAnalysisService(vision_client, store, max_image_bytes=1024)

        with pytest.raises(ImageValidationError) as exc_info:
            await service.analyze(ImageUpload("a.png", "image/png", make_png(2048)), metadata)

        assert "exceeds maximum" in exc_info.value.reason
