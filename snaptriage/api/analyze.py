"""
Screenshot analysis REST API endpoints.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from snaptriage.analyzers.response_parser import AIResponseParseError
from snaptriage.analyzers.vision_client import AIServiceError
from snaptriage.models import AnalysisFailure, ImageUpload, RequestMetadata, StoredAnalysis
from snaptriage.services.analysis_store import AnalysisStore
from snaptriage.services.image_analysis import ImageAnalysisService, ImageValidationError, validate_image
from snaptriage.services.image_fetcher import ImageFetcher, ImageFetchError
from snaptriage.utils.metrics import AnalysisMetrics, emit_metric

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])

ANALYZE_PATH = "/analyze-image"
DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


def get_analysis_service(request: Request) -> ImageAnalysisService:
    return request.app.state.analysis_service


def get_image_fetcher(request: Request) -> ImageFetcher:
    return request.app.state.image_fetcher


def get_analysis_store(request: Request) -> AnalysisStore:
    return request.app.state.analysis_store


def failure_response(
    status_code: int,
    reason: str,
    error: Optional[str] = None,
    raw_content: Optional[str] = None
) -> JSONResponse:
    """Build a ``{status: "failed", reason, ...}`` JSON response."""
    body = AnalysisFailure(reason=reason, error=error, raw_content=raw_content)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


def request_metadata(request: Request, upload: Optional[ImageUpload]) -> RequestMetadata:
    """Collect the request details persisted with an analysis."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        requester_ip = forwarded_for.split(",")[0].strip()
    else:
        requester_ip = request.headers.get("x-real-ip") or (request.client.host if request.client else None)

    return RequestMetadata(
        image_filename=upload.filename if upload else None,
        image_size_bytes=upload.size if upload else 0,
        requester_ip=requester_ip or "unknown",
        user_agent=request.headers.get("user-agent") or "unknown",
    )


@router.post(ANALYZE_PATH)
async def analyze_image(
    request: Request,
    file: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
    service: ImageAnalysisService = Depends(get_analysis_service),
    fetcher: ImageFetcher = Depends(get_image_fetcher),
) -> JSONResponse:
    """
    Analyze an uploaded error screenshot.

    This endpoint:
    1. Resolves the image from the ``file`` field or the ``image_url`` field
    2. Validates type (PNG/JPEG) and size
    3. Sends the image to the vision model
    4. Normalizes and stores the result

    Returns:
        AnalysisRecord on success, ``{status: "failed", reason}`` otherwise
    """
    request_id = getattr(request.state, "request_id", None)
    metrics = AnalysisMetrics(request_id or "")
    metrics.start()
    logger.info("Starting image analysis request", extra={"request_id": request_id})

    try:
        upload = None
        if file is not None:
            upload = ImageUpload(
                filename=file.filename,
                content_type=file.content_type,
                data=await file.read(),
            )
        elif image_url:
            upload = await fetcher.fetch(image_url, metrics=metrics, request_id=request_id)

        record = await service.analyze(
            upload,
            request_metadata(request, upload),
            request_id=request_id,
            metrics=metrics,
        )

    except ImageValidationError as e:
        logger.warning(f"Image rejected: {e.reason}", extra={"request_id": request_id})
        return _failed(metrics, 400, e.reason, error=e.error)
    except ImageFetchError as e:
        logger.warning(f"Image fetch failed: {e}", extra={"request_id": request_id})
        return _failed(metrics, 400, "Could not fetch image", error=str(e))
    except AIServiceError as e:
        return _failed(metrics, 500, "OpenAI API error", error=e.detail)
    except AIResponseParseError as e:
        logger.error("Failed to parse AI response", extra={"request_id": request_id})
        return _failed(metrics, 500, "Failed to parse AI response", raw_content=e.raw_content)
    except Exception as e:
        logger.error(
            f"Error in analyze-image handler: {e}",
            extra={"request_id": request_id},
            exc_info=True
        )
        return _failed(metrics, 500, "Internal server error", error=str(e) or "Unknown error")

    metrics.complete(status="ok")
    return JSONResponse(status_code=200, content=record.model_dump(mode="json"))


def _failed(
    metrics: AnalysisMetrics,
    status_code: int,
    reason: str,
    error: Optional[str] = None,
    raw_content: Optional[str] = None
) -> JSONResponse:
    metrics.complete(status="failed", error_message=reason)
    emit_metric("analysis.failed", 1, status_code=status_code)
    return failure_response(status_code, reason, error=error, raw_content=raw_content)


@router.get("/analyses", response_model=List[StoredAnalysis])
async def list_analyses(
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    store: AnalysisStore = Depends(get_analysis_store),
):
    """
    List the most recent analyses, newest first.

    Raises:
        500 failure body if the store is unavailable
    """
    try:
        return await store.list_recent(limit)
    except Exception as e:
        logger.error(f"Error listing analyses: {e}", exc_info=True)
        return failure_response(500, "Internal server error", error=str(e))


@router.get("/analyses/{analysis_id}", response_model=StoredAnalysis)
async def get_analysis(
    analysis_id: str,
    store: AnalysisStore = Depends(get_analysis_store),
):
    """Get one stored analysis by id."""
    try:
        analysis = await store.get_analysis(analysis_id)
    except Exception as e:
        logger.error(f"Error getting analysis {analysis_id}: {e}", exc_info=True)
        return failure_response(500, "Internal server error", error=str(e))

    if analysis is None:
        return failure_response(404, "Analysis not found")
    return analysis


async def analyze_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Answer malformed ``/analyze-image`` form fields with a 400 failure body.

    A ``file`` field sent as plain text is rejected the way an upload with
    no usable content type is. Other routes keep FastAPI's default 422 reply.
    """
    if request.url.path != ANALYZE_PATH:
        return await request_validation_exception_handler(request, exc)

    errors = exc.errors()
    reason = "Invalid request"
    error = errors[0].get("msg") if errors else None

    for err in errors:
        if tuple(err.get("loc", ()))[-1:] != ("file",):
            continue
        value = err.get("input")
        text_field = ImageUpload(
            filename=None,
            content_type=None,
            data=value.encode() if isinstance(value, str) else b"",
        )
        try:
            validate_image(text_field)
        except ImageValidationError as e:
            reason, error = e.reason, e.error
        break

    request_id = getattr(request.state, "request_id", None)
    logger.warning(f"Malformed analyze request: {reason}", extra={"request_id": request_id})
    emit_metric("analysis.failed", 1, status_code=400)
    return failure_response(400, reason, error=error)
