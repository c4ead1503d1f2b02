"""Analysis data models."""

import base64
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProbableCause(str, Enum):
    """Closed taxonomy of diagnostic categories the model must choose from."""

    NETWORK_ERROR = "network_error"
    AUTHENTICATION_ERROR = "authentication_error"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    INVALID_INPUT = "invalid_input"
    SERVER_ERROR = "server_error"
    DEPENDENCY_DOWN = "dependency_down"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Severity of the diagnosed error."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisStatus(str, Enum):
    """Outcome of an analysis request."""

    OK = "ok"
    FAILED = "failed"


class KeyTextBlock(BaseModel):
    """Text region extracted from the screenshot."""

    text: str
    bbox: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0, 0.0], min_length=4, max_length=4)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class RawAnalysis(BaseModel):
    """
    Provisional view of the model's reply.

    Every field is optional and untyped; nothing here is trusted until it has
    been through the normalizer.
    """

    model_config = ConfigDict(extra="ignore")

    error_title: Optional[Any] = None
    error_code: Optional[Any] = None
    product: Optional[Any] = None
    environment: Optional[Any] = None
    key_text_blocks: Optional[Any] = None
    probable_cause: Optional[Any] = None
    suggested_fix: Optional[Any] = None
    severity: Optional[Any] = None
    confidence: Optional[Any] = None
    follow_up_questions: Optional[Any] = None


class AnalysisRecord(BaseModel):
    """Normalized structured result of analyzing one screenshot."""

    analysis_id: str
    error_title: str = Field(max_length=100)
    error_code: Optional[str] = None
    product: Optional[str] = None
    environment: Optional[Dict[str, Any]] = None
    key_text_blocks: List[KeyTextBlock] = []
    probable_cause: ProbableCause = ProbableCause.UNKNOWN
    suggested_fix: str = Field(max_length=500)
    severity: Severity = Severity.MEDIUM
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    follow_up_questions: List[str] = Field(default_factory=list, max_length=3)
    status: AnalysisStatus = AnalysisStatus.OK
    created_at: Optional[datetime] = None


class StoredAnalysis(AnalysisRecord):
    """Analysis record as read back from the store, with request metadata."""

    image_filename: Optional[str] = None
    image_size_bytes: Optional[int] = None
    requester_ip: Optional[str] = None
    user_agent: Optional[str] = None


class RequestMetadata(BaseModel):
    """Request details persisted alongside an analysis."""

    image_filename: Optional[str] = None
    image_size_bytes: int = 0
    requester_ip: str = "unknown"
    user_agent: str = "unknown"


class AnalysisFailure(BaseModel):
    """Failure body returned for any non-2xx analysis response."""

    status: AnalysisStatus = AnalysisStatus.FAILED
    reason: str
    error: Optional[str] = None
    raw_content: Optional[str] = None


@dataclass
class ImageUpload:
    """An image payload resolved from the request, prior to validation."""

    filename: Optional[str]
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"
