"""
Parsing and normalization of the vision model's reply.

The model is asked for a JSON object but answers in free text, sometimes
wrapping the object in a markdown code fence. Extraction tries, in order:

1. a ```json tagged fence
2. an untagged ``` fence
3. the raw text

The extracted string is parsed into a ``RawAnalysis`` and then normalized
into an ``AnalysisRecord`` where every field has an explicit default.
"""

import json
import logging
import math
import re
import uuid
from typing import Any, List, Optional

from pydantic import ValidationError

from snaptriage.models import (
    AnalysisRecord,
    AnalysisStatus,
    KeyTextBlock,
    ProbableCause,
    RawAnalysis,
    Severity,
)

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TITLE = "Unknown Error"
DEFAULT_SUGGESTED_FIX = "No suggestion available"
DEFAULT_CONFIDENCE = 0.5

MAX_TITLE_LENGTH = 100
MAX_FIX_LENGTH = 500
MAX_FOLLOW_UP_QUESTIONS = 3

_TAGGED_FENCE = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL | re.IGNORECASE)
_UNTAGGED_FENCE = re.compile(r"```[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL)


class AIResponseParseError(Exception):
    """Raised when the model reply does not contain a JSON object."""

    def __init__(self, raw_content: str, message: str = "Failed to parse AI response"):
        super().__init__(message)
        self.raw_content = raw_content


def extract_json_text(content: str) -> str:
    """
    Extract the JSON payload from a model reply.

    Args:
        content: Raw reply text

    Returns:
        Inner content of the first tagged fence, else of the first untagged
        fence, else the trimmed raw text
    """
    match = _TAGGED_FENCE.search(content) or _UNTAGGED_FENCE.search(content)
    if match:
        return match.group(1).strip()
    return content.strip()


def parse_model_reply(content: Optional[str]) -> RawAnalysis:
    """
    Parse a model reply into a provisional ``RawAnalysis``.

    Raises:
        AIResponseParseError: If the reply is not a JSON object, fenced or not
    """
    content = content or ""
    json_text = extract_json_text(content)

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.warning(f"Could not decode JSON from model reply: {e}")
        raise AIResponseParseError(content) from e

    if not isinstance(data, dict):
        logger.warning(f"Model reply decoded to {type(data).__name__}, expected object")
        raise AIResponseParseError(content)

    try:
        return RawAnalysis.model_validate(data)
    except ValidationError as e:
        raise AIResponseParseError(content) from e


def normalize_analysis(raw: RawAnalysis, analysis_id: Optional[str] = None) -> AnalysisRecord:
    """
    Convert a provisional reply into a complete ``AnalysisRecord``.

    Falsy values count as absent and take the field default. A fresh
    ``analysis_id`` is generated unless one is supplied by the caller.
    """
    return AnalysisRecord(
        analysis_id=analysis_id or str(uuid.uuid4()),
        error_title=_text(raw.error_title, DEFAULT_ERROR_TITLE)[:MAX_TITLE_LENGTH],
        error_code=_optional_text(raw.error_code),
        product=_optional_text(raw.product),
        environment=raw.environment if isinstance(raw.environment, dict) and raw.environment else None,
        key_text_blocks=_key_text_blocks(raw.key_text_blocks),
        probable_cause=_enum_value(ProbableCause, raw.probable_cause, ProbableCause.UNKNOWN),
        suggested_fix=_text(raw.suggested_fix, DEFAULT_SUGGESTED_FIX)[:MAX_FIX_LENGTH],
        severity=_enum_value(Severity, raw.severity, Severity.MEDIUM),
        confidence=_confidence(raw.confidence),
        follow_up_questions=_questions(raw.follow_up_questions),
        status=AnalysisStatus.OK,
    )


def _text(value: Any, default: str) -> str:
    if not value:
        return default
    text = value if isinstance(value, str) else str(value)
    return text.strip() or default


def _optional_text(value: Any) -> Optional[str]:
    if not value:
        return None
    text = value if isinstance(value, str) else str(value)
    return text.strip() or None


def _enum_value(enum_cls, value: Any, default):
    if not isinstance(value, str):
        return default
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        logger.debug(f"Unrecognised {enum_cls.__name__} value {value!r}, using {default.value}")
        return default


def _confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    if not value or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(max(number, 0.0), 1.0)


def _bbox(value: Any) -> List[float]:
    if isinstance(value, dict):
        value = [value.get(key) for key in ("x", "y", "w", "h")]
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return [0.0, 0.0, 0.0, 0.0]
    try:
        return [float(v) for v in value]
    except (TypeError, ValueError):
        return [0.0, 0.0, 0.0, 0.0]


def _key_text_blocks(value: Any) -> List[KeyTextBlock]:
    if not isinstance(value, list):
        return []

    blocks = []
    for item in value:
        if not isinstance(item, dict):
            continue
        text = _optional_text(item.get("text"))
        if text is None:
            continue
        blocks.append(KeyTextBlock(
            text=text,
            bbox=_bbox(item.get("bbox", item.get("bounding_box"))),
            confidence=_confidence(item.get("confidence")),
        ))
    return blocks


def _questions(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    questions = [q.strip() for q in value if isinstance(q, str) and q.strip()]
    return questions[:MAX_FOLLOW_UP_QUESTIONS]
