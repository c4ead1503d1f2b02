"""
Resolves the image-locator form field into an in-memory upload.

Accepts either a ``data:`` URL or an ``http(s)`` URL. The result goes through
the same validation as a directly uploaded file.
"""

import base64
import binascii
import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

from snaptriage.models import ImageUpload
from snaptriage.services.image_analysis import ImageValidationError, size_exceeded_reason
from snaptriage.utils.metrics import AnalysisMetrics, track_api_call
from snaptriage.utils.logging import get_logger

logger = logging.getLogger(__name__)


class ImageFetchError(Exception):
    """Raised when an image locator cannot be resolved to bytes."""
    pass


class ImageFetcher:
    """Fetches images referenced by URL with a bounded download size."""

    def __init__(
        self,
        max_bytes: int,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._max_bytes = max_bytes
        self._timeout_seconds = timeout_seconds
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(
        self,
        image_url: str,
        metrics: Optional[AnalysisMetrics] = None,
        request_id: Optional[str] = None
    ) -> ImageUpload:
        """
        Resolve an image locator.

        Args:
            image_url: ``data:`` or ``http(s)`` URL
            metrics: Request metrics collector (optional)
            request_id: Request id for log context (optional)

        Returns:
            ImageUpload with the declared content type and raw bytes

        Raises:
            ImageFetchError: If the URL is unsupported or the download fails
            ImageValidationError: If the download exceeds the size limit
        """
        image_url = image_url.strip()
        if image_url.startswith("data:"):
            return self._decode_data_url(image_url)

        parsed = urlparse(image_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ImageFetchError(f"Unsupported image URL: {image_url[:100]}")

        filename = parsed.path.rsplit("/", 1)[-1] or None
        call_logger = get_logger(__name__, request_id=request_id)

        try:
            async with track_api_call(metrics, "image_fetch", call_logger, parsed.netloc, "GET"):
                async with self._get_client().stream("GET", image_url) as response:
                    response.raise_for_status()
                    content_type = _media_type(response.headers.get("content-type"))
                    declared_size = int(response.headers.get("content-length") or 0)
                    if declared_size > self._max_bytes:
                        raise ImageValidationError(size_exceeded_reason(declared_size, self._max_bytes))

                    chunks = []
                    received = 0
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > self._max_bytes:
                            raise ImageValidationError(size_exceeded_reason(received, self._max_bytes))
                        chunks.append(chunk)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch image from {parsed.netloc}: {e}")
            raise ImageFetchError(str(e)) from e

        return ImageUpload(filename=filename, content_type=content_type, data=b"".join(chunks))

    def _decode_data_url(self, image_url: str) -> ImageUpload:
        header, sep, payload = image_url.partition(",")
        if not sep or ";base64" not in header:
            raise ImageFetchError("Data URL must be base64 encoded")

        content_type = _media_type(header[len("data:"):].split(";", 1)[0])
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageFetchError(f"Invalid base64 payload: {e}") from e

        return ImageUpload(filename=None, content_type=content_type, data=data)


def _media_type(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    return header_value.split(";", 1)[0].strip().lower() or None
