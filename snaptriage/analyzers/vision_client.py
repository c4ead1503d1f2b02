"""
Vision model client.

Wraps the OpenAI / Azure OpenAI chat-completion API for a single purpose:
sending one error screenshot with the triage prompt and returning the raw
text of the model's reply.
"""

import logging
from typing import Optional

from openai import APIError, APIStatusError, AsyncAzureOpenAI, AsyncOpenAI, OpenAIError

from snaptriage.config import Settings
from snaptriage.models import ProbableCause

logger = logging.getLogger(__name__)

USER_PROMPT = (
    "Analyze this error screenshot and extract all relevant information "
    "for customer support triage."
)


class AIServiceError(Exception):
    """Raised when the AI service does not return a successful completion."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def detail(self) -> str:
        if self.status_code is not None:
            return f"API returned {self.status_code}"
        return str(self)


def build_system_prompt() -> str:
    """Build the fixed system prompt with the probable_cause taxonomy."""
    taxonomy = "\n".join(f"- {cause.value}" for cause in ProbableCause)
    return f"""You are an expert error analyzer for customer support. Extract structured information from error screenshots.

TAXONOMY for probable_cause (use EXACTLY one of these):
{taxonomy}

Extract:
1. error_title: Short, clear title (≤100 chars)
2. error_code: Any error code visible (or null)
3. product: Application/service name (or null)
4. environment: Object with os, browser, app, version if visible
5. key_text_blocks: Array of important text with bounding boxes [x,y,w,h] and confidence
6. probable_cause: From taxonomy above
7. suggested_fix: Actionable fix (≤500 chars)
8. severity: low, medium, or high
9. confidence: 0-1 score of analysis accuracy
10. follow_up_questions: 0-3 questions to ask user

Respond with a single JSON object using exactly these keys.
Be precise and actionable."""


SYSTEM_PROMPT = build_system_prompt()


class VisionClient:
    """Wrapper for the OpenAI/Azure OpenAI chat-completion API."""

    def __init__(self, settings: Settings, client=None):
        """
        Initialize the client from settings.

        The SDK client is built on first use, so the app can be created
        before credentials are configured.

        Args:
            settings: Application settings
            client: Pre-built async SDK client (tests inject a mock here)
        """
        self.settings = settings
        self.temperature = settings.openai_temperature
        self.max_tokens = settings.openai_max_tokens
        self.is_azure = settings.uses_azure

        if self.is_azure:
            self.model = settings.azure_openai_deployment or settings.openai_model
        else:
            self.model = settings.openai_model

        self._client = client

    @property
    def client(self):
        """The async SDK client, created on first access."""
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self):
        settings = self.settings
        try:
            if self.is_azure:
                client = AsyncAzureOpenAI(
                    api_key=settings.azure_openai_api_key,
                    api_version=settings.azure_openai_api_version,
                    azure_endpoint=settings.azure_openai_endpoint,
                    timeout=settings.openai_timeout_seconds,
                    max_retries=0,
                )
                logger.info("Initialized Azure OpenAI client")
            else:
                client = AsyncOpenAI(
                    api_key=settings.openai_api_key,
                    base_url=settings.openai_base_url,
                    timeout=settings.openai_timeout_seconds,
                    max_retries=0,
                )
                logger.info("Initialized OpenAI client")
        except OpenAIError as e:
            logger.error(f"Could not create OpenAI client: {e}")
            raise AIServiceError(str(e)) from e
        return client

    def build_messages(self, image_data_url: str) -> list:
        """Build the system + user messages for one screenshot."""
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_data_url}},
                ],
            },
        ]

    async def analyze_image(self, image_data_url: str) -> str:
        """
        Send a screenshot to the model and return the reply text.

        Args:
            image_data_url: Base64 data URL of the validated image

        Returns:
            The content of the first choice (empty string if absent)

        Raises:
            AIServiceError: If the API call fails
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(image_data_url),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except APIStatusError as e:
            logger.error(f"OpenAI API error: {e.status_code} {e.message}")
            raise AIServiceError("OpenAI API error", status_code=e.status_code) from e
        except APIError as e:
            logger.error(f"OpenAI API request failed: {e}")
            raise AIServiceError(str(e) or "OpenAI API request failed") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        """Close the underlying HTTP client, if one was created."""
        if self._client is not None:
            await self._client.close()
