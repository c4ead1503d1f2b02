"""
Application configuration management.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # OpenAI
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.3
    openai_max_tokens: int = 1500
    openai_timeout_seconds: Optional[float] = None

    # Azure OpenAI (takes precedence when endpoint and key are both set)
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_deployment: Optional[str] = None
    azure_openai_api_version: str = "2024-02-15-preview"

    # Database
    database_url: str = "mysql+aiomysql://root@localhost:3306/snaptriage"

    # Uploads
    max_image_bytes: int = 15 * 1024 * 1024
    image_fetch_timeout_seconds: float = 10.0

    # Application
    cors_allow_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @property
    def uses_azure(self) -> bool:
        return bool(self.azure_openai_endpoint and self.azure_openai_api_key)
