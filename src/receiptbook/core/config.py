"""Application configuration using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application settings
    app_name: str = Field(default="receiptbook", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: str = Field(default="logs", description="Directory for log files")

    # API settings
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )
    max_upload_size: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted upload size in bytes (10MB)",
    )

    # Vision model configuration (OpenAI-compatible chat completions API)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the chat completions API",
    )
    vision_model: str = Field(
        default="gpt-4o", description="Vision-capable model for receipt analysis"
    )
    fallback_model: str = Field(
        default="gpt-4o-mini",
        description="Text-only model used when the vision model is rejected",
    )
    extraction_timeout: float = Field(
        default=30.0,
        description="Timeout for extraction calls in seconds",
    )

    # Extraction endpoint used by the client side of the pipeline
    extraction_endpoint_url: str = Field(
        default="http://localhost:8000/api/v1/analyze-receipt",
        description="URL of the analyze-receipt endpoint",
    )

    # Local storage
    storage_path: str = Field(
        default="data/receipts.json",
        description="Path to the persisted receipts JSON file",
    )
    media_dir: str = Field(
        default="data/media",
        description="Directory for receipt files owned by the store",
    )
    storage_max_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum size of the persisted receipts blob (5MB)",
    )

    # PDF rendering
    rasterizer_scale: float = Field(
        default=2.0,
        description="Render scale for PDF pages (1.0 = 72 DPI)",
    )

    model_config = SettingsConfigDict(
        env_file=[".env", ".env.local"],  # Local overrides
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def chat_completions_url(self) -> str:
        """Construct the full chat completions URL."""
        return f"{self.openai_base_url.rstrip('/')}/chat/completions"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
