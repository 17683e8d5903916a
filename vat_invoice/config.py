"""Configuration management for VAT invoice extraction."""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Centralized configuration for VAT invoice extraction.

    A missing API key does not fail construction; every extraction attempt
    fails fast with a configuration error instead.
    """

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Configuration
    gemini_api_key: str = Field(default="", description="Gemini API key for invoice extraction")
    extraction_model: str = Field(default="gemini-2.5-flash", description="Model for data extraction")

    # Ingestion Configuration
    max_image_size_mb: float = Field(default=5.0, gt=0, description="Maximum accepted image size in MB")

    # Batch Configuration
    max_concurrent_extractions: Optional[int] = Field(
        default=None, ge=1, description="Concurrent extraction cap (unbounded when unset)"
    )
    extraction_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Per-call extraction timeout (none when unset)"
    )

    # Debug Configuration
    debug_responses: bool = Field(default=False, description="Save raw model responses for debugging")

    # File Paths
    responses_directory: Path = Field(default=Path("json_responses"), description="Raw response dump folder")
    output_directory: Path = Field(default=Path("output"), description="Export folder")
    logs_directory: Path = Field(default=Path("logs"), description="Log folder")

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def strip_api_key(cls, v):
        """Treat whitespace-only keys as missing."""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("debug_responses", mode="before")
    @classmethod
    def parse_debug_flag(cls, v):
        """Parse debug flag from string."""
        if isinstance(v, str):
            return v == "1" or v.lower() == "true"
        return v

    @field_validator("max_concurrent_extractions", "extraction_timeout_seconds", mode="before")
    @classmethod
    def empty_string_is_unset(cls, v):
        if isinstance(v, str) and v.strip() in ("", "0", "none"):
            return None
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings instance from environment variables (and .env)."""
        load_dotenv()
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", ""),
            extraction_model=os.getenv("EXTRACTION_MODEL", "gemini-2.5-flash"),
            max_concurrent_extractions=os.getenv("MAX_CONCURRENT_EXTRACTIONS") or None,
            extraction_timeout_seconds=os.getenv("EXTRACTION_TIMEOUT_SECONDS") or None,
            debug_responses=os.getenv("DEBUG_RESPONSES", "0") == "1",
        )

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def max_image_size_bytes(self) -> int:
        return int(self.max_image_size_mb * 1024 * 1024)

    @property
    def api_client_kwargs(self) -> dict:
        """Get API client configuration."""
        return {"api_key": self.gemini_api_key}
