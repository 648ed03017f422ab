"""Configuration management for the Ollo generation core.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the OLLO_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (OLLO_* prefix)
2. .env file in the project root
3. Default values defined in OlloConfig

Example .env file:
    OLLO_API_BASE_URL=https://ollo.example.com
    OLLO_API_TOKEN=...
    OLLO_PROGRESS_POLICY=asymptotic
    OLLO_SIZE_BUDGET_BYTES=5242880

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the package.

Usage Example
-------------
    from ollo.core.config import config

    print(config.api_base_url)
    print(config.size_budget_bytes)

Image Budget Constraints
------------------------
The media preprocessor works against a fixed byte budget:
- size_budget_bytes: files above this size go through the resize pipeline
- max_dimension: longer side cap applied while resizing
- initial_quality / quality_step / quality_floor: JPEG back-off schedule
  (0.85, 0.75, 0.65, 0.55 with the defaults)

Progress Estimation
-------------------
- default_generation_time: used when the model registry has no average
- duration_buffer: seconds added on top of the average (0-3)
- progress_tick_seconds: sampling period for the progress ticker
- progress_policy: "linear" or "asymptotic" curve

See Also
--------
- OlloConfig: Full configuration class documentation
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SIZE_BUDGET_BYTES = 5 * 1024 * 1024
MAX_DIMENSION = 2048


class OlloConfig(BaseSettings):
    """Main configuration for the Ollo generation core.

    Values are loaded from environment variables with the OLLO_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    API Settings:
        api_base_url : str
            Base URL of the Ollo API serving /api/generate, /api/models and
            /api/uploads
        api_token : str | None
            Bearer token sent with every request
        request_timeout : float
            Transport-level timeout for HTTP calls in seconds

    Media Settings:
        size_budget_bytes : int
            Maximum upload size before the resize pipeline runs (5 MiB)
        max_dimension : int
            Longest side in pixels after resizing (2048)
        initial_quality : float
            First JPEG quality attempted while resizing
        quality_floor : float
            Lowest JPEG quality the back-off loop may try
        quality_step : float
            Quality decrement between attempts (at least 0.01)
        legacy_conversion_quality : float
            Quality used when converting HEIC/HEIF to PNG
        max_reference_images : int
            Maximum reference images accepted per request

    Queue Settings:
        default_generation_time : float
            Fallback average duration for models without statistics
        duration_buffer : float
            Seconds added to the model average (0-3)
        progress_tick_seconds : float
            Progress sampling period
        progress_policy : Literal["linear", "asymptotic"]
            Progress curve used for display

    Notes
    -----
    - Configuration is immutable after initialization
    - To modify config, set environment variables and restart the process

    Examples
    --------
        >>> custom_config = OlloConfig(
        ...     api_base_url="http://localhost:3001",
        ...     progress_policy="asymptotic",
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OLLO_",
        case_sensitive=False,
    )

    # API settings
    api_base_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the Ollo API",
    )
    api_token: str | None = Field(
        default=None,
        description="Bearer token for authenticated endpoints",
    )
    request_timeout: float = Field(
        default=300.0,
        description="HTTP transport timeout in seconds",
        gt=0,
    )

    # Media preprocessing
    size_budget_bytes: int = Field(
        default=SIZE_BUDGET_BYTES,
        description="Maximum file size before resizing (bytes)",
        gt=0,
    )
    max_dimension: int = Field(
        default=MAX_DIMENSION,
        description="Longest side after resizing (pixels)",
        ge=64,
    )
    initial_quality: float = Field(default=0.85, gt=0, le=1)
    quality_floor: float = Field(default=0.5, gt=0, le=1)
    quality_step: float = Field(default=0.10, ge=0.01, le=1)
    legacy_conversion_quality: float = Field(
        default=0.9,
        description="Quality for HEIC/HEIF to PNG conversion",
        gt=0,
        le=1,
    )
    max_reference_images: int = Field(
        default=14,
        description="Maximum reference images per generation request",
        ge=1,
    )

    # Generation queue
    default_generation_time: float = Field(
        default=30.0,
        description="Average generation time when the model has no statistics",
        gt=0,
    )
    duration_buffer: float = Field(
        default=3.0,
        description="Seconds added to the estimated duration",
        ge=0,
        le=3,
    )
    progress_tick_seconds: float = Field(
        default=0.1,
        description="Progress sampling period in seconds",
        gt=0,
    )
    progress_policy: Literal["linear", "asymptotic"] = Field(
        default="linear",
        description="Progress curve used for display",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level used by the CLI",
    )


# Global configuration instance
# Loads values from environment variables (OLLO_* prefix) and .env file.
config = OlloConfig()
