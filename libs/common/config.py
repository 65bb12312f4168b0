"""Configuration management for the model serving platform.

This module centralizes environment-driven configuration for the serving
service. It builds on ``pydantic_settings.BaseSettings`` so configuration can
be provided via environment variables, ``.env`` files, or defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- One place to discover commonly used environment variables
- A small service‑specific subclass to keep concerns clear

Usage
- Inject the config in your service entrypoint:
  ``config = ModelServingConfig()``
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration shared by platform services.

    Field names double as environment variable names (case-insensitive), so
    ``ml_log_level`` is read from ``ML_LOG_LEVEL``.

    Notes
    - Add new shared settings here so downstream services inherit them.
    - Prefer a typed field over reading ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ml_env: str = Field(default="local", description="Deployment environment name")

    # Observability
    ml_tracing_enabled: bool = Field(default=False, description="Export OpenTelemetry spans")
    ml_otel_exporter: str = Field(
        default="http://localhost:4318/v1/traces",
        description="OTLP/HTTP traces endpoint",
    )
    ml_otel_service_name: str = Field(default="tfaas", description="Service name reported in spans")

    # Logging
    ml_log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    ml_log_format: str = Field(default="json", description="json or console")


class ModelServingConfig(BaseConfig):
    """Configuration for the model serving service.

    Extends ``BaseConfig`` with the model area location, the default model and
    the knobs used while executing graphs.
    """

    ml_model_serving_port: int = Field(default=9005)
    ml_model_dir: str = Field(default="/app/models", description="Root directory holding one folder per model")
    ml_model_default_name: str = Field(default="", description="Model used when a request names none")
    ml_session_config_path: Optional[str] = Field(
        default=None,
        description="File holding a serialized tf.compat.v1.ConfigProto",
    )
    ml_default_top_n: int = Field(default=5, ge=1)
    ml_inference_timeout_seconds: float = Field(default=30.0, gt=0)
    ml_discover_on_startup: bool = Field(default=True)
