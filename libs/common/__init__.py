"""Common utilities shared across services.

Includes:
- ``config``: Pydantic-based service configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.
- ``tracing``: OpenTelemetry setup and ML span helpers.

Import pattern:
- from libs.common.config import ModelServingConfig
- from libs.common.logging import configure_logging
"""
