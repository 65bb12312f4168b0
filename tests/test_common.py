"""Tests for common utilities."""

import pytest
import structlog
from prometheus_client import CollectorRegistry

from libs.common.config import BaseConfig, ModelServingConfig
from libs.common.logging import configure_logging, get_logger
from libs.common.metrics import MetricsCollector, measure_time
from libs.common.tracing import get_ml_tracer


def test_config_loading():
    """Test configuration loading."""
    config = BaseConfig()
    assert config.ml_env == "local"
    assert config.ml_log_level == "INFO"
    assert config.ml_log_format == "json"


def test_model_serving_config():
    """Test model serving configuration."""
    config = ModelServingConfig()
    assert config.ml_model_serving_port == 9005
    assert config.ml_model_default_name == ""
    assert config.ml_session_config_path is None
    assert config.ml_default_top_n == 5
    assert config.ml_discover_on_startup is True


def test_model_serving_config_from_env(monkeypatch):
    """Environment variables override defaults."""
    monkeypatch.setenv("ML_MODEL_DIR", "/srv/models")
    monkeypatch.setenv("ML_MODEL_DEFAULT_NAME", "inception")
    monkeypatch.setenv("ML_DEFAULT_TOP_N", "3")
    config = ModelServingConfig()
    assert config.ml_model_dir == "/srv/models"
    assert config.ml_model_default_name == "inception"
    assert config.ml_default_top_n == 3


def test_model_serving_config_rejects_bad_top_n(monkeypatch):
    monkeypatch.setenv("ML_DEFAULT_TOP_N", "0")
    with pytest.raises(ValueError):
        ModelServingConfig()


def test_logging_configuration():
    """Test logging configuration."""
    configure_logging("test-service", "INFO", "json")
    logger = get_logger("test")
    logger.info("configured", answer=42)
    assert structlog.contextvars.get_contextvars()["service"] == "test-service"


def test_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        configure_logging("test-service", "LOUD", "console")


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service", registry=CollectorRegistry())
    assert collector.service_name == "test-service"

    collector.record_http_request("GET", "/test", 200, 0.1)
    collector.record_inference("test-model", "features", 0.05)
    collector.record_inference("test-model", "image", 0.05, status="error")
    collector.record_preprocess("png", 0.01)
    collector.record_model_load("test-model", "success")
    collector.set_models_loaded(1)
    collector.record_cache_hit("model_registry")
    collector.record_cache_miss("model_registry")

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "http_requests_total" in metrics
    assert collector.registry.get_sample_value(
        "ml_inference_requests_total",
        {"model_name": "test-model", "input_kind": "image", "status": "error"},
    ) == 1.0
    assert collector.registry.get_sample_value("ml_models_loaded") == 1.0


def test_measure_time_reraises():
    @measure_time("unit.fail")
    def fail():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        fail()


def test_ml_tracer_without_provider():
    """Spans are no-ops until tracing is configured."""
    tracer = get_ml_tracer("test-service")
    with tracer.trace_model_load(model_name="m") as span:
        span.set_attribute("model.graph_path", "/tmp/m.pb")
    with pytest.raises(ValueError):
        with tracer.trace_model_inference(model_name="m", input_kind="features"):
            raise ValueError("propagates")
