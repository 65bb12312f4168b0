"""Tests for the model manager."""

import time

import pytest
from prometheus_client import CollectorRegistry

from app.errors import (
    BoundsError,
    ExecutionError,
    InferenceTimeoutError,
    InputShapeError,
    LoadError,
    ModelNotFoundError,
)
from app.runtime.model_manager import ModelManager
from libs.common.metrics import MetricsCollector
from tests.conftest import COLOR_LABELS, FEATURE_LABELS, build_flat_graph, encode_image, write_model


@pytest.fixture
def metrics():
    return MetricsCollector("test", registry=CollectorRegistry())


@pytest.fixture
def manager(serving_config, metrics):
    return ModelManager(serving_config, metrics)


def inference_count(metrics, model_name, input_kind, status):
    return metrics.registry.get_sample_value(
        "ml_inference_requests_total",
        {"model_name": model_name, "input_kind": input_kind, "status": status},
    )


@pytest.mark.asyncio
async def test_initialize_discovers_models(manager):
    assert await manager.initialize() == ["colors", "features"]
    assert manager.registry.names() == ["colors", "features"]
    assert await manager.health_check()


@pytest.mark.asyncio
async def test_initialize_can_be_disabled(serving_config, metrics):
    config = serving_config.model_copy(update={"ml_discover_on_startup": False})
    manager = ModelManager(config, metrics)
    assert await manager.initialize() == []
    assert len(manager.registry) == 0


@pytest.mark.asyncio
async def test_initialize_fails_fast(model_dir, manager):
    (model_dir / "broken").mkdir()
    (model_dir / "broken" / "params.json").write_text("{")
    with pytest.raises(LoadError):
        await manager.initialize()


@pytest.mark.asyncio
async def test_predict_with_default_model(manager, metrics):
    result = await manager.predict([1.0, 5.0, 2.0])
    assert result["model"] == "features"
    assert len(result["probabilities"]) == len(FEATURE_LABELS)
    assert [r.label for r in result["labels"]] == ["dog", "fish", "cat"]
    assert result["latency_ms"] >= 0
    assert inference_count(metrics, "features", "features", "success") == 1.0


@pytest.mark.asyncio
async def test_predict_top_n(manager):
    result = await manager.predict([1.0, 5.0, 2.0], model_name="features", top_n=1)
    assert [r.label for r in result["labels"]] == ["dog"]


@pytest.mark.asyncio
async def test_predict_unknown_model(manager):
    with pytest.raises(LoadError) as excinfo:
        await manager.predict([1.0, 2.0, 3.0], model_name="nope")
    assert isinstance(excinfo.value.cause, ModelNotFoundError)


@pytest.mark.asyncio
async def test_predict_without_default_model(serving_config, metrics):
    config = serving_config.model_copy(update={"ml_model_default_name": ""})
    manager = ModelManager(config, metrics)
    with pytest.raises(ModelNotFoundError):
        await manager.predict([1.0, 2.0, 3.0])


@pytest.mark.asyncio
async def test_predict_wrong_width_then_recovers(manager, metrics):
    with pytest.raises(InputShapeError):
        await manager.predict([1.0, 2.0])
    result = await manager.predict([9.0, 1.0, 1.0])
    assert result["labels"][0].label == "cat"
    assert inference_count(metrics, "features", "features", "error") == 1.0


@pytest.mark.asyncio
async def test_classify_red_image(manager, red_png):
    result = await manager.classify_image(red_png, "png", model_name="colors", top_n=2, filename="red.png")
    assert result.filename == "red.png"
    assert [r.label for r in result.labels][0] == "red"
    assert len(result.labels) == 2


@pytest.mark.asyncio
async def test_classify_jpeg(manager):
    image = encode_image((0, 255, 0), "jpeg")
    result = await manager.classify_image(image, "JPEG", model_name="colors", top_n=3)
    assert [r.label for r in result.labels][0] == "green"
    assert {r.label for r in result.labels} == set(COLOR_LABELS)


@pytest.mark.asyncio
async def test_classify_default_top_n_beyond_labels(manager, red_png):
    # The default of five exceeds the three labels of the color model.
    with pytest.raises(BoundsError) as excinfo:
        await manager.classify_image(red_png, "png", model_name="colors")
    assert excinfo.value.requested == 5
    assert excinfo.value.available == len(COLOR_LABELS)


@pytest.mark.asyncio
async def test_inference_timeout(serving_config, metrics, monkeypatch):
    config = serving_config.model_copy(update={"ml_inference_timeout_seconds": 0.05})
    manager = ModelManager(config, metrics)

    def slow_infer(model, tensor):
        time.sleep(0.5)
        return None

    monkeypatch.setattr(manager.runner, "infer", slow_infer)
    with pytest.raises(InferenceTimeoutError):
        await manager.predict([1.0, 2.0, 3.0])
    assert inference_count(metrics, "features", "features", "timeout") == 1.0


@pytest.mark.asyncio
async def test_model_listing(manager):
    assert await manager.list_models() == []
    info = await manager.get_model_info("colors")
    assert info.name == "colors"
    assert info.label_count == len(COLOR_LABELS)
    assert info.model_dump(by_alias=True)["inputNode"] == "input"
    assert [m.name for m in await manager.list_models()] == ["colors"]


@pytest.mark.asyncio
async def test_predict_output_without_batch_dimension(model_dir, manager, metrics):
    write_model(model_dir, "flat", build_flat_graph(), FEATURE_LABELS)
    with pytest.raises(ExecutionError):
        await manager.predict([1.0, 2.0, 3.0], model_name="flat")
    assert inference_count(metrics, "flat", "features", "error") == 1.0
