"""Model manager for loading and serving frozen graph models.

Responsible for discovering models in the model area at startup, resolving
models on demand, and running feature-vector and image classification
requests. Blocking work (file reads, graph import, session runs) is moved off
the event loop so one slow request does not stall the others.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import structlog

from libs.common.config import ModelServingConfig
from libs.common.logging import log_performance
from libs.common.metrics import MetricsCollector
from libs.common.tracing import get_ml_tracer
from ..errors import ExecutionError, InferenceTimeoutError, ModelNotFoundError
from ..loaders.model_loader import ModelLoader, read_session_config
from ..loaders.model_store import ModelStore
from ..schemas import ClassifyResult, LoadedModel, ModelInfo
from .graph_runner import GraphRunner, feature_tensor
from .image_preprocessor import ImageFormat, ImagePreprocessor
from .label_ranker import rank
from .model_registry import ModelRegistry

logger = structlog.get_logger("model_serving.model_manager")


class ModelManager:
    """Wires storage, registry and execution together for the API layer.

    Design
    - One ``ModelRegistry`` holds every loaded model for the process lifetime
    - Session options come from an optional serialized ``ConfigProto``
    - Graph execution runs under a per-request deadline
    """

    def __init__(self, config: ModelServingConfig, metrics: Optional[MetricsCollector] = None):
        """Create a model manager.

        Parameters
        - config: ``ModelServingConfig`` with the model area and defaults
        - metrics: Optional collector; metrics are skipped when absent
        """
        self.config = config
        self.metrics = metrics
        self.tracer = get_ml_tracer("model-serving")

        session_config = read_session_config(config.ml_session_config_path)
        self.store = ModelStore(config.ml_model_dir)
        self.loader = ModelLoader(self.store, self.tracer)
        self.registry = ModelRegistry(self.loader, metrics)
        self.runner = GraphRunner(session_config)
        self.preprocessor = ImagePreprocessor(session_config)

    async def initialize(self) -> List[str]:
        """Load every model found in the model area.

        Any failure is fatal: the error is logged and re-raised so the
        service refuses to start with a partial registry.
        """
        if not self.config.ml_discover_on_startup:
            logger.info("Model discovery disabled, models load on first use")
            return []
        try:
            names = await asyncio.to_thread(self.registry.discover)
        except Exception as e:
            logger.error("Failed to initialize model manager", model_dir=self.config.ml_model_dir, error=str(e))
            raise
        logger.info("Model manager initialized successfully", models=names)
        return names

    async def get_model(self, model_name: Optional[str] = None) -> LoadedModel:
        """Resolve ``model_name``, falling back to the configured default."""
        name = model_name or self.config.ml_model_default_name
        if not name:
            raise ModelNotFoundError("", "no model requested and no default model configured")
        return await asyncio.to_thread(self.registry.resolve, name)

    async def predict(
        self,
        values: Sequence[float],
        model_name: Optional[str] = None,
        top_n: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Run a single feature row through a model.

        Returns the raw probability vector together with the ranked labels
        (all of them unless ``top_n`` is given).
        """
        start_time = time.time()
        model = await self.get_model(model_name)
        probabilities = await self._execute(model, feature_tensor(values), "features")
        labels = rank(model.labels, probabilities, top_n)
        latency_ms = (time.time() - start_time) * 1000

        logger.info(
            "Prediction completed",
            model_name=model.name,
            value_count=len(values),
            latency_ms=latency_ms
        )
        return {
            "model": model.name,
            "probabilities": [float(p) for p in probabilities],
            "labels": labels,
            "latency_ms": latency_ms,
        }

    async def classify_image(
        self,
        buffer: bytes,
        image_format: str,
        model_name: Optional[str] = None,
        top_n: Optional[int] = None,
        filename: str = "",
    ) -> ClassifyResult:
        """Decode an image, run it through a model and rank the labels."""
        image_format = ImageFormat.parse(image_format)
        if top_n is None:
            top_n = self.config.ml_default_top_n
        model = await self.get_model(model_name)

        start_time = time.time()
        with self.tracer.trace_image_preprocess(image_format=image_format.value, size=len(buffer)):
            tensor = await asyncio.to_thread(self.preprocessor.transform, buffer, image_format)
        if self.metrics:
            self.metrics.record_preprocess(image_format.value, time.time() - start_time)

        probabilities = await self._execute(model, tensor, "image")
        labels = rank(model.labels, probabilities, top_n)

        logger.info(
            "Image classified",
            model_name=model.name,
            filename=filename,
            image_format=image_format.value,
            top_label=labels[0].label if labels else None
        )
        return ClassifyResult(filename=filename, labels=labels)

    async def _execute(self, model: LoadedModel, tensor: np.ndarray, input_kind: str) -> np.ndarray:
        """Run the graph off the event loop under the configured deadline."""
        timeout = self.config.ml_inference_timeout_seconds
        start_time = time.time()
        with self.tracer.trace_model_inference(model_name=model.name, input_kind=input_kind):
            try:
                probabilities = await asyncio.wait_for(
                    asyncio.to_thread(self.runner.infer, model, tensor),
                    timeout=timeout
                )
            except asyncio.TimeoutError as e:
                self._record_inference(model.name, input_kind, start_time, "timeout")
                raise InferenceTimeoutError(
                    f"Inference on model {model.name!r} exceeded {timeout}s"
                ) from e
            except ExecutionError:
                self._record_inference(model.name, input_kind, start_time, "error")
                raise

        duration = self._record_inference(model.name, input_kind, start_time, "success")
        log_performance("inference", duration * 1000, model_name=model.name, input_kind=input_kind)
        return probabilities

    def _record_inference(self, model_name: str, input_kind: str, start_time: float, status: str) -> float:
        duration = time.time() - start_time
        if self.metrics:
            self.metrics.record_inference(model_name, input_kind, duration, status)
        return duration

    async def list_models(self) -> List[ModelInfo]:
        """List models currently held by the registry."""
        return [ModelInfo.from_loaded(model) for model in self.registry.models()]

    async def get_model_info(self, model_name: str) -> ModelInfo:
        """Describe a model, loading it on demand."""
        return ModelInfo.from_loaded(await self.get_model(model_name))

    async def health_check(self) -> bool:
        """Check if the model manager is healthy."""
        if len(self.registry) == 0:
            logger.warning(
                "Health check passed but no models are currently loaded",
                service="model-serving"
            )
        return True
