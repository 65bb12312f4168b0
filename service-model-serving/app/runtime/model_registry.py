"""In-memory registry of loaded models.

Design
- Keeps a cache keyed by model name; entries are immutable ``LoadedModel``s
- A model is loaded at most once: concurrent requests for the same uncached
  name share one in-flight load
- The lock only guards dictionary access, so loading one model never blocks
  lookups or loads of another
- Failed loads leave the cache untouched and can be retried
"""

import threading
from concurrent.futures import Future
from typing import Dict, List, Optional

import structlog

from libs.common.metrics import MetricsCollector
from ..errors import LoadError
from ..loaders.model_loader import ModelLoader
from ..schemas import LoadedModel

logger = structlog.get_logger("model_serving.model_registry")


class ModelRegistry:
    """Resolves model names to ``LoadedModel`` instances."""

    def __init__(self, loader: ModelLoader, metrics: Optional[MetricsCollector] = None):
        self.loader = loader
        self.metrics = metrics
        self._models: Dict[str, LoadedModel] = {}
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def __contains__(self, model_name: str) -> bool:
        with self._lock:
            return model_name in self._models

    def __len__(self) -> int:
        with self._lock:
            return len(self._models)

    def get(self, model_name: str) -> Optional[LoadedModel]:
        """Return a cached model without loading it."""
        with self._lock:
            return self._models.get(model_name)

    def names(self) -> List[str]:
        """Names of all cached models, sorted."""
        with self._lock:
            return sorted(self._models)

    def models(self) -> List[LoadedModel]:
        """Cached models ordered by name."""
        with self._lock:
            return [self._models[name] for name in sorted(self._models)]

    def resolve(self, model_name: str) -> LoadedModel:
        """Return the cached model or load it.

        Raises
        - LoadError: storage or parse failure, chained to the cause
        """
        with self._lock:
            model = self._models.get(model_name)
            if model is not None:
                self._record_cache("hit")
                return model
            future = self._inflight.get(model_name)
            is_owner = future is None
            if is_owner:
                future = Future()
                self._inflight[model_name] = future

        if not is_owner:
            logger.debug("Waiting for in-flight model load", model_name=model_name)
            return future.result()

        self._record_cache("miss")
        try:
            model = self.loader.load(model_name)
        except BaseException as e:
            if isinstance(e, LoadError) or not isinstance(e, Exception):
                error = e
            else:
                error = LoadError(model_name, e)
                error.__cause__ = e
            with self._lock:
                del self._inflight[model_name]
            future.set_exception(error)
            if self.metrics:
                self.metrics.record_model_load(model_name, "failure")
            logger.error("Failed to load model", model_name=model_name, error=str(e))
            raise error

        with self._lock:
            self._models[model_name] = model
            del self._inflight[model_name]
            count = len(self._models)
        future.set_result(model)

        if self.metrics:
            self.metrics.record_model_load(model_name, "success")
            self.metrics.set_models_loaded(count)
        return model

    def discover(self) -> List[str]:
        """Eagerly resolve every model found in the model area.

        Any failure aborts discovery: ``StorageError`` when the model area
        cannot be listed, ``LoadError`` for the first model that fails. A
        partially populated registry is not a valid startup state.
        """
        try:
            names = self.loader.store.list_model_names()
        except Exception as e:
            logger.error("Model discovery failed", error=str(e))
            raise

        for model_name in names:
            self.resolve(model_name)

        logger.info("Model discovery complete", models=names, count=len(names))
        return names

    def _record_cache(self, outcome: str) -> None:
        if self.metrics is None:
            return
        if outcome == "hit":
            self.metrics.record_cache_hit("model_registry")
        else:
            self.metrics.record_cache_miss("model_registry")
