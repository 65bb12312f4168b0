"""Materializes frozen TensorFlow graphs and their labels from the model area."""

import time
from pathlib import Path
from typing import Optional, Union

import structlog
import tensorflow as tf
from google.protobuf.message import DecodeError as ProtobufDecodeError

from libs.common.metrics import measure_time
from libs.common.tracing import MLTracer, get_ml_tracer
from ..errors import GraphParseError
from ..schemas import LoadedModel
from .model_store import ModelStore

logger = structlog.get_logger("model_serving.model_loader")


@measure_time("graph.import", component="model_loader")
def import_graph(graph_bytes: bytes, source: str = "<bytes>") -> tf.Graph:
    """Parse a serialized GraphDef into a new, finalized ``tf.Graph``.

    Nodes keep their original names (no import prefix), so descriptor node
    names resolve as ``<node>:0``.
    """
    graph_def = tf.compat.v1.GraphDef()
    try:
        graph_def.ParseFromString(graph_bytes)
    except ProtobufDecodeError as e:
        raise GraphParseError(f"{source} is not a serialized GraphDef: {e}") from e

    graph = tf.Graph()
    try:
        with graph.as_default():
            tf.graph_util.import_graph_def(graph_def, name="")
    except (ValueError, TypeError, tf.errors.OpError) as e:
        raise GraphParseError(f"Cannot import graph from {source}: {e}") from e

    graph.finalize()
    return graph


def read_session_config(path: Optional[Union[str, Path]]) -> Optional[tf.compat.v1.ConfigProto]:
    """Read a serialized ``ConfigProto`` used for every session.

    A missing or unreadable file is logged and ignored so the service keeps
    running with default session options.
    """
    if not path:
        return None
    try:
        body = Path(path).read_bytes()
    except OSError as e:
        logger.error("Unable to read TF config proto file", path=str(path), error=str(e))
        return None
    try:
        return tf.compat.v1.ConfigProto.FromString(body)
    except ProtobufDecodeError as e:
        logger.error("Unable to parse TF config proto file", path=str(path), error=str(e))
        return None


class ModelLoader:
    """Builds ``LoadedModel`` instances from a ``ModelStore``.

    Graph and labels are read before anything is returned, so a caller either
    gets a complete model or an exception.
    """

    def __init__(self, store: ModelStore, tracer: Optional[MLTracer] = None):
        self.store = store
        self.tracer = tracer or get_ml_tracer("model-loader")

    def load(self, model_name: str) -> LoadedModel:
        """Load descriptor, graph and labels for ``model_name``.

        Raises ``StorageError`` or ``ParseError`` subclasses unchanged; the
        registry is responsible for wrapping them.
        """
        start_time = time.time()
        with self.tracer.trace_model_load(model_name=model_name) as span:
            descriptor = self.store.read_descriptor(model_name)
            graph_path = self.store.model_path(descriptor.name, descriptor.graph_file)
            labels_path = self.store.model_path(descriptor.name, descriptor.labels_file)
            span.set_attribute("model.graph_path", str(graph_path))

            graph = import_graph(self.store.read_graph(graph_path), source=str(graph_path))
            labels = self.store.read_labels(labels_path)
            if not labels:
                logger.warning("Model has an empty labels file", model_name=model_name, labels=str(labels_path))

            model = LoadedModel(descriptor=descriptor, graph=graph, labels=tuple(labels))

        logger.info(
            "load TF model",
            model_name=model_name,
            model=str(graph_path),
            labels=str(labels_path),
            label_count=len(labels),
            duration_ms=(time.time() - start_time) * 1000,
        )
        return model
