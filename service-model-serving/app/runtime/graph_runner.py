"""Executes loaded graphs and extracts the output probability vector."""

from typing import Optional, Sequence

import numpy as np
import structlog
import tensorflow as tf

from ..errors import ExecutionError, InputShapeError
from ..schemas import LoadedModel

logger = structlog.get_logger("model_serving.graph_runner")


def tensor_name(node: str) -> str:
    """Map a node name to its first output (``node`` -> ``node:0``)."""
    return node if ":" in node else f"{node}:0"


def feature_tensor(values: Sequence[float]) -> np.ndarray:
    """Wrap a feature row into a 1×K float32 matrix."""
    return np.asarray([list(values)], dtype=np.float32)


class GraphRunner:
    """Runs inference against a shared, read-only graph.

    Every call opens its own session and closes it on exit, so concurrent
    requests on one model never share session state.
    """

    def __init__(self, session_config: Optional[tf.compat.v1.ConfigProto] = None):
        self.session_config = session_config

    def run(
        self,
        model: LoadedModel,
        input_node: str,
        tensor: np.ndarray,
        output_node: str,
    ) -> np.ndarray:
        """Feed ``tensor`` to ``input_node`` and return the first row of ``output_node``.

        Raises
        - InputShapeError: the tensor contradicts the input's static shape
        - ExecutionError: unknown node or engine failure
        """
        graph = model.graph
        try:
            feed = graph.get_tensor_by_name(tensor_name(input_node))
            fetch = graph.get_tensor_by_name(tensor_name(output_node))
        except (KeyError, ValueError) as e:
            raise ExecutionError(f"Model {model.name!r} has no node {e}") from e

        if not feed.shape.is_compatible_with(tensor.shape):
            raise InputShapeError(
                f"Model {model.name!r} expects input of shape {feed.shape}, got {list(tensor.shape)}"
            )

        try:
            with tf.compat.v1.Session(graph=graph, config=self.session_config) as session:
                result = session.run(fetch, feed_dict={feed: tensor})
        except (tf.errors.OpError, ValueError, TypeError) as e:
            logger.warning("Graph execution failed", model_name=model.name, error=str(e))
            raise ExecutionError(f"Graph execution failed for model {model.name!r}: {e}") from e

        result = np.asarray(result)
        if result.ndim < 2:
            raise ExecutionError(
                f"Model {model.name!r} produced shape {list(result.shape)}, expected [batch, classes]"
            )
        return result[0]

    def infer(self, model: LoadedModel, tensor: np.ndarray) -> np.ndarray:
        """Run ``model`` between the nodes named in its descriptor."""
        descriptor = model.descriptor
        return self.run(model, descriptor.input_node, tensor, descriptor.output_node)
