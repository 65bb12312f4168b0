"""Decodes encoded images into batched float tensors.

The decoding itself runs as a small TensorFlow graph::

    input (string scalar) -> decode_{png,jpeg}(channels=3) -> cast(float32)
        -> expand_dims(axis=0)

The graph depends only on the codec, so one graph per format is built lazily
and reused; every call still opens and closes its own session.
"""

import threading
from enum import Enum
from typing import Dict, NamedTuple, Optional, Union

import numpy as np
import structlog
import tensorflow as tf

from ..errors import DecodeError, UnsupportedFormatError

logger = structlog.get_logger("model_serving.image_preprocessor")


class ImageFormat(str, Enum):
    """Supported image codecs."""

    PNG = "png"
    JPEG = "jpeg"

    @classmethod
    def parse(cls, value: Union[str, "ImageFormat"]) -> "ImageFormat":
        """Return the matching format or raise ``UnsupportedFormatError``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedFormatError(
                f"Unsupported image format {value!r}; expected one of: "
                + ", ".join(f.value for f in cls)
            ) from None


class PreprocessGraph(NamedTuple):
    graph: tf.Graph
    input: tf.Tensor
    output: tf.Tensor


def build_graph(image_format: Union[str, ImageFormat]) -> PreprocessGraph:
    """Build the decoding graph for ``image_format``."""
    image_format = ImageFormat.parse(image_format)
    graph = tf.Graph()
    with graph.as_default():
        input_tensor = tf.compat.v1.placeholder(tf.string, shape=[], name="input")
        if image_format is ImageFormat.PNG:
            decoded = tf.io.decode_png(input_tensor, channels=3)
        elif image_format is ImageFormat.JPEG:
            decoded = tf.io.decode_jpeg(input_tensor, channels=3)
        else:
            raise UnsupportedFormatError(f"No decoder for image format {image_format.value!r}")
        output = tf.expand_dims(tf.cast(decoded, tf.float32), 0, name="make_batch")
    graph.finalize()
    return PreprocessGraph(graph, input_tensor, output)


class ImagePreprocessor:
    """Turns raw image bytes into a ``[1, height, width, 3]`` float32 tensor."""

    def __init__(self, session_config: Optional[tf.compat.v1.ConfigProto] = None):
        self.session_config = session_config
        self._graphs: Dict[ImageFormat, PreprocessGraph] = {}
        self._lock = threading.Lock()

    def graph_for(self, image_format: Union[str, ImageFormat]) -> PreprocessGraph:
        """Return the cached decoding graph for a format, building it once."""
        image_format = ImageFormat.parse(image_format)
        with self._lock:
            graph = self._graphs.get(image_format)
            if graph is None:
                graph = build_graph(image_format)
                self._graphs[image_format] = graph
                logger.debug("Built image preprocessing graph", image_format=image_format.value)
            return graph

    def transform(self, buffer: bytes, image_format: Union[str, ImageFormat]) -> np.ndarray:
        """Decode ``buffer`` with the declared codec.

        Raises
        - UnsupportedFormatError: unknown codec
        - DecodeError: bytes are not a valid image of that codec
        """
        image_format = ImageFormat.parse(image_format)
        graph = self.graph_for(image_format)
        try:
            with tf.compat.v1.Session(graph=graph.graph, config=self.session_config) as session:
                return session.run(graph.output, feed_dict={graph.input: bytes(buffer)})
        except (tf.errors.OpError, ValueError, TypeError) as e:
            raise DecodeError(f"Cannot decode image as {image_format.value}: {e}") from e
