"""Shared fixtures: tiny frozen graphs written into a temporary model area."""

import json
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pytest
import tensorflow as tf

from libs.common.config import ModelServingConfig

FEATURE_LABELS = ["cat", "dog", "fish"]
COLOR_LABELS = ["red", "green", "blue"]


def build_feature_graph(width: int = 3, static_width: bool = True) -> bytes:
    """Softmax over ``input @ I``: probabilities are ``softmax(values)``."""
    graph = tf.Graph()
    with graph.as_default():
        inputs = tf.compat.v1.placeholder(
            tf.float32,
            shape=[None, width if static_width else None],
            name="input"
        )
        weights = tf.constant(np.eye(width, dtype=np.float32), name="weights")
        tf.nn.softmax(tf.matmul(inputs, weights), name="output")
    return graph.as_graph_def().SerializeToString()


def build_flat_graph(width: int = 3) -> bytes:
    """Like ``build_feature_graph`` but the output drops the batch dimension."""
    graph = tf.Graph()
    with graph.as_default():
        inputs = tf.compat.v1.placeholder(tf.float32, shape=[None, width], name="input")
        tf.reshape(tf.nn.softmax(inputs), [-1], name="output")
    return graph.as_graph_def().SerializeToString()


def build_color_graph() -> bytes:
    """Scores the mean of each RGB channel of a ``[1, H, W, 3]`` image."""
    graph = tf.Graph()
    with graph.as_default():
        inputs = tf.compat.v1.placeholder(tf.float32, shape=[1, None, None, 3], name="input")
        channel_means = tf.reduce_mean(inputs, axis=[1, 2])
        tf.nn.softmax(channel_means / 255.0 * 10.0, name="output")
    return graph.as_graph_def().SerializeToString()


def write_model(
    model_dir: Path,
    name: str,
    graph_bytes: bytes,
    labels: Iterable[str],
    input_node: str = "input",
    output_node: str = "output",
    options: Optional[list] = None,
) -> Path:
    """Write a model folder with params.json, model.pb and labels.txt."""
    path = model_dir / name
    path.mkdir(parents=True, exist_ok=True)
    (path / "model.pb").write_bytes(graph_bytes)
    (path / "labels.txt").write_text("\n".join(labels) + "\n")
    (path / "params.json").write_text(json.dumps({
        "name": name,
        "model": "model.pb",
        "labels": "labels.txt",
        "options": options or [],
        "inputNode": input_node,
        "outputNode": output_node,
    }))
    return path


def encode_image(color, image_format: str = "png", size=(4, 5)) -> bytes:
    """Encode a solid-color RGB image."""
    pixels = np.zeros((size[0], size[1], 3), dtype=np.uint8)
    pixels[:, :] = color
    if image_format == "png":
        return tf.io.encode_png(pixels).numpy()
    return tf.io.encode_jpeg(pixels, quality=100).numpy()


@pytest.fixture
def model_dir(tmp_path) -> Path:
    """Model area with a feature-vector model and an image model."""
    root = tmp_path / "models"
    root.mkdir()
    write_model(root, "features", build_feature_graph(), FEATURE_LABELS)
    write_model(root, "colors", build_color_graph(), COLOR_LABELS)
    return root


@pytest.fixture
def serving_config(model_dir) -> ModelServingConfig:
    return ModelServingConfig(
        ml_model_dir=str(model_dir),
        ml_model_default_name="features",
        ml_log_format="console",
        ml_tracing_enabled=False,
    )


@pytest.fixture
def red_png() -> bytes:
    return encode_image((255, 0, 0), "png")
