"""File-system access to the model area.

Layout::

    <model_dir>/
        <model_name>/
            params.json     descriptor (see ``ModelDescriptor``)
            <graph file>    serialized GraphDef
            <labels file>   one label per line, in output order

The store only reads files; it never caches and never parses graphs.
"""

import json
from pathlib import Path
from typing import List, Union

import structlog
from pydantic import ValidationError

from ..errors import DescriptorParseError, ModelNotFoundError, StorageError
from ..schemas import ModelDescriptor

logger = structlog.get_logger("model_serving.model_store")

DESCRIPTOR_FILE = "params.json"


class ModelStore:
    """Reads descriptors, graph bytes and label files below ``model_dir``."""

    def __init__(self, model_dir: Union[str, Path]):
        self.model_dir = Path(model_dir)

    def model_path(self, model_name: str, file_name: str) -> Path:
        """Assemble ``<model_dir>/<model_name>/<file_name>``."""
        return self.model_dir / model_name / file_name

    def list_model_names(self) -> List[str]:
        """Return the names of all model subdirectories, sorted."""
        try:
            entries = sorted(self.model_dir.iterdir())
        except OSError as e:
            raise StorageError(f"Cannot list model directory {self.model_dir}: {e}") from e
        return [entry.name for entry in entries if entry.is_dir()]

    def read_descriptor(self, model_name: str) -> ModelDescriptor:
        """Read and validate the descriptor of ``model_name``.

        Raises
        - ModelNotFoundError: directory or descriptor missing/unreadable
        - DescriptorParseError: malformed JSON or record
        """
        if not model_name or "/" in model_name or "\x00" in model_name or model_name in (".", ".."):
            raise ModelNotFoundError(model_name, "invalid model name")

        path = self.model_path(model_name, DESCRIPTOR_FILE)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as e:
            raise ModelNotFoundError(model_name, f"{path} does not exist") from e
        except OSError as e:
            raise ModelNotFoundError(model_name, f"cannot read {path}: {e}") from e

        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise DescriptorParseError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DescriptorParseError(f"{path} must hold a JSON object")

        try:
            descriptor = ModelDescriptor.model_validate(data)
        except ValidationError as e:
            raise DescriptorParseError(f"{path} is not a valid model descriptor: {e}") from e

        if descriptor.name != model_name:
            raise DescriptorParseError(
                f"{path} declares name {descriptor.name!r} but lives in directory {model_name!r}"
            )

        logger.debug("Read model descriptor", model_name=model_name, descriptor=str(descriptor))
        return descriptor

    def read_graph(self, path: Union[str, Path]) -> bytes:
        """Return the raw bytes of a serialized graph."""
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise StorageError(f"Cannot read graph file {path}: {e}") from e

    def read_labels(self, path: Union[str, Path]) -> List[str]:
        """Return labels in file order; trailing blank lines are dropped."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read labels file {path}: {e}") from e

        labels = text.splitlines()
        while labels and not labels[-1].strip():
            labels.pop()
        return labels
