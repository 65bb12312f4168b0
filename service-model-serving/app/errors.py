"""Error taxonomy for the model serving runtime.

Storage and parse failures surface from the loaders; the registry wraps them
in ``LoadError``. Execution, format and ranking errors are request-scoped.
"""


class ServingError(Exception):
    """Base class for every error raised by the serving runtime."""


class StorageError(ServingError):
    """A descriptor, graph or labels file is missing or unreadable."""


class ModelNotFoundError(StorageError):
    """No model directory or descriptor exists for the requested name."""

    def __init__(self, model_name: str, detail: str = ""):
        self.model_name = model_name
        message = f"Model {model_name!r} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ParseError(ServingError):
    """Stored model data is malformed."""


class DescriptorParseError(ParseError):
    """The model descriptor is not a valid record."""


class GraphParseError(ParseError):
    """The graph file is not a valid serialized GraphDef."""


class LoadError(ServingError):
    """Resolving a model failed; ``__cause__`` holds the underlying error."""

    def __init__(self, model_name: str, cause: Exception):
        self.model_name = model_name
        self.cause = cause
        super().__init__(f"Failed to load model {model_name!r}: {cause}")


class ExecutionError(ServingError):
    """The graph engine failed while running inference."""


class InputShapeError(ExecutionError):
    """The input tensor does not match the shape the graph declares."""


class InferenceTimeoutError(ExecutionError):
    """Graph execution exceeded the per-request deadline."""


class UnsupportedFormatError(ServingError):
    """The declared image codec is neither png nor jpeg."""


class DecodeError(ServingError):
    """The image buffer could not be decoded with the declared codec."""


class BoundsError(ServingError):
    """More ranked labels were requested than are available."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"Requested top {requested} labels but only {available} are available")
