"""Data model shared by the loaders, the runtime and the API layer."""

from dataclasses import dataclass, field
import time
from typing import TYPE_CHECKING, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    import tensorflow as tf


class ModelDescriptor(BaseModel):
    """Metadata record read from ``<model_dir>/<name>/params.json``.

    JSON keys follow the on-disk format (``model``, ``labels``,
    ``inputNode``, ``outputNode``); attributes use Python names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, description="Model name, also its directory name")
    graph_file: str = Field(..., alias="model", min_length=1, description="Frozen GraphDef file name")
    labels_file: str = Field(..., alias="labels", min_length=1, description="Newline-delimited labels file name")
    options: Tuple[str, ...] = Field(default=(), description="Free-form model options")
    input_node: str = Field(..., alias="inputNode", min_length=1)
    output_node: str = Field(..., alias="outputNode", min_length=1)

    @field_validator("options", mode="before")
    @classmethod
    def _null_options(cls, value):
        return () if value is None else value

    def __str__(self) -> str:
        return (
            f"<ModelDescriptor: name={self.name} model={self.graph_file} labels={self.labels_file} "
            f"options={list(self.options)} inputNode={self.input_node} outputNode={self.output_node}>"
        )


@dataclass(frozen=True)
class LoadedModel:
    """A model whose graph and labels were both loaded successfully.

    ``labels[i]`` names position ``i`` of the graph's output vector. The
    graph is finalized, so sessions may share it across threads.
    """

    descriptor: ModelDescriptor
    graph: "tf.Graph" = field(repr=False)
    labels: Tuple[str, ...]
    loaded_at: float = field(default_factory=time.time)

    @property
    def name(self) -> str:
        return self.descriptor.name


class Row(BaseModel):
    """Feature-vector prediction request."""

    keys: List[str] = Field(default_factory=list, description="Attribute names, informational only")
    values: List[float] = Field(..., min_length=1, description="Row values in the model's input order")
    model: str = Field("", description="Model name; empty selects the default model")
    top_n: Optional[int] = Field(None, ge=1, description="Number of ranked labels to return; all when omitted")

    def __str__(self) -> str:
        return str(self.values)


class LabelResult(BaseModel):
    """A single label with its probability."""

    label: str
    probability: float


class ClassifyResult(BaseModel):
    """Ranked labels for one classified input."""

    filename: str = Field(..., description="Identifier of the classified input")
    labels: List[LabelResult] = Field(..., description="Labels ordered by descending probability")


class PredictResponse(BaseModel):
    """Response for feature-vector predictions."""

    model: str = Field(..., description="Model used")
    probabilities: List[float] = Field(..., description="Raw output vector")
    labels: List[LabelResult] = Field(..., description="Labels ordered by descending probability")
    latency_ms: float = Field(..., description="Prediction latency in milliseconds")


class ModelInfo(BaseModel):
    """Model information exposed by the listing endpoints."""

    name: str
    model: str
    labels: str
    options: List[str]
    input_node: str = Field(..., serialization_alias="inputNode")
    output_node: str = Field(..., serialization_alias="outputNode")
    label_count: int
    loaded_at: float

    @classmethod
    def from_loaded(cls, model: LoadedModel) -> "ModelInfo":
        descriptor = model.descriptor
        return cls(
            name=descriptor.name,
            model=descriptor.graph_file,
            labels=descriptor.labels_file,
            options=list(descriptor.options),
            input_node=descriptor.input_node,
            output_node=descriptor.output_node,
            label_count=len(model.labels),
            loaded_at=model.loaded_at,
        )
