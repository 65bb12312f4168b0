"""API routes for the model serving service."""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from ..errors import (
    BoundsError,
    DecodeError,
    InferenceTimeoutError,
    InputShapeError,
    LoadError,
    ModelNotFoundError,
    ServingError,
    UnsupportedFormatError,
)
from ..runtime.image_preprocessor import ImageFormat
from ..runtime.model_manager import ModelManager
from ..schemas import ClassifyResult, ModelInfo, PredictResponse, Row

logger = structlog.get_logger("model_serving.api")

router = APIRouter()

CONTENT_TYPE_FORMATS = {
    "image/png": ImageFormat.PNG,
    "image/jpeg": ImageFormat.JPEG,
}


def get_model_manager(request: Request) -> ModelManager:
    """Get model manager from application state."""
    return request.app.state.model_manager


def error_status(error: Exception) -> int:
    """Map a serving error onto an HTTP status code."""
    if isinstance(error, LoadError) and isinstance(error.cause, ModelNotFoundError):
        return 404
    if isinstance(error, ModelNotFoundError):
        return 404
    if isinstance(error, UnsupportedFormatError):
        return 415
    if isinstance(error, InferenceTimeoutError):
        return 504
    if isinstance(error, (DecodeError, InputShapeError, BoundsError, ValueError)):
        return 422
    return 500


def to_http_error(error: Exception) -> HTTPException:
    return HTTPException(status_code=error_status(error), detail=str(error))


@router.post("/predict", response_model=PredictResponse)
async def predict(
    row: Row,
    model_manager: ModelManager = Depends(get_model_manager),
):
    """Classify a single feature row."""
    try:
        result = await model_manager.predict(row.values, model_name=row.model, top_n=row.top_n)
        return PredictResponse(**result)
    except (ServingError, ValueError) as e:
        logger.error("Prediction failed", model_name=row.model, row=str(row), error=str(e))
        raise to_http_error(e) from e


@router.post("/image", response_model=ClassifyResult)
async def classify_image(
    image: UploadFile = File(..., description="Encoded png or jpeg image"),
    model: str = Form("", description="Model name; empty selects the default model"),
    image_format: Optional[str] = Form(None, alias="format", description="png or jpeg; defaults to the upload content type"),
    top_n: Optional[int] = Form(None, ge=1, description="Number of labels to return"),
    model_manager: ModelManager = Depends(get_model_manager),
):
    """Classify an uploaded image."""
    try:
        if image_format:
            image_format = ImageFormat.parse(image_format)
        elif image.content_type in CONTENT_TYPE_FORMATS:
            image_format = CONTENT_TYPE_FORMATS[image.content_type]
        else:
            raise UnsupportedFormatError(
                f"No image format given and content type {image.content_type!r} is not png or jpeg"
            )
        buffer = await image.read()
        return await model_manager.classify_image(
            buffer,
            image_format,
            model_name=model,
            top_n=top_n,
            filename=image.filename or "",
        )
    except (ServingError, ValueError) as e:
        logger.error("Image classification failed", model_name=model, filename=image.filename, error=str(e))
        raise to_http_error(e) from e


@router.get("/models", response_model=List[ModelInfo])
async def list_models(
    model_manager: ModelManager = Depends(get_model_manager),
):
    """List loaded models."""
    models = await model_manager.list_models()
    logger.info("Models listed", count=len(models))
    return models


@router.get("/models/{model_name}", response_model=ModelInfo)
async def get_model_info(
    model_name: str,
    model_manager: ModelManager = Depends(get_model_manager),
):
    """Get information about a specific model, loading it if needed."""
    try:
        return await model_manager.get_model_info(model_name)
    except ServingError as e:
        logger.error("Failed to get model info", model_name=model_name, error=str(e))
        raise to_http_error(e) from e
