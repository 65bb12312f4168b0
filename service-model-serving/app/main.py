"""Model serving service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from libs.common.config import ModelServingConfig
from libs.common.logging import configure_logging
from libs.common.metrics import MetricsCollector, get_metrics_collector
from libs.common.tracing import configure_tracing
from .api.routes import router as api_router
from .runtime.model_manager import ModelManager

logger = structlog.get_logger("model_serving")


def create_app(
    config: Optional[ModelServingConfig] = None,
    metrics_collector: Optional[MetricsCollector] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Parameters
    - config: Service configuration; read from the environment when omitted
    - metrics_collector: Collector to record into; the process-wide one by default
    """
    config = config or ModelServingConfig()
    metrics_collector = metrics_collector or get_metrics_collector("model-serving")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging("model-serving", config.ml_log_level, config.ml_log_format)

        if config.ml_tracing_enabled:
            tracer = configure_tracing(config.ml_otel_service_name, config.ml_otel_exporter, app=app)
            if tracer:
                logger.info("OpenTelemetry tracing enabled", exporter=config.ml_otel_exporter)
            else:
                logger.warning("Tracing initialization failed")
        else:
            logger.info("OpenTelemetry tracing disabled via configuration")

        logger.info("Starting model serving service", model_dir=config.ml_model_dir)

        # Discovery failures propagate and abort startup.
        model_manager = ModelManager(config, metrics_collector)
        await model_manager.initialize()
        app.state.model_manager = model_manager

        logger.info("Model serving service started successfully")

        yield

        logger.info("Model serving service shutdown complete")

    app = FastAPI(
        title="Model Serving Service",
        description="Serves frozen TensorFlow graphs over REST",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.config = config
    app.state.metrics_collector = metrics_collector

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics and add the processing time header."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.error("Unhandled request error", path=request.url.path, error=str(e))
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": str(e)}
            )

        duration = time.time() - start_time
        response.headers["X-Process-Time"] = str(duration)
        # Route templates keep /models/{model_name} to a single series
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        metrics_collector.record_http_request(
            method=request.method,
            endpoint=endpoint,
            status=status_code,
            duration=duration
        )
        return response

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        model_manager = getattr(request.app.state, "model_manager", None)
        if model_manager is not None and await model_manager.health_check():
            return {
                "status": "healthy",
                "service": "model-serving",
                "models_loaded": len(model_manager.registry),
            }
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": "model-serving"}
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=metrics_collector.get_metrics(), media_type="text/plain")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "model-serving",
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "health": "/health",
                "metrics": "/metrics",
                "predict": "/api/v1/predict",
                "image": "/api/v1/image",
                "models": "/api/v1/models"
            }
        }

    return app


if __name__ == "__main__":
    serving_config = ModelServingConfig()
    uvicorn.run(
        create_app(serving_config),
        host="0.0.0.0",
        port=serving_config.ml_model_serving_port,
        log_level=serving_config.ml_log_level.lower()
    )
