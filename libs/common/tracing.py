"""Distributed tracing configuration for platform services.

Wraps OpenTelemetry setup with an OTLP/HTTP exporter and optional FastAPI
auto‑instrumentation. Also provides a scoped span context manager and small
ML-specific helpers used by the serving runtime.
"""

import os
from typing import Optional

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

logger = structlog.get_logger("tracing")


def configure_tracing(
    service_name: str,
    otlp_endpoint: str = "http://localhost:4318/v1/traces",
    app=None,
) -> Optional[trace.Tracer]:
    """Configure distributed tracing for a service.

    Parameters
    - service_name: Logical service identifier used in trace resources
    - otlp_endpoint: Collector endpoint for exporting spans
    - app: Optional FastAPI application to instrument

    Returns
    - A tracer instance for ad‑hoc span creation, or ``None`` on failure
    """
    try:
        tracer_provider = TracerProvider(
            resource=Resource.create({
                "service.name": service_name,
                "deployment.environment": os.getenv("ML_ENV", "local")
            })
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
        )
        trace.set_tracer_provider(tracer_provider)

        if app is not None:
            try:
                from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

                FastAPIInstrumentor.instrument_app(app)
                logger.info("FastAPI instrumentation enabled")
            except Exception as e:
                # Spans from the runtime are still exported without it.
                logger.warning("Failed to enable FastAPI instrumentation", error=str(e))

        logger.info(
            "Distributed tracing configured",
            service_name=service_name,
            otlp_endpoint=otlp_endpoint
        )
        return trace.get_tracer(service_name)

    except Exception as e:
        logger.error("Failed to configure tracing", error=str(e))
        return None


class TracingContext:
    """Context manager for tracing operations.

    Starts a span on entry and ensures it ends, recording success or error.
    """

    def __init__(self, tracer: trace.Tracer, operation_name: str, **attributes):
        self.tracer = tracer
        self.operation_name = operation_name
        self.attributes = attributes
        self.span: Optional[trace.Span] = None

    def __enter__(self) -> trace.Span:
        self.span = self.tracer.start_span(self.operation_name)
        for key, value in self.attributes.items():
            self.span.set_attribute(key, str(value))
        return self.span

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.span:
            if exc_type is not None:
                self.span.set_status(Status(StatusCode.ERROR, f"{exc_type.__name__}: {exc_val}"))
            else:
                self.span.set_status(Status(StatusCode.OK))
            self.span.end()
        return False


class MLTracer:
    """ML-specific tracing utilities.

    Keeps span names and attributes consistent between loading and
    inference. Falls back to OpenTelemetry's no-op tracer until
    ``configure_tracing`` installs a provider.
    """

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.tracer = trace.get_tracer(service_name)

    def trace_model_load(self, model_name: str, **attributes):
        """Trace loading a model from storage."""
        return TracingContext(
            self.tracer,
            "model.load",
            model_name=model_name,
            **attributes
        )

    def trace_model_inference(
        self,
        model_name: str,
        input_kind: str,
        **attributes
    ):
        """Trace model inference operation."""
        return TracingContext(
            self.tracer,
            "model.inference",
            model_name=model_name,
            input_kind=input_kind,
            **attributes
        )

    def trace_image_preprocess(self, image_format: str, **attributes):
        """Trace decoding an image into a batched tensor."""
        return TracingContext(
            self.tracer,
            "image.preprocess",
            image_format=image_format,
            **attributes
        )


def get_ml_tracer(service_name: str) -> MLTracer:
    """Get ML-specific tracer for a service."""
    return MLTracer(service_name)
