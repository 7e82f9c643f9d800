"""Tracing setup: B3 propagation, OTLP export and library instrumentation."""

from __future__ import annotations

import logging
from typing import Any, Callable

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.b3 import B3MultiFormat
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

SERVICE_NAMESPACE = "tramlines"


def _tracer_provider(service_name: str, service_version: str) -> TracerProvider:
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": service_version,
            "service.namespace": SERVICE_NAMESPACE,
        }
    )
    return TracerProvider(resource=resource)


def configure_opentelemetry(
    service_name: str,
    service_version: str,
    otlp_endpoint: str,
    otlp_headers: str | None = None,
    enabled: bool = False,
) -> None:
    """Install a global tracer provider that ships spans to ``otlp_endpoint``.

    Setup errors are logged; the service keeps running untraced.
    """
    if not enabled:
        logger.info("Tracing is disabled (OTEL_ENABLED=false)")
        return

    try:
        set_global_textmap(B3MultiFormat())
        provider = _tracer_provider(service_name, service_version)
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint, headers=otlp_headers)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
    except Exception as exc:
        logger.warning("Failed to configure tracing, continuing without it: %s", exc)
        return

    logger.info("Tracing %s spans to %s", service_name, otlp_endpoint)


def _instrument(name: str, enabled: bool, install: Callable[[], None]) -> None:
    if not enabled:
        return
    try:
        install()
    except Exception as exc:
        logger.warning("Failed to instrument %s: %s", name, exc)
        return
    logger.info("%s instrumentation enabled", name)


def instrument_fastapi(app: Any, enabled: bool = False) -> None:
    _instrument("FastAPI", enabled, lambda: FastAPIInstrumentor.instrument_app(app))


def instrument_httpx(enabled: bool = False) -> None:
    """Trace outgoing DB API Marketplace calls."""
    _instrument("httpx", enabled, lambda: HTTPXClientInstrumentor().instrument())


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(__name__)
