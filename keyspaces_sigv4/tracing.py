"""OpenTelemetry tracing for the SigV4 authenticator.

Library code only creates spans. Nothing is exported until the application
calls ``init_tracing``, which sets up:
- AWS X-Ray compatible trace ids and propagation
- An OTLP exporter when an endpoint is configured
- An optional console exporter for debugging
"""

import inspect
import os
from functools import wraps
from typing import Any, Callable, TypeVar, ParamSpec

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagators.aws import AwsXRayPropagator
from opentelemetry.sdk.extension.aws.trace import AwsXRayIdGenerator
from opentelemetry.propagate import set_global_textmap
from opentelemetry.trace import Status, StatusCode

from . import __version__

P = ParamSpec("P")
T = TypeVar("T")

INSTRUMENTATION_NAME = "keyspaces_sigv4"

_tracer: trace.Tracer | None = None


def span_exporters(
    otlp_endpoint: str | None = None,
    enable_console_export: bool = False,
) -> list[SpanExporter]:
    """Exporters selected by arguments and the OTEL_* environment.

    An OTLP exporter is included when an endpoint is passed or
    OTEL_EXPORTER_OTLP_ENDPOINT is set; a console exporter when asked for or
    when OTEL_CONSOLE_EXPORT is "true".
    """
    exporters: list[SpanExporter] = []
    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        exporters.append(OTLPSpanExporter(endpoint=endpoint, insecure=True))
    if enable_console_export or os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        exporters.append(ConsoleSpanExporter())
    return exporters


def build_tracer_provider(service_name: str, exporters: list[SpanExporter]) -> TracerProvider:
    """TracerProvider with X-Ray ids, batching each exporter."""
    provider = TracerProvider(
        resource=Resource.create({
            SERVICE_NAME: service_name,
            "service.version": __version__,
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }),
        id_generator=AwsXRayIdGenerator(),
    )
    for exporter in exporters:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def init_tracing(
    service_name: str = "keyspaces-sigv4-auth",
    otlp_endpoint: str | None = None,
    enable_console_export: bool = False,
) -> trace.Tracer:
    """Install a global tracer provider for the authenticator spans.

    Only the first call has an effect; later calls return the same tracer.
    Spans use X-Ray compatible ids and the X-Ray propagator is installed
    globally.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP gRPC collector, e.g. "http://localhost:4317"
        enable_console_export: Also print spans to stdout

    Returns:
        The package tracer
    """
    global _tracer

    if _tracer is not None:
        return _tracer

    provider = build_tracer_provider(
        service_name, span_exporters(otlp_endpoint, enable_console_export)
    )
    set_global_textmap(AwsXRayPropagator())
    trace.set_tracer_provider(provider)

    _tracer = provider.get_tracer(INSTRUMENTATION_NAME, __version__)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the configured tracer, or one from the global provider."""
    if _tracer is None:
        return trace.get_tracer(INSTRUMENTATION_NAME, __version__)
    return _tracer


def traced(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to run a function inside a span.

    Args:
        name: Span name (defaults to function name)
        attributes: Additional span attributes

    Returns:
        Decorated function with tracing
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        span_name = name or func.__name__

        @wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with get_tracer().start_as_current_span(span_name) as span:
                if attributes:
                    span.set_attributes(attributes)
                try:
                    result = func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise

        @wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with get_tracer().start_as_current_span(span_name) as span:
                if attributes:
                    span.set_attributes(attributes)
                try:
                    result = await func(*args, **kwargs)  # type: ignore
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper

    return decorator


def add_sasl_span_attributes(
    span: trace.Span,
    region: str | None = None,
    access_key: str | None = None,
    credential_source: str | None = None,
    state: str | None = None,
) -> None:
    """Add SASL handshake attributes to a span.

    Args:
        span: The span to add attributes to
        region: Signing region
        access_key: Access key id (never the secret)
        credential_source: Kind of credential chain used
        state: Authenticator state after the step
    """
    span.set_attribute("sasl.mechanism", "SigV4")
    if region:
        span.set_attribute("aws.region", region)
    if access_key:
        span.set_attribute("aws.access_key_id", access_key)
    if credential_source:
        span.set_attribute("sasl.credential_source", credential_source)
    if state:
        span.set_attribute("sasl.state", state)
