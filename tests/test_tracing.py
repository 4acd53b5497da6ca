"""Tests for the OpenTelemetry tracing module."""

import os

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.extension.aws.trace import AwsXRayIdGenerator
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

import keyspaces_sigv4.tracing as tracing_module
from keyspaces_sigv4 import MissingNonceError, SigV4Authenticator
from keyspaces_sigv4.tracing import (
    build_tracer_provider,
    get_tracer,
    init_tracing,
    span_exporters,
    traced,
)
from tests import vectors


@pytest.fixture
def span_exporter(monkeypatch):
    """Route spans to an in-memory exporter for the duration of a test."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(tracing_module, "_tracer", provider.get_tracer("test"))
    return exporter


class TestTracingInitialization:
    """Tests for tracing initialization."""

    def test_init_tracing_is_idempotent(self, monkeypatch):
        """Test that calling init_tracing multiple times returns same tracer."""
        monkeypatch.setattr(tracing_module, "_tracer", None)

        tracer1 = init_tracing(service_name="test-service")
        tracer2 = init_tracing(service_name="test-service")

        assert tracer1 is tracer2
        assert get_tracer() is tracer1

    def test_get_tracer_without_init(self, monkeypatch):
        """Test that get_tracer works before init_tracing."""
        monkeypatch.setattr(tracing_module, "_tracer", None)

        assert isinstance(get_tracer(), trace.Tracer)


class TestSpanExporters:
    """Tests for exporter selection."""

    def test_no_exporters_by_default(self, clean_env):
        """Test that nothing is exported without an endpoint or console flag."""
        assert span_exporters() == []

    def test_otlp_endpoint_from_environment(self, clean_env):
        """Test that OTEL_EXPORTER_OTLP_ENDPOINT enables the OTLP exporter."""
        os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = "http://localhost:4317"

        exporters = span_exporters()

        assert len(exporters) == 1
        assert isinstance(exporters[0], OTLPSpanExporter)

    def test_console_from_environment(self, clean_env):
        """Test that OTEL_CONSOLE_EXPORT=true adds the console exporter."""
        os.environ["OTEL_CONSOLE_EXPORT"] = "TRUE"

        exporters = span_exporters()

        assert len(exporters) == 1
        assert isinstance(exporters[0], ConsoleSpanExporter)

    def test_provider_resource_and_ids(self, clean_env):
        """Test the resource attributes and X-Ray id generator."""
        os.environ["ENVIRONMENT"] = "test"

        provider = build_tracer_provider("svc", [InMemorySpanExporter()])

        assert provider.resource.attributes["service.name"] == "svc"
        assert provider.resource.attributes["deployment.environment"] == "test"
        assert isinstance(provider.id_generator, AwsXRayIdGenerator)


class TestTracedDecorator:
    """Tests for the @traced decorator."""

    def test_traced_sync_function(self, span_exporter):
        """Test tracing a synchronous function."""
        @traced(name="sync-op", attributes={"k": "v"})
        def add(a, b):
            return a + b

        assert add(1, 2) == 3

        span = span_exporter.get_finished_spans()[0]
        assert span.name == "sync-op"
        assert span.attributes["k"] == "v"
        assert span.status.status_code == StatusCode.OK

    @pytest.mark.asyncio
    async def test_traced_async_error(self, span_exporter):
        """Test that errors are recorded and re-raised."""
        @traced()
        async def boom():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await boom()

        span = span_exporter.get_finished_spans()[0]
        assert span.name == "boom"
        assert span.status.status_code == StatusCode.ERROR


class TestAuthenticatorSpans:
    """Tests for spans produced by challenge evaluation."""

    @pytest.mark.asyncio
    async def test_evaluate_challenge_span(self, span_exporter, static_chain, fixed_date):
        """Test the span around a signed challenge."""
        target = SigV4Authenticator(region=vectors.REGION, chain=static_chain, date=fixed_date)

        await target.evaluate_challenge(vectors.CHALLENGE)

        span = span_exporter.get_finished_spans()[0]
        assert span.name == "sasl.evaluate_challenge"
        assert span.attributes["sasl.mechanism"] == "SigV4"
        assert span.attributes["aws.region"] == vectors.REGION
        assert span.attributes["aws.access_key_id"] == vectors.ACCESS_KEY
        assert span.attributes["sasl.state"] == "completed"
        assert vectors.SECRET_KEY not in span.attributes.values()

    @pytest.mark.asyncio
    async def test_missing_nonce_creates_no_span(self, span_exporter, static_chain, fixed_date):
        """Test that a challenge rejected up front is not traced."""
        target = SigV4Authenticator(region=vectors.REGION, chain=static_chain, date=fixed_date)

        with pytest.raises(MissingNonceError):
            await target.evaluate_challenge(b"buffer1")

        assert span_exporter.get_finished_spans() == ()
