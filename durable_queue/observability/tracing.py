"""
OpenTelemetry tracing setup.
"""

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Tracer

from durable_queue.config import get_settings

# Global tracer instance
_tracer: Tracer | None = None


def setup_tracing(enable_console_export: bool = False) -> Tracer:
    """
    Set up OpenTelemetry tracing with an OTLP exporter.

    Args:
        enable_console_export: If True, also export spans to console.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer

    settings = get_settings()

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": "1.0.0",
        }
    )

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=settings.otel_exporter_otlp_endpoint,
                insecure=True,
            )
        )
    )

    if enable_console_export:
        provider.add_span_processor(
            BatchSpanProcessor(ConsoleSpanExporter())
        )

    trace.set_tracer_provider(provider)
    instrument_sqlalchemy(provider)

    _tracer = trace.get_tracer(settings.otel_service_name)

    return _tracer


def instrument_sqlalchemy(tracer_provider: TracerProvider | None = None) -> None:
    """
    Trace every SQLAlchemy engine created from now on.

    The instrumentor is process-wide: it wraps sqlalchemy.create_engine once,
    so each queue engine, including one recreated after close() or flush(),
    gets its own statement listeners. No-op unless tracing is enabled in
    settings, and on every call after the first.

    Args:
        tracer_provider: Provider for the statement spans. Defaults to the
            global provider.
    """
    if not get_settings().tracing_enabled:
        return

    instrumentor = SQLAlchemyInstrumentor()
    if instrumentor.is_instrumented_by_opentelemetry:
        return
    instrumentor.instrument(tracer_provider=tracer_provider)


def get_tracer() -> Tracer:
    """
    Get the tracer instance.

    When tracing is disabled this is the API's default tracer, which
    records nothing unless the host application installed a provider.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer
    if _tracer is None:
        settings = get_settings()
        if settings.tracing_enabled:
            _tracer = setup_tracing()
        else:
            _tracer = trace.get_tracer(settings.otel_service_name)
    return _tracer
