import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter


def init_tracing(
    service_name: str,
    service_version: str = "v1",
    exporter: Optional[str] = None,
    app=None,
):
    """
    Install a TracerProvider. Without an exporter spans are still created,
    so jlog lines carry trace/span ids.
    """
    resource = Resource.create({
        "service.name": service_name,
        "service.version": service_version,
        "deployment.environment": os.getenv("ENVIRONMENT", "local"),
    })
    provider = TracerProvider(resource=resource)
    if exporter == "cloud":
        # pip: opentelemetry-exporter-gcp-trace
        from opentelemetry.exporter.cloud_trace import CloudTraceSpanExporter
        provider.add_span_processor(BatchSpanProcessor(CloudTraceSpanExporter()))
    elif exporter == "console":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    if app is not None:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        FastAPIInstrumentor().instrument_app(app)

    return trace.get_tracer(service_name)
