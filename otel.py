import os
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "dashboard-agent")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")    # 예: http://localhost:4318/v1/traces

_configured = False

def setup_tracing() -> bool:
    """엔드포인트가 있을 때만 exporter 연결. 없으면 no-op tracer 그대로 (로컬 기본)"""
    global _configured
    if not OTLP_ENDPOINT or _configured:
        return _configured

    resource = Resource.create({"service.name": SERVICE_NAME})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT)))
    trace.set_tracer_provider(provider)
    _configured = True
    return True

def get_tracer():
    return trace.get_tracer(SERVICE_NAME)
