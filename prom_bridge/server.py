import logging
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from prom_bridge.client import Client, HttpxTransport
from prom_bridge.models import ClientConfig
from prom_bridge.routes import router
from prom_bridge.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")


# ASGI receive/send spans emitted once per body chunk
BODY_CHUNK_EVENTS = frozenset({"http.request", "http.response.body"})


class StreamedBodySpanFilter(SpanExporter):
    """
    Drops the per-chunk ASGI spans produced while streaming Prometheus bodies.

    Range query results and proxied resource bodies are relayed chunk by chunk,
    and FastAPIInstrumentor opens a span for every chunk received or sent. The
    request span and the client's ``prometheus.*`` spans are exported as usual.
    """

    def __init__(self, exporter: SpanExporter, event_types=BODY_CHUNK_EVENTS):
        self.exporter = exporter
        self.event_types = frozenset(event_types)

    def is_body_chunk(self, span: ReadableSpan) -> bool:
        attributes = span.attributes or {}
        return attributes.get("asgi.event.type") in self.event_types

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not self.is_body_chunk(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = ClientConfig.from_env()
    transport = HttpxTransport(timeout=config.timeout)
    app.state.prometheus_client = Client(transport, config)
    try:
        yield
    finally:
        await transport.aclose()


app = FastAPI(lifespan=lifespan)
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)

trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(StreamedBodySpanFilter(otlp_exporter))
    )

FastAPIInstrumentor.instrument_app(app)

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)
