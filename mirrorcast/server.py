import logging
import os
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
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

from mirrorcast.proxy.route import router as proxy_router
from mirrorcast.relay.rooms import RoomRegistry
from mirrorcast.relay.route import router as relay_router
from mirrorcast.routes import router
from mirrorcast.vars import (
    CORS_ALLOW_ORIGINS,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    SERVICE_NAME,
    STATIC_DIR,
)

logger = logging.getLogger("uvicorn.error")

# Defaults for the service's own pages. Proxied responses are excluded: they
# carry the filtered upstream headers and must stay frameable.
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
}
UNGUARDED_PATHS = {"/proxy"}


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans.
    Large proxied bodies would otherwise produce one span per chunk.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type")
                in ("http.response.body", "websocket.send", "websocket.receive")
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.room_registry = RoomRegistry()
    logger.info(f"[Server] {SERVICE_NAME} ready")
    if os.path.isdir(STATIC_DIR):
        logger.info(f"[Server] Static files served from {STATIC_DIR}")
    else:
        logger.info(f"[Server] No static directory at {STATIC_DIR}, static serving disabled")
    yield
    logger.info(
        f"[Server] Shutting down with {len(app.state.room_registry)} open rooms"
    )


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    if request.url.path not in UNGUARDED_PATHS:
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
    return response


app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(security_headers)

instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app)

trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=OTLP_HEADERS or None,
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )

FastAPIInstrumentor.instrument_app(
    app,
    excluded_urls="health,metrics",
)

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)
app.include_router(proxy_router)
# Matches WebSocket upgrades on every path, so it has to precede the static mount
app.include_router(relay_router)

if os.path.isdir(STATIC_DIR):
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
