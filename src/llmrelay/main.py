import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import make_asgi_app

from llmrelay.api.generate import router as generate_router
from llmrelay.api.health import router as health_router
from llmrelay.api.websocket import router as websocket_router
from llmrelay.client import ModelClient
from llmrelay.config import settings
from llmrelay.providers import ConfigurationError, ProviderRegistry

# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        structlog.stdlib.NAME_TO_LEVEL.get(settings.log_level.upper(), 20)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# OpenTelemetry
# ---------------------------------------------------------------------------
resource = Resource.create({"service.name": settings.otel_service_name})
tracer_provider = TracerProvider(resource=resource)
otlp_exporter = OTLPSpanExporter(
    endpoint=f"{settings.otel_exporter_otlp_endpoint}/v1/traces",
)
tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
trace.set_tracer_provider(tracer_provider)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------
app = FastAPI(
    title="LLM Relay",
    version=settings.app_version,
    description=(
        "Relays prompts to a pluggable text-generation backend over unary HTTP, "
        "Server-Sent Events and WebSocket, with one normalized message schema."
    ),
)

# CORS: permissive defaults, override via environment in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics endpoint mounted as a sub-application
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Routers
app.include_router(health_router)
app.include_router(generate_router)
app.include_router(websocket_router)

# Instrument *after* routes are registered
FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider)


def create_client() -> ModelClient:
    """Build the shared client and bind it from settings when a key is configured.

    A missing key or an unsupported ``DEFAULT_MODEL`` is logged and leaves the
    client unbound; requests then receive in-band not-initialized errors and
    ``/health/ready`` reports 503.
    """
    registry = ProviderRegistry(
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
    )
    client = ModelClient(registry)

    if settings.gemini_api_key is None or not settings.gemini_api_key.get_secret_value():
        log.warning("client_not_initialized", reason="GEMINI_API_KEY not set")
        return client

    try:
        client.initialize(settings.gemini_api_key, settings.default_model)
    except ConfigurationError as exc:
        log.error("client_not_initialized", reason=exc.message)
    return client


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------
@app.on_event("startup")
async def _startup() -> None:
    # Attach the shared client to app state so the get_client() dependency
    # and the WebSocket routes can reach it.
    app.state.client = create_client()

    log.info(
        "LLM Relay ready",
        host=settings.host,
        port=settings.port,
        model=app.state.client.model_name,
        llm_timeout=settings.llm_timeout,
        llm_max_retries=settings.llm_max_retries,
        otel_endpoint=settings.otel_exporter_otlp_endpoint,
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    log.info("LLM Relay shutting down")
    tracer_provider.shutdown()
