"""Prompt endpoints: POST /generate, /generate-sync, /generate-stream.

Every endpoint accepts ``{"prompt": "..."}``.  The unary endpoints always
answer ``200`` with a :class:`~llmrelay.messages.Message`; generation and
configuration failures come back as an ``error`` message rather than an HTTP
error code.  The streaming endpoint relays fragments as Server-Sent Events
and ends with an ``error: <detail>`` event if the generation fails.
"""

import time
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from opentelemetry import trace
from opentelemetry.trace import StatusCode
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from llmrelay.client import ModelClient
from llmrelay.config import settings
from llmrelay.messages import Message, error_message, response_message
from llmrelay.metrics import record_generation
from llmrelay.providers import ProviderError
from llmrelay.relay import relay_stream, sse_frame

router = APIRouter(tags=["generate"])

_log = structlog.get_logger(__name__)
_tracer = trace.get_tracer(__name__)


class PromptInput(BaseModel):
    prompt: str


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


def get_client(request: Request) -> ModelClient:
    """Return the shared :class:`ModelClient` from ``app.state``."""
    client: ModelClient | None = getattr(request.app.state, "client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Model client not created")
    return client


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/generate", response_model=Message)
async def generate(body: PromptInput, client: ModelClient = Depends(get_client)) -> Message:
    """Generate a full answer for ``body.prompt``."""
    return await _unary(body.prompt, client, client.generate, "http")


@router.post("/generate-sync", response_model=Message)
async def generate_sync(body: PromptInput, client: ModelClient = Depends(get_client)) -> Message:
    """Same contract as ``/generate``, served by the blocking provider path.

    The blocking call runs in Starlette's thread pool so the event loop stays
    free for other requests.
    """

    async def _call(prompt: str) -> str:
        return await run_in_threadpool(client.generate_blocking, prompt)

    return await _unary(body.prompt, client, _call, "http_sync")


@router.post("/generate-stream")
async def generate_stream(
    body: PromptInput, client: ModelClient = Depends(get_client)
) -> StreamingResponse:
    """Stream the answer for ``body.prompt`` as ``text/event-stream``."""
    request_id = str(uuid.uuid4())
    log = _log.bind(request_id=request_id, model=client.model_name, transport="sse")

    with _tracer.start_as_current_span("gateway.generate_stream") as span:
        span.set_attribute("gen_ai.request.model", client.model_name or "")
        log.info("generate_stream_start", prompt_chars=len(body.prompt))

        # The span covers request setup only; llm.generate inside the provider
        # carries the upstream call.
        return StreamingResponse(
            _stream_sse(client, body.prompt, log, time.monotonic()),
            media_type="text/event-stream",
            headers={
                "X-Request-ID": request_id,
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )


@router.get("/models")
async def list_models(client: ModelClient = Depends(get_client)) -> dict[str, Any]:
    """List the logical model identifiers this relay can bind to."""
    return {
        "default": settings.default_model,
        "active": client.model_name,
        "models": client.registry.models(),
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


async def _unary(
    prompt: str,
    client: ModelClient,
    call: Callable[[str], Awaitable[str]],
    transport: str,
) -> Message:
    """Run *call* and wrap its outcome in a response or error message."""
    request_id = str(uuid.uuid4())
    start_time = time.monotonic()
    model = client.model_name or ""
    log = _log.bind(request_id=request_id, model=model, transport=transport)

    with _tracer.start_as_current_span("gateway.generate") as span:
        span.set_attribute("gen_ai.request.model", model)
        span.set_attribute("llm.transport", transport)
        log.info("generate_request_start", prompt_chars=len(prompt))

        try:
            content = await call(prompt)
        except ProviderError as exc:
            span.record_exception(exc)
            span.set_status(StatusCode.ERROR, exc.message)
            duration_ms = round((time.monotonic() - start_time) * 1000, 2)
            log.error(
                "generate_request_error",
                error_type=type(exc).__name__,
                error=exc.message,
                duration_ms=duration_ms,
            )
            record_generation(transport, ok=False)
            return error_message(prompt, exc.message, model)

        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        log.info("generate_request_complete", duration_ms=duration_ms)
        record_generation(transport, ok=True)
        return response_message(prompt, content, model)


async def _stream_sse(
    client: ModelClient,
    prompt: str,
    log: Any,
    start_time: float,
) -> AsyncGenerator[str, None]:
    """Yield one SSE frame per relay event.

    Failures arrive as a final ``error: <detail>`` event because the HTTP 200
    header has already been sent by the time the relay runs.
    """
    fragments = 0
    failed = False
    try:
        async with aclosing(relay_stream(client, prompt)) as events:
            async for event in events:
                if event.is_error:
                    failed = True
                else:
                    fragments += 1
                yield sse_frame(event.payload)
    finally:
        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        record_generation("sse", ok=not failed)
        log.info(
            "generate_stream_complete",
            duration_ms=duration_ms,
            fragments=fragments,
            failed=failed,
        )
