"""Per-connection turn loop for the WebSocket transport.

A session accepts the socket, announces itself with a ``connected`` record,
then alternates between waiting for a prompt and answering it::

    OPEN -> AWAITING_INPUT <-> PROCESSING -> CLOSED

Every prompt gets a ``status`` (loading) message followed by exactly one
``response`` or ``error`` message.  Generation failures are content, not
connection failures: the session keeps going.  The loop never reads while a
prompt is being processed, so prompts sent back-to-back are answered in
order.

Protocol-level pings are answered by the ASGI server's WebSocket
implementation and never reach the session.
"""

from contextlib import aclosing
from enum import StrEnum
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import StatusCode
from pydantic import BaseModel
from starlette.websockets import WebSocket, WebSocketDisconnect

from llmrelay.client import ModelClient
from llmrelay.messages import (
    ConnectionStatus,
    Message,
    chunk_message,
    error_message,
    loading_message,
    response_message,
)
from llmrelay.metrics import ACTIVE_SESSIONS, record_generation
from llmrelay.providers import ProviderError
from llmrelay.relay import relay_stream

_log = structlog.get_logger(__name__)
_tracer = trace.get_tracer(__name__)

# Raised by Starlette/uvicorn when the peer is gone mid-send or mid-receive.
_TRANSPORT_ERRORS = (WebSocketDisconnect, RuntimeError, OSError)


class SessionState(StrEnum):
    OPEN = "open"
    AWAITING_INPUT = "awaiting_input"
    PROCESSING = "processing"
    CLOSED = "closed"


class ChatSession:
    """Drive one WebSocket connection until the peer leaves.

    Args:
        websocket: The not-yet-accepted Starlette WebSocket.
        client: Shared model client used for every prompt.
        streaming: When ``True`` each prompt is answered through the stream
            relay, sending a ``chunk`` message per fragment before the final
            ``response``.
    """

    def __init__(self, websocket: WebSocket, client: ModelClient, streaming: bool = False) -> None:
        self._websocket = websocket
        self._client = client
        self._streaming = streaming
        self._transport = "websocket_stream" if streaming else "websocket"
        self._log = _log.bind(transport=self._transport)
        self.state = SessionState.OPEN

    async def run(self) -> None:
        await self._websocket.accept()
        ACTIVE_SESSIONS.inc()
        self._log.info("session_open")
        try:
            if not await self._send(ConnectionStatus()):
                return
            self.state = SessionState.AWAITING_INPUT

            while self.state is SessionState.AWAITING_INPUT:
                frame = await self._receive()
                if frame is None or frame["type"] == "websocket.disconnect":
                    break

                prompt = frame.get("text")
                if prompt is None:
                    # Binary frames carry no prompt.
                    continue

                self.state = SessionState.PROCESSING
                if not await self._process(prompt):
                    break
                self.state = SessionState.AWAITING_INPUT
        finally:
            self.state = SessionState.CLOSED
            ACTIVE_SESSIONS.dec()
            self._log.info("session_closed")

    # ------------------------------------------------------------------
    # Turn handling
    # ------------------------------------------------------------------

    async def _process(self, prompt: str) -> bool:
        """Answer one prompt.  Returns ``False`` once the transport is gone."""
        model = self._client.model_name or ""
        with _tracer.start_as_current_span("session.turn") as span:
            span.set_attribute("llm.transport", self._transport)
            span.set_attribute("gen_ai.request.model", model)
            self._log.info("session_prompt_received", prompt_chars=len(prompt))

            if not await self._send(loading_message(prompt, model)):
                return False

            if self._streaming:
                reply = await self._stream_reply(prompt, model)
                if reply is None:
                    return False
            else:
                reply = await self._unary_reply(prompt, model)

            if reply.type == "error":
                span.set_status(StatusCode.ERROR, reply.content)
            record_generation(self._transport, ok=reply.type != "error")
            return await self._send(reply)

    async def _unary_reply(self, prompt: str, model: str) -> Message:
        try:
            content = await self._client.generate(prompt)
        except ProviderError as exc:
            self._log.warning(
                "session_generation_error",
                error_type=type(exc).__name__,
                error=exc.message,
            )
            return error_message(prompt, exc.message, model)
        return response_message(prompt, content, model)

    async def _stream_reply(self, prompt: str, model: str) -> Message | None:
        """Send a chunk per fragment and build the final message.

        Returns ``None`` if a chunk could not be delivered.
        """
        parts: list[str] = []
        async with aclosing(relay_stream(self._client, prompt)) as events:
            async for event in events:
                if event.is_error:
                    detail = event.error.message if event.error else event.payload
                    return error_message(prompt, detail, model)
                parts.append(event.payload)
                if not await self._send(chunk_message(prompt, event.payload, model)):
                    return None
        return response_message(prompt, "".join(parts), model)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _receive(self) -> dict[str, Any] | None:
        try:
            return await self._websocket.receive()
        except _TRANSPORT_ERRORS as exc:
            self._log.warning("session_receive_failed", error=str(exc))
            return None

    async def _send(self, record: BaseModel) -> bool:
        try:
            await self._websocket.send_text(record.model_dump_json())
        except _TRANSPORT_ERRORS as exc:
            self._log.warning("session_send_failed", error=str(exc))
            self.state = SessionState.CLOSED
            return False
        return True
