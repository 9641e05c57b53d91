"""WebSocket endpoints: /ws answers each prompt whole, /ws/stream fragment by fragment."""

import structlog
from fastapi import APIRouter, WebSocket, status

from llmrelay.client import ModelClient
from llmrelay.session import ChatSession

router = APIRouter(tags=["websocket"])

_log = structlog.get_logger(__name__)


@router.websocket("/ws")
async def websocket_session(websocket: WebSocket) -> None:
    await _run_session(websocket, streaming=False)


@router.websocket("/ws/stream")
async def websocket_stream_session(websocket: WebSocket) -> None:
    await _run_session(websocket, streaming=True)


async def _run_session(websocket: WebSocket, streaming: bool) -> None:
    client: ModelClient | None = getattr(websocket.app.state, "client", None)
    if client is None:
        _log.error("websocket_rejected", reason="model client not created")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    await ChatSession(websocket, client, streaming=streaming).run()
