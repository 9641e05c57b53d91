"""Tests for the WebSocket session loop, driven through an in-memory socket."""

import json
from typing import Any

from conftest import StubProvider
from prometheus_client import REGISTRY

from llmrelay.client import ModelClient
from llmrelay.providers import BackendRejectedError, BackendUnreachableError, ProviderRegistry
from llmrelay.session import ChatSession, SessionState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text(prompt: str) -> dict[str, Any]:
    return {"type": "websocket.receive", "text": prompt}


def _bytes(data: bytes) -> dict[str, Any]:
    return {"type": "websocket.receive", "bytes": data}


_DISCONNECT: dict[str, Any] = {"type": "websocket.disconnect", "code": 1000}


class FakeWebSocket:
    """Minimal stand-in for ``starlette.websockets.WebSocket``.

    Inbound frames are consumed in order; an ``Exception`` in the list is
    raised from ``receive()``.  When the list runs out a disconnect is
    returned.  Every call is appended to ``timeline``.
    """

    def __init__(
        self,
        frames: list[dict[str, Any] | Exception],
        fail_send_at: int | None = None,
        timeline: list[str] | None = None,
    ) -> None:
        self.frames = list(frames)
        self.fail_send_at = fail_send_at
        self.sent: list[dict[str, Any]] = []
        self.accepted = False
        self.timeline = timeline if timeline is not None else []

    async def accept(self) -> None:
        self.accepted = True

    async def receive(self) -> dict[str, Any]:
        self.timeline.append("receive")
        if not self.frames:
            return _DISCONNECT
        frame = self.frames.pop(0)
        if isinstance(frame, Exception):
            raise frame
        return frame

    async def send_text(self, data: str) -> None:
        if self.fail_send_at is not None and len(self.sent) == self.fail_send_at:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        record = json.loads(data)
        self.timeline.append(f"send:{record['type']}")
        self.sent.append(record)


def _types(ws: FakeWebSocket) -> list[str]:
    return [record["type"] for record in ws.sent]


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_connected_record_sent_first(self, client: ModelClient) -> None:
        ws = FakeWebSocket([_text("hi")])

        await ChatSession(ws, client).run()

        assert ws.accepted is True
        assert ws.sent[0]["type"] == "connection"
        assert ws.sent[0]["status"] == "connected"

    async def test_close_while_awaiting_input_sends_nothing_more(
        self, client: ModelClient, stub_provider: StubProvider
    ) -> None:
        ws = FakeWebSocket([_DISCONNECT, _text("never read")])
        session = ChatSession(ws, client)

        await session.run()

        assert _types(ws) == ["connection"]
        assert session.state is SessionState.CLOSED
        assert stub_provider.calls == []
        assert ws.frames == [_text("never read")]

    async def test_receive_failure_closes_session(self, client: ModelClient) -> None:
        ws = FakeWebSocket([RuntimeError('WebSocket is not connected. Need to call "accept" first.')])
        session = ChatSession(ws, client)

        await session.run()

        assert session.state is SessionState.CLOSED
        assert _types(ws) == ["connection"]

    async def test_failed_welcome_closes_without_reading(self, client: ModelClient) -> None:
        ws = FakeWebSocket([_text("hi")], fail_send_at=0)
        session = ChatSession(ws, client)

        await session.run()

        assert session.state is SessionState.CLOSED
        assert ws.timeline == []

    async def test_binary_frames_are_ignored(
        self, client: ModelClient, stub_provider: StubProvider
    ) -> None:
        ws = FakeWebSocket([_bytes(b"\x00\x01"), _text("hi")])

        await ChatSession(ws, client).run()

        assert _types(ws) == ["connection", "status", "response"]
        assert len(stub_provider.calls) == 1

    async def test_active_sessions_gauge_returns_to_baseline(self, client: ModelClient) -> None:
        before = REGISTRY.get_sample_value("llmrelay_active_sessions")

        await ChatSession(FakeWebSocket([_text("hi")]), client).run()

        assert REGISTRY.get_sample_value("llmrelay_active_sessions") == before


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


class TestTurns:
    async def test_loading_then_response(self, client: ModelClient) -> None:
        ws = FakeWebSocket([_text("Explain AI in one sentence")])

        await ChatSession(ws, client).run()

        assert _types(ws) == ["connection", "status", "response"]
        loading, response = ws.sent[1], ws.sent[2]
        assert loading["loading"] is True
        assert loading["content"] == ""
        assert loading["question"] == "Explain AI in one sentence"
        assert response["role"] == "assistant"
        assert response["content"] == "AI learns patterns from data."
        assert response["loading"] is False
        assert response["model"] == "gemini/gemini-2.5-flash"

    async def test_generation_error_is_content_not_disconnect(self, make_client) -> None:
        client = make_client(StubProvider(error=BackendUnreachableError("backend down")))
        ws = FakeWebSocket([_text("one"), _text("two")])

        await ChatSession(ws, client).run()

        assert _types(ws) == ["connection", "status", "error", "status", "error"]
        error = ws.sent[2]
        assert error["role"] == "system"
        assert error["loading"] is False
        assert error["content"] == "backend down"

    async def test_not_initialized_reported_in_band(self, registry: ProviderRegistry) -> None:
        ws = FakeWebSocket([_text("hi")])

        await ChatSession(ws, ModelClient(registry)).run()

        assert _types(ws) == ["connection", "status", "error"]
        assert "initialize" in ws.sent[2]["content"]

    async def test_prompts_processed_one_at_a_time(self, client: ModelClient) -> None:
        timeline: list[str] = []
        ws = FakeWebSocket([_text("first"), _text("second")], timeline=timeline)

        await ChatSession(ws, client).run()

        assert timeline == [
            "send:connection",
            "receive",
            "send:status",
            "send:response",
            "receive",
            "send:status",
            "send:response",
            "receive",
        ]
        assert [r["question"] for r in ws.sent[1:]] == ["first", "first", "second", "second"]

    async def test_send_failure_mid_turn_closes_session(
        self, client: ModelClient, stub_provider: StubProvider
    ) -> None:
        ws = FakeWebSocket([_text("hi"), _text("again")], fail_send_at=1)
        session = ChatSession(ws, client)

        await session.run()

        assert session.state is SessionState.CLOSED
        assert stub_provider.calls == []
        assert ws.frames == [_text("again")]


# ---------------------------------------------------------------------------
# Streaming sessions
# ---------------------------------------------------------------------------


class TestStreamingTurns:
    async def test_chunks_then_full_response(self, make_client) -> None:
        client = make_client(StubProvider(fragments=["AI ", "learns ", "patterns."]))
        ws = FakeWebSocket([_text("Explain AI")])

        await ChatSession(ws, client, streaming=True).run()

        assert _types(ws) == ["connection", "status", "chunk", "chunk", "chunk", "response"]
        assert [r["content"] for r in ws.sent[2:5]] == ["AI ", "learns ", "patterns."]
        assert ws.sent[5]["content"] == "AI learns patterns."
        assert ws.sent[5]["loading"] is False

    async def test_mid_stream_error_ends_turn_with_error(self, make_client) -> None:
        client = make_client(
            StubProvider(
                fragments=["a", "b", "c"],
                stream_error=BackendRejectedError("quota exceeded"),
                fail_after=1,
            )
        )
        ws = FakeWebSocket([_text("go"), _text("again")])

        await ChatSession(ws, client, streaming=True).run()

        assert _types(ws) == [
            "connection",
            "status",
            "chunk",
            "error",
            "status",
            "chunk",
            "error",
        ]
        assert ws.sent[3]["content"] == "quota exceeded"

    async def test_chunk_send_failure_closes_session(self, make_client) -> None:
        client = make_client(StubProvider(fragments=["a", "b", "c"]))
        ws = FakeWebSocket([_text("go")], fail_send_at=3)
        session = ChatSession(ws, client, streaming=True)

        await session.run()

        assert session.state is SessionState.CLOSED
        assert _types(ws) == ["connection", "status", "chunk"]
