"""Stream relay: provider fragments to transport events.

The relay pulls fragments one at a time and never buffers the whole answer.
Generation failures, whether raised while opening the stream or partway
through it, become a single terminal ``error`` event so the caller's
connection stays open to observe them.
"""

import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Literal

import structlog

from llmrelay.client import ModelClient
from llmrelay.providers import ProviderError

_log = structlog.get_logger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

EventKind = Literal["data", "error"]


@dataclass(frozen=True)
class RelayEvent:
    """One transport-neutral event: a text fragment or the terminal error.

    ``payload`` is what goes on the wire; for error events ``error`` keeps the
    exception that ended the stream.
    """

    kind: EventKind
    payload: str
    error: ProviderError | None = field(default=None, compare=False)

    @property
    def is_error(self) -> bool:
        return self.kind == "error"


def error_payload(exc: ProviderError) -> str:
    return f"error: {exc.message}"


async def relay_stream(client: ModelClient, prompt: str) -> AsyncIterator[RelayEvent]:
    """Yield a ``data`` event per fragment, or a final ``error`` event on failure.

    After an ``error`` event nothing else is yielded, even if the underlying
    stream could produce more.  The iterator itself never raises for a
    generation failure.
    """
    try:
        fragments = await client.generate_stream(prompt)
    except ProviderError as exc:
        _log.warning("relay_open_failed", error_type=type(exc).__name__, error=exc.message)
        yield RelayEvent("error", error_payload(exc), exc)
        return

    count = 0
    try:
        async for fragment in fragments:
            count += 1
            yield RelayEvent("data", fragment)
    except ProviderError as exc:
        _log.warning(
            "relay_chunk_failed",
            error_type=type(exc).__name__,
            error=exc.message,
            fragments=count,
        )
        yield RelayEvent("error", error_payload(exc), exc)
    finally:
        # Stop the upstream stream if the consumer went away or it failed.
        aclose = getattr(fragments, "aclose", None)
        if aclose is not None:
            await aclose()


def sse_frame(data: str) -> str:
    """Encode *data* as one Server-Sent Event.

    Each line of a multi-line payload gets its own ``data:`` field, which SSE
    clients join back together with newlines.  CRLF and a lone CR end a line
    in SSE just like LF, so all three are split on and arrive as newlines.
    """
    lines = _LINE_BREAK.split(data)
    return "".join(f"data: {line}\n" for line in lines) + "\n"

