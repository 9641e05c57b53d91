"""Shared fixtures: an in-memory provider and clients bound to it."""

from collections.abc import AsyncIterator

import pytest

from llmrelay.client import ModelClient
from llmrelay.providers import Backend, ModelProvider, ProviderError, ProviderRegistry


class StubProvider(ModelProvider):
    """Provider that answers from canned values and records every call.

    Args:
        reply: Text returned by ``generate_text`` / ``generate_blocking``.
        fragments: Fragments yielded by ``generate_stream``.
        error: Raised by every call instead of answering.
        fail_after: When set with ``stream_error``, the stream raises
            ``stream_error`` after yielding this many fragments.
    """

    name = "stub"

    def __init__(
        self,
        reply: str = "ok",
        fragments: list[str] | None = None,
        error: ProviderError | None = None,
        stream_error: ProviderError | None = None,
        fail_after: int = 0,
    ) -> None:
        self.reply = reply
        self.fragments = fragments if fragments is not None else [reply]
        self.error = error
        self.stream_error = stream_error
        self.fail_after = fail_after
        self.calls: list[tuple[str, str, str, str]] = []

    async def generate_text(self, api_key: str, model: str, prompt: str) -> str:
        self.calls.append(("text", api_key, model, prompt))
        if self.error is not None:
            raise self.error
        return self.reply

    def generate_blocking(self, api_key: str, model: str, prompt: str) -> str:
        self.calls.append(("blocking", api_key, model, prompt))
        if self.error is not None:
            raise self.error
        return self.reply

    async def generate_stream(
        self, api_key: str, model: str, prompt: str
    ) -> AsyncIterator[str]:
        self.calls.append(("stream", api_key, model, prompt))
        if self.error is not None:
            raise self.error
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        for index, fragment in enumerate(self.fragments):
            if self.stream_error is not None and index == self.fail_after:
                raise self.stream_error
            yield fragment


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider(reply="AI learns patterns from data.")


@pytest.fixture
def registry(stub_provider: StubProvider) -> ProviderRegistry:
    return ProviderRegistry(providers={Backend.LITELLM: stub_provider})


@pytest.fixture
def client(registry: ProviderRegistry) -> ModelClient:
    """A client bound to the stub provider."""
    return ModelClient(registry).initialize("test-key", "gemini-2.5-flash")


@pytest.fixture
def make_client():
    """Factory fixture: a client bound to a given provider."""

    def _make(provider: ModelProvider) -> ModelClient:
        registry = ProviderRegistry(providers={Backend.LITELLM: provider})
        return ModelClient(registry).initialize("test-key", "gemini-2.5-flash")

    return _make
