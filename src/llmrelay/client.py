"""Model client: one provider bound to a replaceable key/model pair.

The client is shared by every request.  Its binding is an immutable snapshot
swapped in whole by :meth:`ModelClient.initialize`; generate calls copy the
snapshot out under the lock and release it before touching the network, so a
concurrent re-initialisation never blocks or interleaves with a generation.
"""

import threading
from collections.abc import AsyncIterator
from dataclasses import dataclass

import structlog
from pydantic import SecretStr

from llmrelay.providers import ModelProvider, NotInitializedError, ProviderRegistry

_log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CredentialBinding:
    """The key and canonical backend model name every generate call uses."""

    api_key: SecretStr
    model_name: str


@dataclass(frozen=True)
class _Bound:
    provider: ModelProvider
    binding: CredentialBinding


class ModelClient:
    """Bind a registry-selected provider to an API key and model.

    Example::

        client = ModelClient(ProviderRegistry()).initialize(key, "gemini-2.5-flash")
        text = await client.generate("Explain AI in one sentence")

    Args:
        registry: Registry used by :meth:`initialize` to resolve model ids.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry
        self._lock = threading.Lock()
        self._bound: _Bound | None = None

    def initialize(self, api_key: str | SecretStr, model_id: str) -> "ModelClient":
        """Bind *api_key* and the model behind *model_id*, replacing any prior binding.

        Raises:
            UnknownModelError: *model_id* is not supported.  The previous
                binding, if any, stays in place.
        """
        provider, model_name = self._registry.select(model_id)
        key = api_key if isinstance(api_key, SecretStr) else SecretStr(api_key)
        bound = _Bound(provider=provider, binding=CredentialBinding(key, model_name))
        with self._lock:
            self._bound = bound
        _log.info("client_initialized", model=model_name, provider=provider.name)
        return self

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self._bound is not None

    @property
    def model_name(self) -> str | None:
        """Canonical model name of the current binding, or ``None``."""
        with self._lock:
            return self._bound.binding.model_name if self._bound else None

    def binding(self) -> CredentialBinding:
        """Return the current binding snapshot.

        Raises:
            NotInitializedError: :meth:`initialize` has not been called.
        """
        return self._snapshot().binding

    async def generate(self, prompt: str) -> str:
        bound = self._snapshot()
        return await bound.provider.generate_text(
            bound.binding.api_key.get_secret_value(), bound.binding.model_name, prompt
        )

    def generate_blocking(self, prompt: str) -> str:
        bound = self._snapshot()
        return bound.provider.generate_blocking(
            bound.binding.api_key.get_secret_value(), bound.binding.model_name, prompt
        )

    async def generate_stream(self, prompt: str) -> AsyncIterator[str]:
        bound = self._snapshot()
        return await bound.provider.generate_stream(
            bound.binding.api_key.get_secret_value(), bound.binding.model_name, prompt
        )

    def _snapshot(self) -> _Bound:
        with self._lock:
            bound = self._bound
        if bound is None:
            raise NotInitializedError("Model client used before initialize()")
        return bound
