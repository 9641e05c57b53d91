"""Logical model catalogue and provider selection.

This is the only place that knows which backend serves which model.  Adding
a backend means adding a :class:`Backend` member, a factory in
``ProviderRegistry._build`` and its models in ``_CATALOG``; clients, the
relay and the session loop are untouched.
"""

import threading
from enum import StrEnum

from llmrelay.providers.base import ModelProvider
from llmrelay.providers.errors import UnknownModelError
from llmrelay.providers.litellm_provider import LiteLLMProvider


class Backend(StrEnum):
    LITELLM = "litellm"


class ModelId(StrEnum):
    """Supported logical model identifiers.

    See https://ai.google.dev/gemini-api/docs/models
    """

    GEMINI_25_FLASH = "gemini-2.5-flash"
    GEMINI_25_PRO = "gemini-2.5-pro"
    GEMINI_25_FLASH_LITE = "gemini-2.5-flash-lite"


_CATALOG: dict[ModelId, tuple[Backend, str]] = {
    ModelId.GEMINI_25_FLASH: (Backend.LITELLM, "gemini/gemini-2.5-flash"),
    ModelId.GEMINI_25_PRO: (Backend.LITELLM, "gemini/gemini-2.5-pro"),
    ModelId.GEMINI_25_FLASH_LITE: (Backend.LITELLM, "gemini/gemini-2.5-flash-lite"),
}


class ProviderRegistry:
    """Resolve logical model identifiers to a shared provider instance.

    Providers are stateless, so each backend is constructed at most once and
    the same instance is returned on every :meth:`select`.

    Args:
        timeout: Per-request timeout handed to every provider.
        max_retries: Attempt budget handed to every provider.
        providers: Pre-built provider instances keyed by backend.  Backends
            present here are never constructed by the registry.
    """

    def __init__(
        self,
        timeout: int = 60,
        max_retries: int = 1,
        providers: dict[Backend, ModelProvider] | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max_retries
        self._providers: dict[Backend, ModelProvider] = dict(providers or {})
        self._lock = threading.Lock()

    def select(self, model_id: str) -> tuple[ModelProvider, str]:
        """Return ``(provider, canonical_backend_model_name)`` for *model_id*.

        Raises:
            UnknownModelError: *model_id* is not a supported identifier.
        """
        try:
            backend, canonical = _CATALOG[ModelId(model_id)]
        except ValueError:
            raise UnknownModelError(model_id) from None
        return self._provider_for(backend), canonical

    def models(self) -> list[str]:
        """Return every supported logical model identifier."""
        return [model_id.value for model_id in _CATALOG]

    def _provider_for(self, backend: Backend) -> ModelProvider:
        with self._lock:
            provider = self._providers.get(backend)
            if provider is None:
                provider = self._build(backend)
                self._providers[backend] = provider
            return provider

    def _build(self, backend: Backend) -> ModelProvider:
        if backend is Backend.LITELLM:
            return LiteLLMProvider(timeout=self._timeout, max_retries=self._max_retries)
        raise ValueError(f"No provider factory for backend '{backend}'")
