"""Backend provider abstraction layer.

Public surface area for the providers package.  Import from here rather than
from the individual submodules so internal structure can change freely.

Example::

    from llmrelay.providers import ProviderRegistry

    registry = ProviderRegistry(timeout=30)
    provider, model = registry.select("gemini-2.5-flash")
    text = await provider.generate_text(api_key, model, "Hello")
"""

from llmrelay.providers.base import ModelProvider
from llmrelay.providers.errors import (
    BackendRejectedError,
    BackendUnreachableError,
    ConfigurationError,
    MalformedResponseError,
    NotInitializedError,
    ProviderError,
    UnknownModelError,
)
from llmrelay.providers.litellm_provider import LiteLLMProvider
from llmrelay.providers.registry import Backend, ModelId, ProviderRegistry

__all__ = [
    # Providers
    "ModelProvider",
    "LiteLLMProvider",
    # Registry
    "Backend",
    "ModelId",
    "ProviderRegistry",
    # Errors
    "ProviderError",
    "ConfigurationError",
    "NotInitializedError",
    "UnknownModelError",
    "BackendUnreachableError",
    "MalformedResponseError",
    "BackendRejectedError",
]
