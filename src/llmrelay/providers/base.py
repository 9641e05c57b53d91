"""Provider capability interface.

A provider knows one backend's wire protocol and nothing else: it receives
the key, the canonical model name and the prompt on every call, and returns
raw text.  Providers hold no per-request state, so one instance is shared by
every client and request.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


class ModelProvider(ABC):
    """Base class for text-generation backends."""

    #: Short backend name used in logs, spans and error payloads.
    name: str = "unknown"

    @abstractmethod
    async def generate_text(self, api_key: str, model: str, prompt: str) -> str:
        """Return the full completion for *prompt*.

        Raises:
            BackendUnreachableError: Transport failure, timeout or upstream 5xx.
            BackendRejectedError: The backend refused the request.
            MalformedResponseError: The response carried no completion text.
        """

    @abstractmethod
    def generate_blocking(self, api_key: str, model: str, prompt: str) -> str:
        """Blocking counterpart of :meth:`generate_text` with identical semantics."""

    @abstractmethod
    async def generate_stream(
        self, api_key: str, model: str, prompt: str
    ) -> AsyncIterator[str]:
        """Open a streaming completion and return its fragments.

        Awaiting this method opens the upstream stream, so connection and
        rejection errors surface here before any fragment is produced.  The
        returned iterator is single-pass; a failure while iterating raises a
        :class:`~llmrelay.providers.errors.ProviderError` and ends it.
        """
