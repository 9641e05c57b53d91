"""Exception hierarchy for LLM Relay.

Every failure the core can produce is one of these types so transports can
turn it into an in-band payload without inspecting raw LiteLLM or HTTP
internals.
"""


class ProviderError(Exception):
    """Base exception for all relay errors.

    Attributes:
        message: Human-readable error description.
        provider: Backend name (e.g. "gemini").  ``None`` when the backend
            could not be determined or the error happened before selection.
        original_error: The upstream exception that caused this error, if any.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class ConfigurationError(ProviderError):
    """Raised for operator-side misconfiguration.  Never retried."""


class NotInitializedError(ConfigurationError):
    """Raised when a client is used before ``initialize`` bound a key and model."""


class UnknownModelError(ConfigurationError):
    """Raised when a logical model identifier is not in the registry.

    Attributes:
        model_id: The identifier that failed to resolve.
    """

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model '{model_id}'")
        self.model_id = model_id


class BackendUnreachableError(ProviderError):
    """Raised when the backend is down or unreachable (network error, timeout, 5xx)."""


class MalformedResponseError(ProviderError):
    """Raised when the backend answered without the expected completion text."""


class BackendRejectedError(ProviderError):
    """Raised when the backend reports an API-level failure (bad key, bad model, 4xx).

    Attributes:
        retry_after: Seconds to wait before retrying, when the backend
            supplies a ``Retry-After`` hint on rate limiting.  ``None`` otherwise.
    """

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        provider: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, provider=provider, original_error=original_error)
        self.retry_after = retry_after
