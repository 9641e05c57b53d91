"""LiteLLM-backed provider with typed errors, observability, and retry policy.

LiteLLM speaks the backend's wire protocol (Gemini by default), so this
module focuses on what the relay needs on top of it:

* Mapping LiteLLM exceptions onto :mod:`llmrelay.providers.errors`
* OpenTelemetry spans using GenAI semantic conventions
* Structured logging via structlog with a per-request correlation ID
* An optional tenacity retry budget for opening the upstream call
"""

import logging
import time
import uuid
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any

import httpx
import litellm
import structlog
from opentelemetry import trace
from opentelemetry.trace import StatusCode
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from llmrelay.providers.base import ModelProvider
from llmrelay.providers.errors import (
    BackendRejectedError,
    BackendUnreachableError,
    MalformedResponseError,
    ProviderError,
)

# LiteLLM's own logging is silenced; structured logs are emitted here instead.
logging.getLogger("LiteLLM").setLevel(logging.WARNING)
logging.getLogger("LiteLLM Router").setLevel(logging.WARNING)
logging.getLogger("LiteLLM Proxy").setLevel(logging.WARNING)

_log = structlog.get_logger(__name__)
_tracer = trace.get_tracer(__name__)


def _before_sleep(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` hook that emits a structured warning."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    next_action = retry_state.next_action
    wait_seconds = next_action.sleep if next_action is not None else 0.0
    _log.warning(
        "llm_request_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=round(wait_seconds, 2),
        error_type=type(exc).__name__ if exc else None,
        error=str(exc) if exc else None,
    )


class _CallTrace:
    """Span and log context for one upstream call.

    The ``llm.generate`` span is started here and ended by :meth:`finish`, so
    a streaming call can keep it open while its fragments are consumed.
    """

    def __init__(self, model: str, call_type: str) -> None:
        self.model = model
        self._start_time = time.monotonic()
        self._finished = False

        self.span = _tracer.start_span("llm.generate")
        self.span.set_attribute("gen_ai.system", _backend_from_model(model))
        self.span.set_attribute("gen_ai.request.model", model)
        self.span.set_attribute("llm.call_type", call_type)

        self.log = _log.bind(request_id=str(uuid.uuid4()), model=model, call_type=call_type)
        self.log.info("llm_request_start")

    @contextmanager
    def recording(self) -> Iterator[None]:
        """Make the span current and record any failure escaping the block.

        Unmapped exceptions are converted to a :class:`ProviderError`
        subclass before they reach the caller.
        """
        with trace.use_span(
            self.span, end_on_exit=False, record_exception=False, set_status_on_exception=False
        ):
            try:
                yield

            except ProviderError as exc:
                self.span.record_exception(exc)
                self.span.set_status(StatusCode.ERROR, exc.message)
                self.log.error(
                    "llm_request_error",
                    error_type=type(exc).__name__,
                    error=exc.message,
                    provider=exc.provider,
                )
                raise

            except Exception as exc:
                mapped = _map_error(exc, self.model)
                self.span.record_exception(exc)
                self.span.set_status(StatusCode.ERROR, str(exc))
                self.log.error(
                    "llm_request_error",
                    error_type=type(mapped).__name__,
                    error=str(exc),
                )
                raise mapped from exc

    def finish(self, **fields: Any) -> None:
        if self._finished:
            return
        self._finished = True
        self.span.end()
        duration_ms = round((time.monotonic() - self._start_time) * 1000, 2)
        self.log.info("llm_request_complete", duration_ms=duration_ms, **fields)


class LiteLLMProvider(ModelProvider):
    """Generation backend that routes through ``litellm``.

    The API key and model travel with every call, so a single instance serves
    any number of clients concurrently.

    Example::

        provider = LiteLLMProvider(timeout=30)
        text = await provider.generate_text(key, "gemini/gemini-2.5-flash", "Hi")

    Args:
        timeout: Per-request timeout in seconds passed to LiteLLM.
        max_retries: Maximum number of attempts for opening the upstream
            call.  Only :class:`~llmrelay.providers.errors.BackendUnreachableError`
            is retried; rejections and malformed responses are raised
            immediately, and failures after a stream has started are never
            retried.  The default of ``1`` disables retries.
    """

    name = "litellm"

    def __init__(self, timeout: int = 60, max_retries: int = 1) -> None:
        self._timeout = timeout
        self._max_retries = max(1, max_retries)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_text(self, api_key: str, model: str, prompt: str) -> str:
        with self._instrumented(model, "non_streaming"):
            response = await self._call_async(self._params(api_key, model, prompt, stream=False))
            return self._parse_response(response, model)

    def generate_blocking(self, api_key: str, model: str, prompt: str) -> str:
        with self._instrumented(model, "blocking"):
            response = self._call_blocking(self._params(api_key, model, prompt, stream=False))
            return self._parse_response(response, model)

    async def generate_stream(
        self, api_key: str, model: str, prompt: str
    ) -> AsyncIterator[str]:
        call = _CallTrace(model, "streaming")
        try:
            with call.recording():
                response = await self._call_async(
                    self._params(api_key, model, prompt, stream=True)
                )
        except BaseException:
            call.finish()
            raise
        # The span stays open until the fragment iterator is exhausted or closed.
        return self._iter_fragments(response, call)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _instrumented(self, model: str, call_type: str) -> Iterator[_CallTrace]:
        """Wrap one complete upstream call in a span and start/error/complete log events."""
        call = _CallTrace(model, call_type)
        try:
            with call.recording():
                yield call
        finally:
            call.finish()

    def _params(self, api_key: str, model: str, prompt: str, stream: bool) -> dict[str, Any]:
        """Build ``litellm`` completion kwargs for a single-prompt request."""
        return {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "api_key": api_key,
            "stream": stream,
            "timeout": self._timeout,
        }

    def _retry_policy(self) -> dict[str, Any]:
        return {
            "stop": stop_after_attempt(self._max_retries),
            "retry": retry_if_exception_type(BackendUnreachableError),
            "wait": wait_exponential(multiplier=1, min=1, max=30),
            "before_sleep": _before_sleep,
            "reraise": True,
        }

    async def _call_async(self, params: dict[str, Any]) -> Any:
        """Call ``litellm.acompletion`` under the retry policy.

        Errors are mapped before tenacity evaluates them so the retry
        predicate matches on gateway types.
        """
        async for attempt in AsyncRetrying(**self._retry_policy()):
            with attempt:
                try:
                    return await litellm.acompletion(**params)
                except Exception as exc:
                    raise _map_error(exc, params["model"]) from exc

    def _call_blocking(self, params: dict[str, Any]) -> Any:
        """Call ``litellm.completion`` under the same retry policy as :meth:`_call_async`."""
        for attempt in Retrying(**self._retry_policy()):
            with attempt:
                try:
                    return litellm.completion(**params)
                except Exception as exc:
                    raise _map_error(exc, params["model"]) from exc

    async def _iter_fragments(self, response: Any, call: _CallTrace) -> AsyncIterator[str]:
        """Yield text fragments from a LiteLLM stream in arrival order.

        Chunks without text (role headers, finish markers, usage-only chunks)
        are skipped.  A failure while iterating is recorded on the call's span,
        mapped and re-raised, which ends the iterator.  The span is current
        only while the next chunk is awaited, never across a ``yield``.
        """
        chunks = aiter(response)
        count = 0
        try:
            while True:
                with call.recording():
                    try:
                        raw_chunk = await anext(chunks)
                    except StopAsyncIteration:
                        break
                fragment = _fragment_from_chunk(raw_chunk)
                if fragment:
                    count += 1
                    yield fragment
        finally:
            call.finish(fragments=count)

    def _parse_response(self, raw: Any, model: str) -> str:
        """Extract the completion text from a non-streaming LiteLLM response."""
        try:
            content = raw.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise MalformedResponseError(
                f"Unexpected response shape from {_backend_from_model(model)}",
                provider=_backend_from_model(model),
                original_error=exc,
            ) from exc

        if not isinstance(content, str):
            raise MalformedResponseError(
                f"No response text from {_backend_from_model(model)}",
                provider=_backend_from_model(model),
            )
        return content


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


def _fragment_from_chunk(raw: Any) -> str:
    """Return the delta text of a LiteLLM streaming chunk, or ``""``."""
    choices = getattr(raw, "choices", None)
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return ""
    return getattr(delta, "content", None) or ""


def _map_error(error: Exception, model: str) -> ProviderError:
    """Map a LiteLLM (or transport) exception to a typed :class:`ProviderError`.

    ======================================  ===============================
    Upstream exception                      Relay exception
    ======================================  ===============================
    ``litellm.RateLimitError``              :class:`BackendRejectedError`
    ``litellm.AuthenticationError``         :class:`BackendRejectedError`
    ``litellm.PermissionDeniedError``       :class:`BackendRejectedError`
    ``litellm.NotFoundError``               :class:`BackendRejectedError`
    ``litellm.BadRequestError``             :class:`BackendRejectedError`
    ``litellm.Timeout``                     :class:`BackendUnreachableError`
    ``litellm.ServiceUnavailableError``     :class:`BackendUnreachableError`
    ``litellm.APIConnectionError``          :class:`BackendUnreachableError`
    ``litellm.APIError`` (catch-all)        :class:`BackendUnreachableError`
    ``httpx.TransportError`` / ``OSError``  :class:`BackendUnreachableError`
    ======================================  ===============================
    """
    # Already mapped.
    if isinstance(error, ProviderError):
        return error

    backend = _backend_from_model(model)

    if isinstance(error, litellm.RateLimitError):
        return BackendRejectedError(
            message=f"{backend} rate limit exceeded: {error}",
            retry_after=getattr(error, "retry_after", None),
            provider=backend,
            original_error=error,
        )

    if isinstance(error, litellm.AuthenticationError | litellm.PermissionDeniedError):
        return BackendRejectedError(
            message=f"Authentication failed for {backend}: {error}",
            provider=backend,
            original_error=error,
        )

    # NotFoundError covers unknown model names on the backend side.
    if isinstance(error, litellm.NotFoundError | litellm.BadRequestError):
        return BackendRejectedError(
            message=f"{backend} rejected the request: {error}",
            provider=backend,
            original_error=error,
        )

    if isinstance(error, litellm.Timeout):
        return BackendUnreachableError(
            message=f"Request to {backend} timed out: {error}",
            provider=backend,
            original_error=error,
        )

    if isinstance(
        error,
        litellm.ServiceUnavailableError
        | litellm.APIConnectionError
        | litellm.APIError
        | httpx.TransportError
        | OSError,
    ):
        return BackendUnreachableError(
            message=f"{backend} is unreachable: {error}",
            provider=backend,
            original_error=error,
        )

    return ProviderError(
        message=f"Unexpected error from {backend}: {error}",
        provider=backend,
        original_error=error,
    )


def _backend_from_model(model: str) -> str:
    """Derive the backend name from a LiteLLM model string.

    LiteLLM uses ``backend/model`` prefixes (e.g. ``gemini/gemini-2.5-flash``);
    bare Gemini names are recognised by prefix.
    """
    if "/" in model:
        return model.split("/")[0]
    if model.startswith("gemini"):
        return "gemini"
    return "unknown"
