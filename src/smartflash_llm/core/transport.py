"""HTTP transport for the upstream chat completions endpoint."""

import asyncio
import random
from typing import Any, Awaitable, Callable

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from smartflash_llm.core.circuit_breaker import CircuitBreaker
from smartflash_llm.core.rate_limiter import RateLimiter
from smartflash_llm.errors import (
    AuthorizationError,
    ClientRequestError,
    CompletionError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerError,
)
from smartflash_llm.metrics import MetricsExporter
from smartflash_llm.utils import get_logger

logger = get_logger(__name__)

MAX_BACKOFF = 60.0
JITTER_RATIO = 0.3

Emit = Callable[[str, dict[str, Any]], None]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, CompletionError) and exc.retryable


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _parse_error_body(response: httpx.Response) -> tuple[str, str | None]:
    """Extract (message, code) from an `{error: {message, type, code}}` body."""
    fallback = f"API request failed with status {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return fallback, None
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return fallback, None
    code = error.get("code")
    return error.get("message") or fallback, str(code) if code is not None else None


class HTTPTransport:
    """Sends prepared payloads with timeout, retry and backoff.

    Retryable conditions (429, 5xx, connection failures) are absorbed here
    until the attempt budget runs out; everything else surfaces on the
    first attempt.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff_base: float = 1.0,
        circuit_breaker: CircuitBreaker | None = None,
        rate_limiter: RateLimiter | None = None,
        headers: dict[str, str] | None = None,
        emit: Emit | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize transport.

        Args:
            api_key: Bearer token for the endpoint
            base_url: API base URL, without trailing slash
            timeout: Per-attempt timeout in seconds
            max_retries: Retries after the first attempt
            retry_backoff_base: Backoff base in seconds
            circuit_breaker: Consulted before the first attempt
            rate_limiter: Acquired before the first attempt
            headers: Extra headers (attribution) sent with every request
            emit: Telemetry callback
            http_client: Preconfigured client, mostly for tests
            sleep: Coroutine used between attempts
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self.circuit_breaker = circuit_breaker
        self.rate_limiter = rate_limiter
        self.extra_headers = dict(headers or {})
        self.last_request_meta: dict[str, Any] | None = None
        self._emit = emit
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @property
    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def compute_backoff(self, attempt: int) -> float:
        """Exponential backoff with up to 30% jitter, capped at 60 seconds.

        Args:
            attempt: Zero-based index of the attempt that just failed

        Returns:
            Delay in seconds
        """
        exponential = self.retry_backoff_base * (2 ** attempt)
        jitter = random.random() * JITTER_RATIO * exponential
        return min(exponential + jitter, MAX_BACKOFF)

    async def send(self, payload: dict[str, Any], *, abort: asyncio.Event | None = None) -> dict[str, Any]:
        """Send a chat completion payload.

        Args:
            payload: Wire payload
            abort: Setting this event cancels the request

        Returns:
            Parsed success body

        Raises:
            CompletionError: terminal condition after retries
        """
        if self.circuit_breaker is not None:
            self.circuit_breaker.check_before_call()
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire(abort)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._before_sleep,
            sleep=self._sleeper(abort),
            reraise=True,
        )
        body: dict[str, Any] = {}
        async for attempt in retrying:
            with attempt:
                body = await self._attempt(payload, attempt.retry_state.attempt_number, abort)
        return body

    async def fetch_models(self) -> dict[str, Any]:
        """Fetch the model catalogue in a single attempt."""
        try:
            response = await asyncio.wait_for(
                self._client.get(f"{self.base_url}/models", headers=self._headers(), timeout=self.timeout),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise RequestTimeoutError(self.timeout) from exc
        except httpx.TransportError as exc:
            raise NetworkError(str(exc) or type(exc).__name__, attempts=1) from exc

        if not response.is_success:
            raise self._classify_error(response, attempt=1)
        return self._decode(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            **self.extra_headers,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _attempt(
        self,
        payload: dict[str, Any],
        attempt: int,
        abort: asyncio.Event | None,
    ) -> dict[str, Any]:
        if attempt == 1:
            logger.debug(
                "transport.request",
                url=self.url,
                model=payload.get("model"),
                messages=len(payload.get("messages", [])),
                has_response_format="response_format" in payload,
            )

        try:
            response = await self._post(payload, abort)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(self.timeout) from exc
        except httpx.TransportError as exc:
            raise NetworkError(str(exc) or type(exc).__name__, attempts=attempt) from exc

        if not response.is_success:
            raise self._classify_error(response, attempt)

        body = self._decode(response)
        self.last_request_meta = {
            "model": payload.get("model"),
            "status": response.status_code,
            "attempt": attempt,
        }
        self._report_rate_limit_headers(response.headers)
        return body

    async def _post(self, payload: dict[str, Any], abort: asyncio.Event | None) -> httpx.Response:
        """POST under the per-attempt deadline, racing the abort signal."""
        if abort is not None and abort.is_set():
            raise RequestCancelledError()

        request = asyncio.ensure_future(
            self._client.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
        )
        waiters: set[asyncio.Future] = {request}
        aborted = None
        if abort is not None:
            aborted = asyncio.ensure_future(abort.wait())
            waiters.add(aborted)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()

        if request in done:
            return request.result()
        if aborted is not None and aborted in done:
            logger.info("transport.cancelled", url=self.url)
            raise RequestCancelledError()
        raise RequestTimeoutError(self.timeout)

    def _decode(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise InvalidResponseError("Response body is not valid JSON") from exc
        if not isinstance(body, dict):
            raise InvalidResponseError("Response body is not a JSON object")
        return body

    def _classify_error(self, response: httpx.Response, attempt: int) -> CompletionError:
        status = response.status_code
        detail, code = _parse_error_body(response)
        logger.warning(
            "transport.error_response",
            status=status,
            attempt=attempt,
            code=code,
            detail=detail,
        )

        if status in (401, 403):
            return AuthorizationError(f"Authorization failed: {detail}", status=status, code=code)
        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("retry-after"))
            return RateLimitedError(detail, attempts=attempt, retry_after=retry_after)
        if status >= 500:
            return ServerError(detail, status=status, attempts=attempt)
        return ClientRequestError(f"Client error: {detail}", status=status, code=code)

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
            return exc.retry_after
        return self.compute_backoff(retry_state.attempt_number - 1)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        """Runs only when another attempt follows."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        reason = exc.kind.value if isinstance(exc, CompletionError) else "unknown"
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        if isinstance(exc, RateLimitedError):
            self._notify("rate_limit_hit", {"retry_after": delay, "attempt": retry_state.attempt_number})
        logger.info(
            "transport.retry",
            attempt=retry_state.attempt_number,
            reason=reason,
            wait=round(delay, 3),
        )
        MetricsExporter.record_transport_retry(reason)

    def _sleeper(self, abort: asyncio.Event | None) -> Callable[[float], Awaitable[None]]:
        """Backoff sleep that wakes early, and fails, when abort is set."""
        if abort is None:
            return self._sleep

        async def sleep(seconds: float) -> None:
            try:
                await asyncio.wait_for(abort.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                return
            raise RequestCancelledError()

        return sleep

    def _report_rate_limit_headers(self, headers: httpx.Headers) -> None:
        remaining = headers.get("x-ratelimit-remaining")
        reset = headers.get("x-ratelimit-reset")
        if remaining is None or reset is None:
            return
        try:
            self._notify("rate_limit_info", {"remaining": int(remaining), "reset_timestamp": int(reset)})
        except ValueError:
            logger.debug("transport.bad_rate_limit_headers", remaining=remaining, reset=reset)

    def _notify(self, event: str, data: dict[str, Any]) -> None:
        if self._emit is not None:
            self._emit(event, data)
