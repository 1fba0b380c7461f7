"""Completion client - orchestrates one logical chat completion request."""

import asyncio
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from smartflash_llm.config import DEFAULT_BASE_URL, DEFAULT_MODEL, Settings, get_settings
from smartflash_llm.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from smartflash_llm.core.rate_limiter import RateLimitConfig, RateLimiter
from smartflash_llm.core.transport import HTTPTransport
from smartflash_llm.core.validator import ResponseValidator
from smartflash_llm.errors import (
    CircuitOpenError,
    CompletionError,
    ConfigurationError,
    InputError,
    InvalidResponseError,
    RequestCancelledError,
    ResponseValidationError,
)
from smartflash_llm.metrics import MetricsExporter
from smartflash_llm.models import (
    ChatCompletion,
    JsonSchemaSpec,
    Message,
    ModelMetadata,
    ModelPricing,
    ModelResponse,
    ResponseFormat,
    SendOptions,
    ValidationResult,
)
from smartflash_llm.prompts import build_correction_message
from smartflash_llm.utils import get_logger

logger = get_logger(__name__)

TELEMETRY_SERVICE = "openrouter"


class TelemetrySink(Protocol):
    """Receives named client events."""

    def log_event(self, event: str, data: dict[str, Any]) -> None:
        ...


@dataclass
class ClientConfig:
    """Construction config for `CompletionClient`. Durations are in seconds."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    default_model: str = DEFAULT_MODEL
    timeout: float = 30.0
    max_retries: int = 3
    retry_backoff_base: float = 1.0
    rate_limit: RateLimitConfig | None = None
    circuit_breaker: CircuitBreakerConfig | None = field(default_factory=CircuitBreakerConfig)
    max_validation_retries: int = 2
    response_schemas: dict[str, dict[str, Any]] = field(default_factory=dict)
    app_url: str | None = "https://10xdev-flashcards.app"
    app_title: str | None = "SmartFlash"

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "ClientConfig":
        """Build client config from application settings.

        Args:
            settings: Application settings
            **overrides: Fields replacing the settings-derived values

        Returns:
            Client configuration
        """
        rate_limit = None
        if settings.rate_limit_requests and settings.rate_limit_per_seconds:
            rate_limit = RateLimitConfig(
                requests=settings.rate_limit_requests,
                per_seconds=settings.rate_limit_per_seconds,
            )
        values: dict[str, Any] = {
            "api_key": settings.openrouter_api_key,
            "base_url": settings.openrouter_base_url,
            "default_model": settings.openrouter_default_model,
            "timeout": settings.request_timeout,
            "max_retries": settings.max_retries,
            "retry_backoff_base": settings.retry_backoff_base,
            "rate_limit": rate_limit,
            "circuit_breaker": CircuitBreakerConfig(
                failure_threshold=settings.circuit_breaker_threshold,
                success_threshold=settings.circuit_breaker_success_threshold,
                recovery_timeout=settings.circuit_breaker_timeout,
            ),
            "max_validation_retries": settings.max_validation_retries,
            "app_url": settings.app_url,
            "app_title": settings.app_title,
        }
        values.update(overrides)
        return cls(**values)


class CompletionClient:
    """Resilient client for an OpenAI-compatible chat completions endpoint.

    One instance owns its circuit breaker, rate limiter and validator
    cache; independently configured clients never share state.

    Request flow:
    1. Build the wire payload from messages and options
    2. Send through the transport (breaker, limiter, retry/backoff)
    3. Extract the first choice
    4. Validate against the response format, resubmitting with a
       corrective follow-up while the validation budget lasts
    5. Record one breaker outcome for the logical request
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        telemetry: TelemetrySink | None = None,
        validator: ResponseValidator | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock=time.monotonic,
        sleep=asyncio.sleep,
    ) -> None:
        """Initialize client.

        Args:
            config: Client configuration
            telemetry: Optional event sink
            validator: Response validator, a fresh one by default
            http_client: Preconfigured HTTP client, mostly for tests
            clock: Monotonic time source for breaker and limiter
            sleep: Coroutine used for backoff and throttle waits

        Raises:
            ConfigurationError: missing API key or invalid preloaded schema
        """
        if not config.api_key or not config.api_key.strip():
            raise ConfigurationError("OpenRouter API key is required")
        if config.max_retries < 0 or config.max_validation_retries < 0:
            raise ConfigurationError("Retry budgets cannot be negative")
        if config.timeout <= 0:
            raise ConfigurationError("Timeout must be positive")

        self.config = config
        self._telemetry = telemetry
        self.validator = validator or ResponseValidator()

        self._schemas: dict[str, dict[str, Any]] = {}
        for name, schema in config.response_schemas.items():
            self.register_schema(name, schema)

        self.circuit_breaker: CircuitBreaker | None = None
        if config.circuit_breaker is not None:
            self.circuit_breaker = CircuitBreaker(
                TELEMETRY_SERVICE,
                config.circuit_breaker,
                on_state_change=self._on_circuit_change,
                clock=clock,
            )
            MetricsExporter.record_circuit_state(TELEMETRY_SERVICE, CircuitState.CLOSED.value)

        self.rate_limiter: RateLimiter | None = None
        if config.rate_limit is not None:
            self.rate_limiter = RateLimiter(
                config.rate_limit,
                on_wait=lambda wait: self._log_telemetry("rate_limit_wait", {"wait": wait}),
                clock=clock,
                sleep=sleep,
            )

        headers: dict[str, str] = {}
        if config.app_url:
            headers["HTTP-Referer"] = config.app_url
        if config.app_title:
            headers["X-Title"] = config.app_title

        self.transport = HTTPTransport(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_backoff_base=config.retry_backoff_base,
            circuit_breaker=self.circuit_breaker,
            rate_limiter=self.rate_limiter,
            headers=headers,
            emit=self._log_telemetry,
            http_client=http_client,
            sleep=sleep,
        )
        self._model_catalog: dict[str, dict[str, Any]] | None = None

    @property
    def default_model(self) -> str:
        return self.config.default_model

    @property
    def last_request_meta(self) -> dict[str, Any] | None:
        """Model, status and attempt of the last successful transport call."""
        meta = self.transport.last_request_meta
        return dict(meta) if meta is not None else None

    def set_api_key(self, key: str) -> None:
        """Rotate the API key used for subsequent requests.

        Raises:
            ConfigurationError: key is blank
        """
        if not key or not key.strip():
            raise ConfigurationError("API key cannot be empty")
        self.transport.api_key = key
        logger.info("client.api_key_rotated")

    def register_schema(self, name: str, schema: dict[str, Any]) -> None:
        """Make a schema available to `validate_response` under `name`."""
        self.validator.register(name, schema)
        self._schemas[name] = schema

    async def send_chat_message(
        self,
        conversation_id: str,
        messages: Sequence[Message | Mapping[str, Any]],
        options: SendOptions | Mapping[str, Any] | None = None,
        *,
        abort: asyncio.Event | None = None,
    ) -> ModelResponse:
        """Send a conversation and return the model's answer.

        Args:
            conversation_id: Identifier used for logs and telemetry
            messages: Non-empty conversation
            options: Model and sampling options, optional response format
            abort: Setting this event cancels the request

        Returns:
            Model response, with `data` set when a response format was given

        Raises:
            InputError: empty or malformed messages/options
            CompletionError: any terminal condition of the taxonomy
        """
        if not messages:
            raise InputError("Messages list cannot be empty")

        try:
            conversation = [
                msg if isinstance(msg, Message) else Message.model_validate(msg) for msg in messages
            ]
            if options is None:
                options = SendOptions()
            elif not isinstance(options, SendOptions):
                options = SendOptions.model_validate(options)
        except ValidationError as exc:
            raise InputError(f"Invalid request: {exc.errors()[0]['msg']}") from exc

        payload = {
            "model": self.default_model,
            "messages": [msg.to_wire() for msg in conversation],
            **options.to_wire(),
        }

        return await self._send_with_validation_retry(
            conversation_id,
            payload,
            conversation,
            options.response_format,
            abort,
        )

    async def get_model_info(self, model: str | None = None) -> ModelMetadata:
        """Describe a model using the endpoint's catalogue.

        The catalogue is fetched once per client. Models missing from it
        get basic metadata named after their id.
        """
        model_id = model or self.default_model

        if self._model_catalog is None:
            body = await self.transport.fetch_models()
            self._model_catalog = {
                entry["id"]: entry
                for entry in body.get("data") or []
                if isinstance(entry, dict) and entry.get("id")
            }

        entry = self._model_catalog.get(model_id)
        if entry is None:
            return ModelMetadata(id=model_id, name=model_id)

        pricing = entry.get("pricing")
        return ModelMetadata(
            id=model_id,
            name=entry.get("name") or model_id,
            pricing=ModelPricing.model_validate(pricing) if isinstance(pricing, dict) else None,
            context_length=entry.get("context_length"),
            description=entry.get("description"),
        )

    def validate_response(self, schema_name: str, response: Any) -> ValidationResult:
        """Strictly validate data against a registered schema."""
        schema = self._schemas.get(schema_name)
        if schema is None:
            return ValidationResult.failure("schema", f"Schema '{schema_name}' not found")

        fmt = ResponseFormat(json_schema=JsonSchemaSpec(name=schema_name, strict=True, schema=schema))
        return self.validator.validate(response, fmt)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _send_with_validation_retry(
        self,
        conversation_id: str,
        payload: dict[str, Any],
        conversation: list[Message],
        response_format: ResponseFormat | None,
        abort: asyncio.Event | None,
    ) -> ModelResponse:
        model = payload["model"]
        started = time.perf_counter()
        attempt = 0

        while True:
            attempt_started = time.perf_counter()
            try:
                body = await self.transport.send(payload, abort=abort)
                model_response = self._extract_model_response(body, attempt_started)
            except (CircuitOpenError, RequestCancelledError) as exc:
                # Neither outcome says anything about upstream health.
                logger.warning(
                    "client.rejected",
                    conversation_id=conversation_id,
                    kind=exc.kind.value,
                    error=exc.message,
                )
                MetricsExporter.record_completion(model, exc.kind.value, time.perf_counter() - started)
                raise
            except Exception as exc:
                self._fail(conversation_id, model, exc, started)
                raise

            if response_format is None:
                return self._succeed(conversation_id, model, model_response, attempt + 1, started)

            result = self.validator.validate(model_response.content, response_format)
            if result.valid:
                model_response = model_response.model_copy(update={"data": result.data})
                return self._succeed(conversation_id, model, model_response, attempt + 1, started)

            issues = result.errors or []
            if response_format.json_schema.strict or attempt >= self.config.max_validation_retries:
                error = ResponseValidationError(issues, attempts=attempt + 1)
                self._fail(conversation_id, model, error, started)
                raise error

            attempt += 1
            summary = result.error_summary()
            logger.info(
                "client.validation_retry",
                conversation_id=conversation_id,
                schema=response_format.json_schema.name,
                attempt=attempt,
                errors=summary,
            )
            self._log_telemetry(
                "validation_retry",
                {"conversation_id": conversation_id, "attempt": attempt, "errors": summary},
            )
            MetricsExporter.record_validation_retry(response_format.json_schema.name)

            conversation = [
                *conversation,
                Message(role="assistant", content=model_response.content),
                build_correction_message(issues),
            ]
            payload = {**payload, "messages": [msg.to_wire() for msg in conversation]}

    def _extract_model_response(self, body: dict[str, Any], started: float) -> ModelResponse:
        try:
            completion = ChatCompletion.model_validate(body)
        except ValidationError as exc:
            raise InvalidResponseError(f"Malformed completion body: {exc.errors()[0]['msg']}") from exc

        if not completion.choices:
            raise InvalidResponseError("No choices in API response")

        choice = completion.choices[0]
        meta = self.transport.last_request_meta or {}
        return ModelResponse(
            id=completion.id,
            model=completion.model,
            content=choice.message.content or "",
            role=choice.message.role,
            finish_reason=choice.finish_reason,
            usage=completion.usage,
            metadata={
                "request_id": completion.id,
                "generation_time_ms": round((time.perf_counter() - started) * 1000),
                "attempts": meta.get("attempt", 1),
            },
        )

    def _succeed(
        self,
        conversation_id: str,
        model: str,
        response: ModelResponse,
        validation_attempts: int,
        started: float,
    ) -> ModelResponse:
        if self.circuit_breaker is not None:
            self.circuit_breaker.record_success()

        duration = time.perf_counter() - started
        response.metadata["validation_attempts"] = validation_attempts
        usage = response.usage.model_dump() if response.usage else None

        logger.info(
            "client.completed",
            conversation_id=conversation_id,
            model=model,
            duration_ms=round(duration * 1000),
            validation_attempts=validation_attempts,
        )
        self._log_telemetry(
            "chat_completion_success",
            {
                "conversation_id": conversation_id,
                "model": model,
                "duration_ms": round(duration * 1000),
                "usage": usage,
                "validation_attempts": validation_attempts,
            },
        )
        MetricsExporter.record_completion(model, "success", duration)
        return response

    def _fail(self, conversation_id: str, model: str, exc: Exception, started: float) -> None:
        if self.circuit_breaker is not None:
            self.circuit_breaker.record_failure()

        kind = exc.kind.value if isinstance(exc, CompletionError) else "unexpected"
        duration = time.perf_counter() - started
        logger.error(
            "client.failed",
            conversation_id=conversation_id,
            model=model,
            kind=kind,
            error=str(exc),
        )
        self._log_telemetry(
            "chat_completion_error",
            {"conversation_id": conversation_id, "model": model, "kind": kind, "error": str(exc)},
        )
        MetricsExporter.record_completion(model, kind, duration)

    def _on_circuit_change(self, old_state: CircuitState, new_state: CircuitState) -> None:
        MetricsExporter.record_circuit_state(TELEMETRY_SERVICE, new_state.value)
        data: dict[str, Any] = {"state": new_state.value, "previous_state": old_state.value}
        if new_state is CircuitState.OPEN and self.circuit_breaker is not None:
            data["retry_after"] = self.circuit_breaker.config.recovery_timeout
        self._log_telemetry(f"circuit_breaker_{new_state.value.lower()}", data)

    def _log_telemetry(self, event: str, data: dict[str, Any]) -> None:
        """Forward an event to the sink; sink failures never reach the caller."""
        if self._telemetry is None:
            return
        try:
            self._telemetry.log_event(
                event,
                {
                    **data,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "service": TELEMETRY_SERVICE,
                },
            )
        except Exception as e:
            logger.error("telemetry.failed", telemetry_event=event, error=str(e))


def create_client(settings: Settings | None = None, **kwargs: Any) -> CompletionClient:
    """Factory for completion client.

    Args:
        settings: Application settings, loaded from the environment by default
        **kwargs: Passed to `CompletionClient` (telemetry, validator, http_client)

    Returns:
        Configured client
    """
    settings = settings or get_settings()
    return CompletionClient(ClientConfig.from_settings(settings), **kwargs)
