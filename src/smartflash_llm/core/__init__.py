"""Core completion modules."""

from smartflash_llm.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from smartflash_llm.core.client import (
    ClientConfig,
    CompletionClient,
    TelemetrySink,
    create_client,
)
from smartflash_llm.core.rate_limiter import RateLimitConfig, RateLimiter
from smartflash_llm.core.transport import HTTPTransport
from smartflash_llm.core.validator import (
    RepairStrategy,
    ResponseValidator,
    create_validator,
    fill_required_defaults,
    strip_code_fence,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "ClientConfig",
    "CompletionClient",
    "TelemetrySink",
    "create_client",
    "RateLimitConfig",
    "RateLimiter",
    "HTTPTransport",
    "RepairStrategy",
    "ResponseValidator",
    "create_validator",
    "fill_required_defaults",
    "strip_code_fence",
]
