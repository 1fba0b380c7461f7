"""Resilient OpenRouter completion client for flashcard generation."""

__version__ = "0.1.0"

from smartflash_llm.core import (  # noqa: E402
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    ClientConfig,
    CompletionClient,
    HTTPTransport,
    RateLimitConfig,
    RateLimiter,
    ResponseValidator,
    create_client,
)
from smartflash_llm.errors import CompletionError, ErrorKind  # noqa: E402

__all__ = [
    "__version__",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "ClientConfig",
    "CompletionClient",
    "CompletionError",
    "ErrorKind",
    "HTTPTransport",
    "RateLimitConfig",
    "RateLimiter",
    "ResponseValidator",
    "create_client",
]
