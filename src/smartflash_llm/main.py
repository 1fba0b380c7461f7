"""FastAPI service exposing health, metrics and circuit state."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from smartflash_llm import __version__
from smartflash_llm.config import get_settings
from smartflash_llm.core import CircuitState, CompletionClient, create_client
from smartflash_llm.errors import ConfigurationError
from smartflash_llm.metrics import MetricsExporter
from smartflash_llm.utils import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info(
        "startup",
        version=__version__,
        host=settings.host,
        port=settings.port,
        base_url=settings.openrouter_base_url,
        default_model=settings.openrouter_default_model,
    )

    client: CompletionClient | None = None
    try:
        client = create_client(settings)
    except ConfigurationError as e:
        logger.warning("client.not_configured", error=e.message)
    app.state.completion_client = client

    yield

    if client is not None:
        await client.aclose()
    logger.info("shutdown")


app = FastAPI(
    title="SmartFlash LLM",
    description="Resilient OpenRouter completion client for flashcard generation",
    version=__version__,
    lifespan=lifespan,
)


def _get_client(request: Request) -> CompletionClient | None:
    return getattr(request.app.state, "completion_client", None)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Readiness check endpoint.

    Reports `degraded` while no client is configured or its circuit is open.
    """
    client = _get_client(request)
    if client is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "reason": "client not configured"},
        )
    breaker = client.circuit_breaker
    if breaker is not None and breaker.state is CircuitState.OPEN:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "reason": "circuit open"},
        )
    return JSONResponse(content={"status": "ready"})


@app.get("/metrics")
async def metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    content_type, metrics_body = MetricsExporter.get_prometheus_format()
    return PlainTextResponse(
        content=metrics_body.decode("utf-8"),
        media_type=content_type
    )


@app.get("/circuit")
async def circuit_stats(request: Request) -> JSONResponse:
    """Circuit breaker statistics endpoint."""
    client = _get_client(request)
    if client is None or client.circuit_breaker is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Circuit breaker not configured"},
        )
    return JSONResponse(content=client.circuit_breaker.get_stats_dict())


def main():
    """CLI entry point."""
    import uvicorn
    settings = get_settings()

    uvicorn.run(
        "smartflash_llm.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
