"""Test configuration and fixtures."""

from typing import Any

import pytest

from smartflash_llm.core import CircuitBreakerConfig, ClientConfig, CompletionClient
from tests.helpers import ScriptedEndpoint


class FakeTimer:
    """Deterministic clock plus a sleep that advances it."""

    def __init__(self, start: float = 1000.0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


class RecordingTelemetry:
    """Telemetry sink that keeps every event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def log_event(self, event: str, data: dict[str, Any]) -> None:
        self.events.append((event, data))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture
def make_client(timer: FakeTimer, telemetry: RecordingTelemetry):
    """Build a client wired to a scripted endpoint and the fake timer."""

    def _make(endpoint: ScriptedEndpoint, **overrides: Any) -> CompletionClient:
        values: dict[str, Any] = {
            "api_key": "sk-test",
            "base_url": "https://llm.test/api/v1",
            "max_retries": 3,
            "retry_backoff_base": 0.5,
            "circuit_breaker": CircuitBreakerConfig(
                failure_threshold=5,
                success_threshold=2,
                recovery_timeout=60.0,
            ),
        }
        values.update(overrides)
        return CompletionClient(
            ClientConfig(**values),
            telemetry=telemetry,
            http_client=endpoint.client(),
            clock=timer.now,
            sleep=timer.sleep,
        )

    return _make
