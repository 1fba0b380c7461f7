"""Prometheus metrics exposition."""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest

from smartflash_llm import __version__

# Application info
APP_INFO = Info("smartflash_llm", "Application information")
APP_INFO.info({"version": __version__})

COMPLETIONS_TOTAL = Counter(
    "smartflash_llm_completions_total",
    "Logical completion requests by outcome",
    ["model", "outcome"]
)

TRANSPORT_RETRIES_TOTAL = Counter(
    "smartflash_llm_transport_retries_total",
    "Transport attempts retried after a retryable failure",
    ["reason"]
)

VALIDATION_RETRIES_TOTAL = Counter(
    "smartflash_llm_validation_retries_total",
    "Corrective resubmissions after schema validation failures",
    ["schema"]
)

COMPLETION_SECONDS = Histogram(
    "smartflash_llm_completion_seconds",
    "Logical request duration in seconds",
    ["model"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0]
)

# 0 closed, 1 half-open, 2 open
CIRCUIT_STATE = Gauge(
    "smartflash_llm_circuit_state",
    "Circuit breaker state",
    ["circuit"]
)

_CIRCUIT_STATE_VALUES = {"CLOSED": 0, "HALF_OPEN": 1, "OPEN": 2}


class MetricsExporter:
    """Exports metrics in Prometheus format."""

    @staticmethod
    def get_prometheus_format() -> tuple[str, bytes]:
        """Get metrics in Prometheus exposition format.

        Returns:
            Tuple of (content_type, metrics_body)
        """
        return CONTENT_TYPE_LATEST, generate_latest()

    @staticmethod
    def record_completion(model: str, outcome: str, duration_seconds: float) -> None:
        """Record the end of a logical request.

        Args:
            model: Model requested
            outcome: "success" or an error kind
            duration_seconds: Wall time of the logical request
        """
        COMPLETIONS_TOTAL.labels(model=model, outcome=outcome).inc()
        COMPLETION_SECONDS.labels(model=model).observe(duration_seconds)

    @staticmethod
    def record_transport_retry(reason: str) -> None:
        TRANSPORT_RETRIES_TOTAL.labels(reason=reason).inc()

    @staticmethod
    def record_validation_retry(schema: str) -> None:
        VALIDATION_RETRIES_TOTAL.labels(schema=schema).inc()

    @staticmethod
    def record_circuit_state(circuit: str, state: str) -> None:
        CIRCUIT_STATE.labels(circuit=circuit).set(_CIRCUIT_STATE_VALUES.get(state, 0))
