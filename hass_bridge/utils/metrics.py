"""
Metrics client and domain functions for the bridge.

Recording goes through the OpenTelemetry metrics API. Without a configured
MeterProvider every call is a no-op, so the bridge never needs an exporter
to run.

Usage:
    from hass_bridge.utils.metrics import record_login_flow

    record_login_flow("code_issued")
"""

import functools
import logging
from typing import Any, Optional

from opentelemetry import metrics as otel_metrics
from opentelemetry.metrics import Counter, Histogram

logger = logging.getLogger(__name__)


DEFAULT_METRICS_CONFIG = {
    "counters": [
        {"name": "login_flows_total", "description": "Login flow steps by outcome"},
        {"name": "token_exchanges_total", "description": "Token requests by grant type and status"},
        {"name": "sessions_swept_total", "description": "Expired flows and codes removed by the sweeper"},
    ],
    "histograms": [
        {"name": "http_request_duration_seconds", "description": "Gateway request latency", "unit": "s"},
    ],
}


def safe_telemetry(func):
    """
    Decorator to safely execute telemetry methods.
    Exceptions are logged as warnings and never reach the caller.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Telemetry error in {func.__name__}: {e}")

    return wrapper


class BridgeMetrics:
    """
    Registry of counters and histograms for one service.

    Metrics are declared from a config dict of the form
    ``{"counters": [{"name", "description", "unit", "capture"}], "histograms": [...]}``.
    Entries with ``capture: false`` are skipped and recording them is a no-op.
    """

    def __init__(self, service_name: str, config: Optional[dict[str, Any]] = None):
        self.service_name = service_name
        self.meter = otel_metrics.get_meter(f"hass_bridge.{service_name}")
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        if config:
            self._init_from_config(config)

    def _init_from_config(self, config: dict[str, Any]) -> None:
        for counter_def in config.get("counters", []):
            if not counter_def.get("capture", True):
                logger.debug(f"Skipping counter '{counter_def['name']}' (capture=false)")
                continue
            self.create_counter(counter_def["name"], counter_def.get("description", ""), counter_def.get("unit", "1"))

        for histogram_def in config.get("histograms", []):
            if not histogram_def.get("capture", True):
                logger.debug(f"Skipping histogram '{histogram_def['name']}' (capture=false)")
                continue
            self.create_histogram(
                histogram_def["name"], histogram_def.get("description", ""), histogram_def.get("unit", "s")
            )

    @safe_telemetry
    def create_counter(self, name: str, description: str = "", unit: str = "1") -> Counter | None:
        if name not in self._counters:
            self._counters[name] = self.meter.create_counter(name=name, description=description, unit=unit)
        return self._counters.get(name)

    @safe_telemetry
    def create_histogram(self, name: str, description: str = "", unit: str = "s") -> Histogram | None:
        if name not in self._histograms:
            self._histograms[name] = self.meter.create_histogram(name=name, description=description, unit=unit)
        return self._histograms.get(name)

    @safe_telemetry
    def record_counter(self, name: str, value: float = 1.0, attributes: dict[str, str] | None = None) -> None:
        counter = self._counters.get(name)
        if counter:
            counter.add(value, attributes or {})
        else:
            logger.debug(f"Counter '{name}' not registered")

    @safe_telemetry
    def record_histogram(self, name: str, value: float, attributes: dict[str, str] | None = None) -> None:
        histogram = self._histograms.get(name)
        if histogram:
            histogram.record(value, attributes or {})
        else:
            logger.debug(f"Histogram '{name}' not registered")


metrics = BridgeMetrics("gateway", config=DEFAULT_METRICS_CONFIG)


# =============================================================================
# Domain-Specific Recording Functions
# =============================================================================


def record_login_flow(outcome: str) -> None:
    """
    Record a login flow step.

    Args:
        outcome: One of "started", "unknown_flow", "invalid_auth", "code_issued"
    """
    metrics.record_counter("login_flows_total", 1, {"outcome": outcome})


def record_token_exchange(grant_type: str | None, success: bool) -> None:
    metrics.record_counter(
        "token_exchanges_total",
        1,
        {"grant_type": grant_type or "none", "status": "success" if success else "failure"},
    )


def record_sessions_swept(count: int) -> None:
    if count:
        metrics.record_counter("sessions_swept_total", count)


def record_http_request(method: str, route: str, status_code: int, duration_seconds: float) -> None:
    metrics.record_histogram(
        "http_request_duration_seconds",
        duration_seconds,
        {"method": method, "route": route, "status_code": str(status_code)},
    )
