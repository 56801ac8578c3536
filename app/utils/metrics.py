"""
Prometheus Metrics

In-process counters and histograms rendered in the Prometheus text format
at /metrics. Values live for the process lifetime and are per instance.

Series:
- http_requests_total / http_request_duration_seconds (by route template)
- bookings_total, payment_initiations_total
- payment_confirmations_total (by path: verify, webhook, return_page)
- webhook_events_total
- gateway_requests_total / gateway_request_duration_seconds
"""

from typing import Dict, List, Tuple
from collections import defaultdict
from threading import Lock

LabelKey = Tuple[str, ...]


def _escape(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class _Metric:
    kind = ""

    def __init__(self, name: str, description: str, labels: tuple = ()):
        self.name = name
        self.description = description
        self.labels = labels
        self._lock = Lock()

    def _key(self, label_values: Dict[str, str]) -> LabelKey:
        return tuple(str(label_values.get(label, "")) for label in self.labels)

    def _label_str(self, key: LabelKey, **extra) -> str:
        pairs = list(zip(self.labels, key)) + list(extra.items())
        if not pairs:
            return ""
        return "{" + ",".join(f'{k}="{_escape(v)}"' for k, v in pairs) + "}"

    def header(self) -> List[str]:
        return [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} {self.kind}"]


class Counter(_Metric):
    kind = "counter"

    def __init__(self, name: str, description: str, labels: tuple = ()):
        super().__init__(name, description, labels)
        self._values: Dict[LabelKey, float] = defaultdict(float)

    def inc(self, value: float = 1, **label_values):
        key = self._key(label_values)
        with self._lock:
            self._values[key] += value

    def get(self, **label_values) -> float:
        with self._lock:
            return self._values.get(self._key(label_values), 0.0)

    def render(self) -> List[str]:
        with self._lock:
            values = dict(self._values)
        return self.header() + [f"{self.name}{self._label_str(k)} {v}" for k, v in sorted(values.items())]

    def reset(self):
        with self._lock:
            self._values.clear()


class Histogram(_Metric):
    kind = "histogram"

    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

    def __init__(self, name: str, description: str, labels: tuple = (), buckets: tuple = None):
        super().__init__(name, description, labels)
        self.buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        # per label key: [count per bucket..., sum, total]
        self._series: Dict[LabelKey, List[float]] = {}

    def observe(self, value: float, **label_values):
        key = self._key(label_values)
        with self._lock:
            series = self._series.setdefault(key, [0] * len(self.buckets) + [0.0, 0])
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    series[i] += 1
            series[-2] += value
            series[-1] += 1

    def count(self, **label_values) -> int:
        with self._lock:
            series = self._series.get(self._key(label_values))
            return series[-1] if series else 0

    def render(self) -> List[str]:
        with self._lock:
            snapshot = {k: list(v) for k, v in self._series.items()}
        lines = self.header()
        for key, series in sorted(snapshot.items()):
            for bound, hits in zip(self.buckets, series):
                lines.append(f"{self.name}_bucket{self._label_str(key, le=bound)} {hits}")
            lines.append(f"{self.name}_bucket{self._label_str(key, le='+Inf')} {series[-1]}")
            lines.append(f"{self.name}_sum{self._label_str(key)} {series[-2]}")
            lines.append(f"{self.name}_count{self._label_str(key)} {series[-1]}")
        return lines

    def reset(self):
        with self._lock:
            self._series.clear()


# ================================
# APPLICATION METRICS
# ================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labels=("method", "path", "status_code")
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    labels=("method", "path")
)

bookings_total = Counter(
    "bookings_total",
    "Bookings created",
    labels=("service",)
)

payment_initiations_total = Counter(
    "payment_initiations_total",
    "Checkout sessions requested from the gateway",
    labels=("status",)
)

payment_confirmations_total = Counter(
    "payment_confirmations_total",
    "Payment confirmation attempts by path and outcome",
    labels=("source", "outcome")
)

webhook_events_total = Counter(
    "webhook_events_total",
    "Gateway notifications received",
    labels=("status", "outcome")
)

gateway_requests_total = Counter(
    "gateway_requests_total",
    "Calls to the payment gateway",
    labels=("operation", "status")
)

gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Payment gateway call duration in seconds",
    labels=("operation",)
)

REGISTRY = (
    http_requests_total,
    http_request_duration_seconds,
    bookings_total,
    payment_initiations_total,
    payment_confirmations_total,
    webhook_events_total,
    gateway_requests_total,
    gateway_request_duration_seconds,
)


def format_prometheus_metrics() -> str:
    lines = []
    for metric in REGISTRY:
        lines.extend(metric.render())
    return "\n".join(lines) + "\n"


def reset_metrics():
    for metric in REGISTRY:
        metric.reset()


# ================================
# RECORDING HELPERS
# ================================

def record_http_request(method: str, path: str, status_code: int, duration: float):
    http_requests_total.inc(method=method, path=path, status_code=status_code)
    http_request_duration_seconds.observe(duration, method=method, path=path)


def record_booking_created(service: str):
    bookings_total.inc(service=service)


def record_payment_initiation(success: bool):
    payment_initiations_total.inc(status="success" if success else "error")


def record_payment_confirmation(source: str, outcome: str):
    """source: verify | webhook | return_page. outcome: confirmed | already_paid | failed | presumed."""
    payment_confirmations_total.inc(source=source, outcome=outcome)


def record_webhook_event(status: str, outcome: str):
    webhook_events_total.inc(status=status or "missing", outcome=outcome)


def record_gateway_request(operation: str, status: str, duration: float):
    gateway_requests_total.inc(operation=operation, status=status)
    gateway_request_duration_seconds.observe(duration, operation=operation)
