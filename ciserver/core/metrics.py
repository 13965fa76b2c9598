"""
Simple in-memory metrics for Prometheus exposition.
Thread-safe counters: builds run in worker threads while requests are served.
"""
import threading
from typing import Dict

# (counter name, exported metric name, help text)
COUNTERS = (
    ("requests_total", "ci_requests_total", "Total HTTP requests"),
    ("webhooks_received_total", "ci_webhooks_received_total", "Webhook deliveries received"),
    ("webhooks_rejected_total", "ci_webhooks_rejected_total", "Webhook deliveries rejected as malformed"),
    ("pings_total", "ci_pings_total", "Ping events acknowledged"),
    ("builds_started_total", "ci_builds_started_total", "Builds dispatched"),
    ("builds_succeeded_total", "ci_builds_succeeded_total", "Builds where compile and tests passed"),
    ("builds_failed_total", "ci_builds_failed_total", "Builds that failed to clone, compile or test"),
    ("builds_errored_total", "ci_builds_errored_total", "Builds aborted by an unexpected exception"),
    ("notifications_failed_total", "ci_notifications_failed_total", "Status or chat notifications that failed"),
    ("history_write_failures_total", "ci_history_write_failures_total", "Build results that could not be persisted"),
)


class Metrics:
    """Thread-safe metrics collection."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name, _, _ in COUNTERS}
        self._counters.update({"requests_2xx": 0, "requests_4xx": 0, "requests_5xx": 0})

    def inc(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = 0
            self._counters[name] += value

    def get(self, name: str) -> int:
        """Get a counter value."""
        with self._lock:
            return self._counters.get(name, 0)

    def get_all(self) -> Dict[str, int]:
        """Get all counter values."""
        with self._lock:
            return self._counters.copy()

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        counters = self.get_all()

        for name, exported, help_text in COUNTERS:
            lines.append(f"# HELP {exported} {help_text}")
            lines.append(f"# TYPE {exported} counter")
            lines.append(f"{exported} {counters.get(name, 0)}")

        lines.append("# HELP ci_requests_by_status HTTP requests by status class")
        lines.append("# TYPE ci_requests_by_status counter")
        lines.append(f'ci_requests_by_status{{status="2xx"}} {counters["requests_2xx"]}')
        lines.append(f'ci_requests_by_status{{status="4xx"}} {counters["requests_4xx"]}')
        lines.append(f'ci_requests_by_status{{status="5xx"}} {counters["requests_5xx"]}')

        return "\n".join(lines) + "\n"


# Global metrics instance
metrics = Metrics()
