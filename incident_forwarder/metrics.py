"""Thread-safe forwarding metrics with bounded history and threshold alerts."""

import logging
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

HISTORY_SIZE = 100
ALERT_HISTORY_SIZE = 50


@runtime_checkable
class AlertHandler(Protocol):
    def handle(self, alert: dict) -> None: ...


class LogAlertHandler:
    def handle(self, alert: dict) -> None:
        logger.warning("[ALERT:%s] [%s] %s",
                       alert.get("level", "WARNING"), alert.get("rule", "unknown"),
                       alert.get("message", ""))


class MetricsService:
    """Counters for the forwarding pipeline.

    Owned by the composition root and injected where needed. A single lock
    guards the counters, the sample history and the alert buffer.
    """

    def __init__(self, failure_threshold: int = 5, failure_rate_threshold: float = 0.5,
                 history_size: int = HISTORY_SIZE,
                 alert_history_size: int = ALERT_HISTORY_SIZE):
        self._lock = threading.Lock()
        self._failure_threshold = failure_threshold
        self._failure_rate_threshold = failure_rate_threshold
        self._requests = 0
        self._exceptions = 0
        self._rejected_lines = 0
        self._last_requests = 0
        self._last_exceptions = 0
        self._start_time = time.monotonic()
        self._history: deque[dict] = deque(maxlen=history_size)
        self._alerts: deque[dict] = deque(maxlen=alert_history_size)
        self._handlers: list[AlertHandler] = []

    def add_handler(self, handler: AlertHandler) -> None:
        self._handlers.append(handler)

    def record_request(self) -> None:
        """Record one ticket creation attempt."""
        with self._lock:
            self._requests += 1

    def record_exception(self) -> None:
        """Record one failed forward."""
        with self._lock:
            self._exceptions += 1

    def record_rejected_line(self) -> None:
        with self._lock:
            self._rejected_lines += 1

    def collect_sample(self) -> dict:
        """Snapshot the counters, append to history and evaluate alert rules."""
        with self._lock:
            requests_delta = self._requests - self._last_requests
            exceptions_delta = self._exceptions - self._last_exceptions
            self._last_requests = self._requests
            self._last_exceptions = self._exceptions

            sample = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "uptime_seconds": round(time.monotonic() - self._start_time, 1),
                "requests": self._requests,
                "exceptions": self._exceptions,
                "rejected_lines": self._rejected_lines,
                "requests_delta": requests_delta,
                "exceptions_delta": exceptions_delta,
                "failure_rate": (
                    exceptions_delta / requests_delta if requests_delta else 0.0
                ),
            }
            self._history.append(sample)
            fired = self._evaluate(sample)
            self._alerts.extend(fired)

        for alert in fired:
            for handler in self._handlers:
                try:
                    handler.handle(alert)
                except Exception:
                    logger.exception("Alert handler %r failed on %s", handler, alert["rule"])
        return sample

    def _evaluate(self, sample: dict) -> list[dict]:
        alerts = []
        if sample["exceptions_delta"] >= self._failure_threshold:
            alerts.append(self._make_alert(
                rule="forward_failures",
                level="CRITICAL",
                message=(f"{sample['exceptions_delta']} forward failures since last sample "
                         f"(threshold {self._failure_threshold})"),
                sample=sample,
            ))
        if sample["requests_delta"] and sample["failure_rate"] > self._failure_rate_threshold:
            alerts.append(self._make_alert(
                rule="failure_rate",
                level="WARNING",
                message=(f"Failure rate {sample['failure_rate']:.1%} exceeds threshold "
                         f"{self._failure_rate_threshold:.1%}"),
                sample=sample,
            ))
        return alerts

    @staticmethod
    def _make_alert(rule: str, level: str, message: str, sample: dict) -> dict:
        return {
            "rule": rule,
            "level": level,
            "message": message,
            "timestamp": sample["timestamp"],
            "details": {
                "requests_delta": sample["requests_delta"],
                "exceptions_delta": sample["exceptions_delta"],
            },
        }

    def get_history(self) -> list[dict]:
        with self._lock:
            return list(self._history)

    def get_alerts(self) -> list[dict]:
        with self._lock:
            return list(self._alerts)

    def totals(self) -> dict:
        with self._lock:
            return {
                "requests": self._requests,
                "exceptions": self._exceptions,
                "rejected_lines": self._rejected_lines,
            }


class MetricsReporter:
    """Background thread that periodically samples and logs metrics."""

    def __init__(self, metrics: MetricsService, interval: float,
                 shutdown_event: threading.Event):
        self._metrics = metrics
        self._interval = interval
        self._shutdown = shutdown_event
        self._thread: threading.Thread | None = None

    def start(self):
        self._thread = threading.Thread(target=self._report_loop, daemon=True)
        self._thread.start()

    def stop(self):
        if self._thread:
            self._thread.join(timeout=5)

    def _report_loop(self):
        while not self._shutdown.is_set():
            self._shutdown.wait(self._interval)
            if self._shutdown.is_set():
                break

            sample = self._metrics.collect_sample()
            logger.info(
                "[metrics] requests=%d failures=%d rejected=%d failure_rate=%.1f%%",
                sample["requests_delta"], sample["exceptions_delta"],
                sample["rejected_lines"], sample["failure_rate"] * 100,
            )
