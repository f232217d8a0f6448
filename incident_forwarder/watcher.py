"""Polls the event log for new lines and forwards every parsed event.

Events are forwarded one at a time in file order. A slow ticketing API holds
back the remaining lines of the batch until the current call resolves.
"""

import logging
import re
import threading

from incident_forwarder.forwarder import IncidentForwarder
from incident_forwarder.metrics import MetricsService
from incident_forwarder.models import Parsed
from incident_forwarder.parser import parse_line
from incident_forwarder.tail_cursor import TailCursor

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r"\r?\n")


def split_lines(text: str) -> list[str]:
    """Split on \\r\\n or \\n and drop empty fragments."""
    return [line for line in _LINE_SPLIT_RE.split(text) if line]


class LogWatcher:
    """Watches one log file and hands parsed events to the forwarder.

    Handles:
    - File not yet existing (keeps polling until it appears)
    - File truncation (cursor resets to the start)
    - Unparseable lines and forward failures (logged and dropped)
    """

    def __init__(self, path: str, forwarder: IncidentForwarder,
                 shutdown_event: threading.Event, poll_interval: float = 0.5,
                 metrics: MetricsService | None = None):
        self._cursor = TailCursor(path)
        self._forwarder = forwarder
        self._shutdown = shutdown_event
        self._poll_interval = poll_interval
        self._metrics = metrics
        self._thread: threading.Thread | None = None
        self.forwarded = 0
        self.rejected = 0
        self.failed = 0

    @property
    def cursor(self) -> TailCursor:
        return self._cursor

    def start_at_end(self) -> None:
        """Skip history so that only new activity is forwarded."""
        position = self._cursor.seek_to_end()
        if position:
            logger.info("Initial file size=%d, start position set to end.", position)
        else:
            logger.warning("Log file is empty or does not exist yet: %s",
                           self._cursor.file_path)

    def run(self):
        """Main polling loop. Blocks until shutdown_event is set."""
        logger.info("Log watcher started: %s (poll every %.2fs)",
                    self._cursor.file_path, self._poll_interval)
        self.start_at_end()

        while not self._shutdown.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Log watcher loop error")
            self._shutdown.wait(self._poll_interval)

        logger.info("Log watcher stopped: %s (forwarded=%d, rejected=%d, failed=%d)",
                    self._cursor.file_path, self.forwarded, self.rejected, self.failed)

    def start(self):
        self._thread = threading.Thread(target=self.run, name="log-watcher", daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None):
        if self._thread:
            self._thread.join(timeout=timeout)

    def poll_once(self) -> int:
        """Read newly appended lines and forward them. Return events forwarded."""
        data = self._cursor.read_new_bytes()
        if not data:
            return 0

        text = data.decode("utf-8", errors="replace").lstrip("\ufeff")
        lines = split_lines(text)
        if not lines:
            return 0

        logger.info("Detected %d new line(s) in log.", len(lines))
        forwarded = 0
        for line in lines:
            if self._process_line(line):
                forwarded += 1
        return forwarded

    def _process_line(self, line: str) -> bool:
        result = parse_line(line)
        if not isinstance(result, Parsed):
            self.rejected += 1
            if self._metrics:
                self._metrics.record_rejected_line()
            logger.warning("Unparsed log line (%s): %s", result.reason, line)
            return False

        event = result.event
        logger.info("Parsed event: time=%s, source=%s, event_id=%d, message=%s",
                    event.timestamp, event.source, event.event_id, event.message)
        try:
            self._forwarder.forward(event)
        except Exception:
            self.failed += 1
            if self._metrics:
                self._metrics.record_exception()
            logger.exception("Failed to forward event %s (EventId=%d), dropping it",
                             event.source, event.event_id)
            return False

        self.forwarded += 1
        return True
