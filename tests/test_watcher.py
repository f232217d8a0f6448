"""Tests for the polling log watcher."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from incident_forwarder.metrics import MetricsService
from incident_forwarder.ticket_client import SessionError
from incident_forwarder.watcher import LogWatcher, split_lines

LINE_1 = "01.02.2024 10:00:00,123 SOURCE=svc1 EVENTID=1 MESSAGE=first"
LINE_2 = "01.02.2024 10:00:01,5 SOURCE=svc2 EVENTID=2 MESSAGE=second"


def _append(path, text: str) -> None:
    with open(path, "a", encoding="utf-8") as f:
        f.write(text)
        f.flush()


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "events.log"


@pytest.fixture
def forwarder():
    fwd = MagicMock()
    fwd.forward.return_value = 1
    return fwd


def _forwarded_ids(forwarder) -> list[int]:
    return [c.args[0].event_id for c in forwarder.forward.call_args_list]


class TestSplitLines:
    def test_mixed_terminators(self):
        assert split_lines("a\r\nb\nc") == ["a", "b", "c"]

    def test_drops_empty_fragments(self):
        assert split_lines("\n\na\n\r\n\nb\n") == ["a", "b"]

    def test_empty(self):
        assert split_lines("") == []


class TestPollOnce:
    def test_skips_existing_content(self, log_path, forwarder):
        log_path.write_text(LINE_1 + "\n")
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()
        assert w.poll_once() == 0
        forwarder.forward.assert_not_called()

    def test_forwards_appended_line(self, log_path, forwarder):
        log_path.write_text("")
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()

        _append(log_path, LINE_1 + "\n")
        assert w.poll_once() == 1

        event = forwarder.forward.call_args.args[0]
        assert event.source == "svc1"
        assert event.event_id == 1
        assert event.message == "first"
        assert event.raw_line == LINE_1

    def test_line_without_trailing_newline(self, log_path, forwarder):
        log_path.write_text("")
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()
        _append(log_path, LINE_1)
        assert w.poll_once() == 1

    def test_preserves_order(self, log_path, forwarder):
        log_path.write_text("")
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()
        _append(log_path, f"{LINE_1}\r\n{LINE_2}\n")
        assert w.poll_once() == 2
        assert _forwarded_ids(forwarder) == [1, 2]

    def test_position_tracks_appended_bytes(self, log_path, forwarder):
        log_path.write_text(LINE_1 + "\n")
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()
        before = w.cursor.position

        chunk = (LINE_2 + "\n").encode("utf-8")
        _append(log_path, chunk.decode("utf-8"))
        w.poll_once()
        assert w.cursor.position == before + len(chunk)

    def test_rejected_lines_are_dropped(self, log_path, forwarder):
        log_path.write_text("")
        metrics = MetricsService()
        w = LogWatcher(str(log_path), forwarder, threading.Event(), metrics=metrics)
        w.start_at_end()
        _append(log_path, f"garbage\n{LINE_2}\n")

        assert w.poll_once() == 1
        assert _forwarded_ids(forwarder) == [2]
        assert w.rejected == 1
        assert metrics.totals()["rejected_lines"] == 1
        # never retried
        assert w.poll_once() == 0
        assert forwarder.forward.call_count == 1

    def test_forward_failure_does_not_stop_batch(self, log_path, forwarder):
        log_path.write_text("")
        forwarder.forward.side_effect = [SessionError("no token"), 7]
        metrics = MetricsService()
        w = LogWatcher(str(log_path), forwarder, threading.Event(), metrics=metrics)
        w.start_at_end()
        _append(log_path, f"{LINE_1}\n{LINE_2}\n")

        assert w.poll_once() == 1
        assert _forwarded_ids(forwarder) == [1, 2]
        assert w.failed == 1
        assert w.forwarded == 1
        assert metrics.totals()["exceptions"] == 1

    def test_missing_file(self, log_path, forwarder):
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()
        assert w.poll_once() == 0

        _append(log_path, LINE_1 + "\n")
        assert w.poll_once() == 1

    def test_truncation_rereads_from_start(self, log_path, forwarder):
        log_path.write_text("x" * 499 + "\n")
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()
        assert w.cursor.position == 500

        short = "01.02.2024 10:00:00,1 SOURCE=a EVENTID=3 MESSAGE=b\n"
        log_path.write_text(short)
        assert w.poll_once() == 1
        assert w.cursor.position == len(short)
        assert _forwarded_ids(forwarder) == [3]

    def test_invalid_utf8_is_replaced(self, log_path, forwarder):
        log_path.write_text("")
        w = LogWatcher(str(log_path), forwarder, threading.Event())
        w.start_at_end()
        with open(log_path, "ab") as f:
            f.write(LINE_1.encode("utf-8") + b" \xff\n")
        assert w.poll_once() == 1
        assert forwarder.forward.call_args.args[0].message == "first \ufffd"


class TestRunLoop:
    def test_detects_appended_lines(self, log_path, forwarder):
        log_path.write_text("existing line\n")
        shutdown = threading.Event()
        w = LogWatcher(str(log_path), forwarder, shutdown, poll_interval=0.05)
        w.start()

        # Give watcher time to seek to end
        time.sleep(0.15)
        _append(log_path, f"{LINE_1}\n{LINE_2}\n")
        time.sleep(0.3)

        shutdown.set()
        w.join(timeout=2)

        assert _forwarded_ids(forwarder) == [1, 2]

    def test_file_created_after_start(self, tmp_path, forwarder):
        path = tmp_path / "later.log"
        shutdown = threading.Event()
        w = LogWatcher(str(path), forwarder, shutdown, poll_interval=0.05)
        w.start()

        time.sleep(0.15)
        _append(path, LINE_1 + "\n")
        time.sleep(0.3)

        shutdown.set()
        w.join(timeout=2)

        assert _forwarded_ids(forwarder) == [1]

    def test_loop_survives_unexpected_errors(self, log_path, forwarder):
        log_path.write_text("")
        shutdown = threading.Event()
        w = LogWatcher(str(log_path), forwarder, shutdown, poll_interval=0.05)
        w.cursor.read_new_bytes = MagicMock(side_effect=[OSError("locked"), b""] + [b""] * 100)
        w.start()

        time.sleep(0.3)
        shutdown.set()
        w.join(timeout=2)

        assert not w._thread.is_alive()
        assert w.cursor.read_new_bytes.call_count >= 2

    def test_unreadable_path_keeps_polling(self, tmp_path, forwarder):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("plain file")
        shutdown = threading.Event()
        w = LogWatcher(str(blocker / "events.log"), forwarder, shutdown, poll_interval=0.05)
        w.start()

        time.sleep(0.2)
        assert w._thread.is_alive()
        assert w.cursor.position == 0

        shutdown.set()
        w.join(timeout=2)
        assert not w._thread.is_alive()
        forwarder.forward.assert_not_called()

    def test_shutdown_responsiveness(self, log_path, forwarder):
        log_path.write_text("")
        shutdown = threading.Event()
        w = LogWatcher(str(log_path), forwarder, shutdown, poll_interval=5.0)
        w.start()

        time.sleep(0.1)
        shutdown.set()
        w.join(timeout=1)

        assert not w._thread.is_alive()
