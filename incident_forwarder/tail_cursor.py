"""Tracks the byte offset already consumed from the watched log file.

The offset lives in memory only. A restart starts again from the end of the
file, so anything written while the process was down is never forwarded.
Handles file truncation by resetting the offset when the file shrinks.
"""

import logging
import os

logger = logging.getLogger(__name__)


class TailCursor:
    def __init__(self, file_path: str):
        self.file_path = file_path
        self.position: int = 0

    def seek_to_end(self) -> int:
        """Skip pre-existing content. Returns the starting position."""
        try:
            self.position = os.path.getsize(self.file_path)
        except FileNotFoundError:
            self.position = 0
        except OSError as e:
            logger.warning("Cannot stat log file %s (%s), starting at position 0",
                           self.file_path, e)
            self.position = 0
        return self.position

    def check_truncation(self, current_size: int) -> bool:
        """Reset the offset if the file shrank below it. Returns True on reset."""
        if current_size < self.position:
            logger.warning(
                "Log file was truncated: %s (old position=%d, new size=%d). "
                "Resetting position to 0, content may be re-read.",
                self.file_path, self.position, current_size,
            )
            self.position = 0
            return True
        return False

    def advance(self, new_position: int) -> None:
        if new_position < self.position:
            raise ValueError(
                f"cursor cannot move backwards ({self.position} -> {new_position})"
            )
        self.position = new_position

    def read_new_bytes(self) -> bytes:
        """Return bytes appended since the last read, b"" if none.

        The read stops at the length observed before opening the file; data
        appended during the read is picked up by the next call.
        """
        try:
            size = os.path.getsize(self.file_path)
        except FileNotFoundError:
            logger.debug("Log file not found: %s", self.file_path)
            return b""

        self.check_truncation(size)
        if size <= self.position:
            return b""

        with open(self.file_path, "rb") as f:
            f.seek(self.position)
            data = f.read(size - self.position)

        self.advance(self.position + len(data))
        return data
