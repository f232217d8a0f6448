"""Incident records parsed from the event log and the tickets built from them."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union


@dataclass(frozen=True)
class LogEvent:
    timestamp: datetime
    source: str          # origin subsystem token, no whitespace
    event_id: int        # non-negative
    message: str         # free text, may contain KEY=value pairs
    raw_line: str        # original unparsed line


@dataclass(frozen=True)
class Parsed:
    event: LogEvent


@dataclass(frozen=True)
class Rejected:
    line: str
    reason: str


ParseResult = Union[Parsed, Rejected]


@dataclass(frozen=True)
class TicketDefaults:
    """Static ticket fields that never come from the log line."""

    category_id: int = 15
    recipient_user_id: int = 6
    entity_id: int = 0
    status: int = 1
    priority: int = 3


@dataclass(frozen=True)
class Ticket:
    title: str
    content: str
    category_id: int
    recipient_user_id: int
    entity_id: int
    status: int
    priority: int

    def to_payload(self) -> dict[str, Any]:
        """Request body for the ticket creation endpoint."""
        return {
            "input": {
                "name": self.title,
                "content": self.content,
                "itilcategories_id": self.category_id,
                "users_id_recipient": self.recipient_user_id,
                "entities_id": self.entity_id,
                "status": self.status,
                "priority": self.priority,
            }
        }
