"""Turns parsed log events into tickets, one API call per event."""

import logging

from incident_forwarder.metrics import MetricsService
from incident_forwarder.models import LogEvent, Ticket, TicketDefaults
from incident_forwarder.ticket_client import TicketClient

logger = logging.getLogger(__name__)


class IncidentForwarder:
    def __init__(self, client: TicketClient, defaults: TicketDefaults,
                 metrics: MetricsService | None = None):
        self._client = client
        self._defaults = defaults
        self._metrics = metrics

    def build_ticket(self, event: LogEvent) -> Ticket:
        content = (
            f"Time: {event.timestamp:%Y-%m-%d %H:%M:%S}\n"
            f"Source: {event.source}\n"
            f"EventId: {event.event_id}\n"
            f"Message: {event.message}\n"
            f"Raw: {event.raw_line}"
        )
        return Ticket(
            title=f"{event.source} (EventId={event.event_id})",
            content=content,
            category_id=self._defaults.category_id,
            recipient_user_id=self._defaults.recipient_user_id,
            entity_id=self._defaults.entity_id,
            status=self._defaults.status,
            priority=self._defaults.priority,
        )

    def forward(self, event: LogEvent) -> int:
        """Create a ticket for *event* and return its id.

        Client errors propagate to the caller; nothing is retried here.
        """
        ticket = self.build_ticket(event)
        logger.info("Creating ticket from log event: %s", ticket.title)
        if self._metrics:
            self._metrics.record_request()

        ticket_id = self._client.create(ticket)
        logger.info("Ticket created: id=%d (%s)", ticket_id, ticket.title)
        return ticket_id
