import json

import pytest
import requests

from incident_forwarder.models import TicketDefaults
from incident_forwarder.ticket_client import TicketClient

BASE_URL = "http://glpi.test/apirest.php"


def make_response(status_code: int = 200, body=None, text: str | None = None) -> requests.Response:
    """Build a real requests.Response with a JSON (or raw text) body."""
    resp = requests.Response()
    resp.status_code = status_code
    if text is None:
        text = json.dumps(body if body is not None else {})
    resp._content = text.encode("utf-8")
    resp.encoding = "utf-8"
    return resp


def ok_session(token: str = "sess-1") -> requests.Response:
    return make_response(200, {"session_token": token})


@pytest.fixture
def client():
    return TicketClient(BASE_URL, "app-tok", "user-tok", timeout=5.0)


@pytest.fixture
def ticket_defaults():
    return TicketDefaults(category_id=15, recipient_user_id=6, entity_id=0, status=1, priority=3)


@pytest.fixture
def event_line():
    return "01.02.2024 10:00:00,123 SOURCE=svc1 EVENTID=42 MESSAGE=disk full"
