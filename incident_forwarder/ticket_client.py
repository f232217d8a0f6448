"""Client for the session-based ticketing REST API.

Every ticket is created under its own session:

  GET  initSession   App-Token, Authorization: user_token <token>  → session_token
  POST <resource>    App-Token, Session-Token, {"input": {...}}   → id | data.id
  GET  killSession   App-Token, Session-Token                      (best effort)

The client never retries. Retry policy, if any, belongs to the caller.
"""

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator

import requests

from incident_forwarder.models import Ticket

logger = logging.getLogger(__name__)


class TicketClientError(Exception):
    """Base class for ticketing API failures."""


class SessionError(TicketClientError):
    """initSession failed or returned no usable session token."""


class TicketCreationError(TicketClientError):
    """Ticket creation failed or the response carried no ticket id."""


def _decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def _extract_ticket_id(body: Any) -> int | None:
    """Find the ticket id at the top level or under ``data``, first match wins."""
    if not isinstance(body, dict):
        return None
    candidates = [body.get("id")]
    data = body.get("data")
    if isinstance(data, dict):
        candidates.append(data.get("id"))
    for value in candidates:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


class TicketClient:
    def __init__(self, base_url: str, app_token: str, user_token: str,
                 timeout: float = 30.0, resource: str = "Ticket",
                 session: requests.Session | None = None):
        self._base_url = base_url.rstrip("/")
        self._app_token = app_token
        self._user_token = user_token
        self._timeout = timeout
        self._resource = resource
        self._http = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, headers: dict[str, str],
                 **kwargs) -> requests.Response:
        url = self._url(path)
        logger.info("%s %s ->", method, url)
        response = self._http.request(method, url, headers=headers,
                                      timeout=self._timeout, **kwargs)
        logger.info("%s %s <- %d %s", method, url, response.status_code, response.text)
        return response

    def init_session(self) -> str:
        """Open a session and return its token."""
        headers = {
            "App-Token": self._app_token,
            "Authorization": f"user_token {self._user_token}",
        }
        try:
            response = self._request("GET", "initSession", headers)
        except requests.RequestException as e:
            raise SessionError(f"initSession request failed: {e}") from e

        if not response.ok:
            raise SessionError(
                f"initSession returned {response.status_code}. Body={response.text}"
            )

        body = _decode_json(response.text)
        if not isinstance(body, dict) or "session_token" not in body:
            raise SessionError(f"initSession: session_token not found. Body={response.text}")

        token = body["session_token"]
        if not isinstance(token, str) or not token.strip():
            raise SessionError(f"initSession: session_token empty. Body={response.text}")
        return token

    def kill_session(self, session_token: str) -> None:
        """Close a session. Failures are logged, never raised."""
        headers = {"App-Token": self._app_token, "Session-Token": session_token}
        try:
            self._request("GET", "killSession", headers)
        except requests.RequestException as e:
            logger.warning("killSession failed: %s", e)

    @contextmanager
    def session(self) -> Iterator[str]:
        """Acquire a session token and always release it on exit."""
        token = self.init_session()
        try:
            yield token
        finally:
            self.kill_session(token)

    def create_ticket(self, title: str, content: str, category_id: int,
                      recipient_user_id: int, entity_id: int, status: int,
                      priority: int) -> int:
        """Create one ticket from its fields and return its id."""
        return self.create(Ticket(
            title=title,
            content=content,
            category_id=category_id,
            recipient_user_id=recipient_user_id,
            entity_id=entity_id,
            status=status,
            priority=priority,
        ))

    def create(self, ticket: Ticket) -> int:
        """Create *ticket* under a fresh session and return its id."""
        payload = ticket.to_payload()

        with self.session() as token:
            headers = {
                "App-Token": self._app_token,
                "Session-Token": token,
                "Content-Type": "application/json",
            }
            logger.info("Create %s payload: %s", self._resource, json.dumps(payload))
            try:
                response = self._request("POST", self._resource, headers,
                                         data=json.dumps(payload).encode("utf-8"))
            except requests.RequestException as e:
                raise TicketCreationError(f"create {self._resource} request failed: {e}") from e

            if not response.ok:
                raise TicketCreationError(
                    f"create {self._resource} returned {response.status_code}. "
                    f"Body={response.text}"
                )

            ticket_id = _extract_ticket_id(_decode_json(response.text))
            if ticket_id is None:
                raise TicketCreationError(
                    f"create {self._resource}: ticket id not found. Body={response.text}"
                )
            return ticket_id

    def close(self) -> None:
        self._http.close()
