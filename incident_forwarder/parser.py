"""Regex-based parser for event log lines.

Expected format, one space between fields:

  DD.MM.YYYY HH:MM:SS,fff SOURCE=<token> EVENTID=<uint> MESSAGE=<text>

Fractional seconds carry 1 to 3 digits. MESSAGE consumes the rest of the line
and may itself contain ``KEY=value`` text. Anything else is rejected whole.
"""

import re
from datetime import datetime

from incident_forwarder.models import LogEvent, Parsed, ParseResult, Rejected

# Digits are ASCII only; \S stays Unicode-aware so NBSP and friends count as whitespace
_LINE_RE = re.compile(
    r'(?P<timestamp>[0-9]{2}\.[0-9]{2}\.[0-9]{4} [0-9]{2}:[0-9]{2}:[0-9]{2},[0-9]{1,3}) '
    r'SOURCE=(?P<source>\S+) '
    r'EVENTID=(?P<event_id>[0-9]+) '
    r'MESSAGE=(?P<message>.*)'
)

# Day-first numeric date with a comma decimal separator (ru-RU style)
_TIMESTAMP_FORMAT = "%d.%m.%Y %H:%M:%S,%f"


def _parse_timestamp(text: str) -> datetime | None:
    """Convert '01.02.2024 10:00:00,123' → datetime, None if not a real date."""
    try:
        return datetime.strptime(text, _TIMESTAMP_FORMAT)
    except ValueError:
        return None


def parse_line(line: str) -> ParseResult:
    """Parse a single log line.

    Returns ``Parsed`` carrying the LogEvent, or ``Rejected`` with a reason.
    Never raises for malformed input.
    """
    if not line:
        return Rejected(line=line, reason="empty line")

    m = _LINE_RE.fullmatch(line)
    if not m:
        return Rejected(line=line, reason="line does not match the event grammar")

    timestamp = _parse_timestamp(m.group("timestamp"))
    if timestamp is None:
        return Rejected(line=line, reason=f"invalid timestamp {m.group('timestamp')!r}")

    return Parsed(LogEvent(
        timestamp=timestamp,
        source=m.group("source"),
        event_id=int(m.group("event_id")),
        message=m.group("message"),
        raw_line=line,
    ))
