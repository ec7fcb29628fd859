"""Ticket identifier parsing and relative-time helpers."""

import datetime
import logging
import re
from typing import Optional

from .exceptions import TicketInputError

logger = logging.getLogger(__name__)

TICKET_URL_PATTERN = re.compile(r"conversations?/(\d+)")
TICKET_HASH_PATTERN = re.compile(r"#(\d+)")
RELATIVE_TIME_PATTERN = re.compile(r"^(\d+)([dhm])$")

_RELATIVE_UNITS = {
    "d": "days",
    "h": "hours",
    "m": "minutes",
}


def extract_ticket_id_from_url(url: str) -> Optional[str]:
    """Return the numeric id from a ``.../conversation(s)/<id>`` URL, or None."""
    match = TICKET_URL_PATTERN.search(url)
    return match.group(1) if match else None


def parse_ticket_input(value: str) -> str:
    """
    Resolve user input to a ticket id.

    Accepts a bare number (``"4821"``), a conversation URL, or free text
    containing ``#<digits>`` (``"ticket #77"``).

    Raises:
        TicketInputError: If none of the forms match. The error keeps the raw input.
    """
    candidate = value.strip()
    if candidate.isdigit():
        return candidate

    if "http" in candidate:
        ticket_id = extract_ticket_id_from_url(candidate)
        if ticket_id:
            return ticket_id

    match = TICKET_HASH_PATTERN.search(candidate)
    if match:
        return match.group(1)

    raise TicketInputError(value)


def format_iso(moment: datetime.datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    utc = moment.astimezone(datetime.timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_relative_time(value: str, now: Optional[datetime.datetime] = None) -> str:
    """
    Resolve shorthand such as ``7d``, ``24h`` or ``30m`` to an ISO timestamp
    that many units before ``now``. Anything else is returned unchanged.
    """
    match = RELATIVE_TIME_PATTERN.match(value)
    if not match:
        return value

    amount, unit = int(match.group(1)), match.group(2)
    reference = now or datetime.datetime.now(datetime.timezone.utc)
    resolved = reference - datetime.timedelta(**{_RELATIVE_UNITS[unit]: amount})
    logger.debug(f"Resolved relative time '{value}' to {format_iso(resolved)}")
    return format_iso(resolved)
