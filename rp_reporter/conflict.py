"""Repair of rejected item start times.

Report Portal refuses an item that starts before its parent with::

    Start time of child ['<child-ts>'] item should be same or later than
    start time ['<parent-ts>'] of the parent item/launch '<name>'

``<parent-ts>`` is formatted as ``%a %b %d %H:%M:%S %z %Y``
(``Mon Jan 01 10:00:00 +0000 2024``); ISO-8601 timestamps are accepted too,
naive ones read as UTC. The repaired start time is one second after the
parent's.
"""

import re
from datetime import datetime, timezone
from typing import Optional

SHIFT_MS = 1000

SERVER_TIME_FORMAT = "%a %b %d %H:%M:%S %z %Y"

CONFLICT_PATTERN = re.compile(
    r"Start time of child \['(.+)'\] item should be same or later than "
    r"start time \['(.+)'\] of the parent item/launch '.+'"
)


def parse_server_time(value: str) -> Optional[int]:
    """Epoch milliseconds for a server timestamp, or None if unparseable."""
    try:
        parsed = datetime.strptime(value, SERVER_TIME_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def parent_start_time(message: Optional[str]) -> Optional[int]:
    """Parent start time (epoch ms) named in a conflict message.

    Returns None when ``message`` is not a start-time conflict or its parent
    timestamp cannot be parsed.
    """
    if not message:
        return None
    match = CONFLICT_PATTERN.search(message)
    if not match:
        return None
    return parse_server_time(match.group(2))


def is_start_time_conflict(message: Optional[str]) -> bool:
    return parent_start_time(message) is not None


def resolve_start_time_conflict(message: Optional[str], payload: dict) -> Optional[dict]:
    """Corrected copy of an item start payload, or None if there is no fix."""
    parent_ms = parent_start_time(message)
    if parent_ms is None:
        return None
    repaired = dict(payload)
    repaired["start_time"] = parent_ms + SHIFT_MS
    return repaired
