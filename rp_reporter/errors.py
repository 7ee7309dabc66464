"""Exception types raised by rp_reporter."""

import json
from typing import Optional


class ReporterError(Exception):
    """Base class for reporter errors."""


class SettingsError(ReporterError):
    """Settings file or environment is missing required values."""


class TransportError(ReporterError):
    """Report Portal answered with a non-success HTTP status."""

    def __init__(self, status_code: int, body: str, method: str = "", url: str = ""):
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url
        super().__init__(f"{method} {url} returned {status_code}: {body}".strip())

    @property
    def message(self) -> Optional[str]:
        """The ``message`` field of a JSON error body, if there is one."""
        try:
            data = json.loads(self.body)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        message = data.get("message")
        return message if isinstance(message, str) else None
