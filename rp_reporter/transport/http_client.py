"""HTTP client for the Report Portal project API.

Implements the transport the reporting client talks to:
- POST launch, PUT launch/:id/finish
- POST item[/:parent_id], PUT item/:id, GET item?filter...
- POST log (JSON or multipart)

Paths are relative to the project URL (``<endpoint>/api/v1/<project>``).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from ..errors import TransportError

logger = logging.getLogger(__name__)

SUCCESS_CODES = range(200, 208)


@dataclass
class TransportResponse:
    """Status code and raw body of a successful request."""
    status_code: int
    body: str

    def json(self) -> Any:
        return json.loads(self.body) if self.body else {}


class Transport(Protocol):
    """What the reporting client needs from a transport."""

    def request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        files: Optional[list] = None,
        params: Optional[dict] = None,
    ) -> TransportResponse:
        ...


class ReportPortalHttpClient:
    """Signed HTTP requests against one Report Portal project.

    Every request carries the bearer token. Non-2xx answers are logged
    together with the offending request and raised as TransportError;
    network failures propagate as ``requests.RequestException``.
    """

    def __init__(
        self,
        project_url: str,
        api_token: str,
        verify_ssl: bool = True,
        request_timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize HTTP client.

        Args:
            project_url: Project API base URL (e.g., https://rp/api/v1/my_project).
            api_token: Report Portal user token (UUID).
            verify_ssl: Verify TLS certificates.
            request_timeout: Per-request timeout in seconds.
            session: Session to use instead of a new one.
        """
        self.project_url = project_url.rstrip("/")
        self.verify_ssl = verify_ssl
        self.request_timeout = request_timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "Accept": "application/json",
        })

    @classmethod
    def from_settings(cls, settings) -> "ReportPortalHttpClient":
        return cls(
            settings.project_url,
            settings.api_token,
            verify_ssl=not settings.ssl_verification_disabled,
        )

    def url_for(self, path: str) -> str:
        """Absolute URL for ``path``; absolute URLs are returned unchanged."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.project_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        files: Optional[list] = None,
        params: Optional[dict] = None,
    ) -> TransportResponse:
        """Send one request.

        Args:
            method: HTTP method (GET, POST, PUT).
            path: Path relative to the project URL, or an absolute URL.
            json: JSON body.
            files: Multipart parts in ``requests`` form
                (``[(name, (filename, content, content_type)), ...]``).
            params: Query string parameters.

        Returns:
            TransportResponse for 2xx answers.

        Raises:
            TransportError: On a non-2xx answer.
            requests.RequestException: On network failure.
        """
        url = self.url_for(path)
        response = self._session.request(
            method,
            url,
            json=json,
            files=files,
            params=params,
            verify=self.verify_ssl,
            timeout=self.request_timeout,
        )

        if response.status_code not in SUCCESS_CODES:
            logger.warning("[ReportPortal] ReportPortal API returned %s", response.text)
            logger.warning("[ReportPortal] Offending request method/URL: %s %s", method.upper(), response.url or url)
            if files is None:
                logger.warning("[ReportPortal] Offending request payload: %s", json)
            raise TransportError(response.status_code, response.text, method.upper(), url)

        return TransportResponse(status_code=response.status_code, body=response.text)

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
