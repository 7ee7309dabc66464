"""Report Portal reporting client.

Lifecycle operations for a launch and its item tree:
- start_launch / finish_launch
- start_item / finish_item
- send_log / send_file
- item_id_of / close_child_items (parallel runs)

Every operation runs its request under a RetryExecutor and never raises:
a report that cannot be delivered is logged and dropped. If the launch
cannot be created the session is disabled and every later call is a no-op.
"""

import base64
import json
import logging
import mimetypes
import tempfile
import time
from pathlib import Path
from typing import Any, Optional, Union

from .conflict import is_start_time_conflict, resolve_start_time_conflict
from .errors import TransportError
from .session import ReportingSession
from .settings import Settings
from .transport.http_client import ReportPortalHttpClient, Transport
from .transport.retry_policy import (
    FAIL,
    RETRY,
    PermanentFailure,
    RetryExecutor,
    Success,
)
from .tree import ItemNode, TestItem

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "error": "ERROR",
    "warn": "WARN",
    "info": "INFO",
    "debug": "DEBUG",
    "trace": "TRACE",
    "fatal": "FATAL",
    "unknown": "UNKNOWN",
}

PAGE_SIZE = 100


def now() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def _status_name(status) -> Optional[str]:
    if status is None:
        return None
    return str(getattr(status, "value", status)).lower()


def status_to_level(status) -> str:
    """Map a test status (or a level name) to a Report Portal log level."""
    name = _status_name(status)
    if name == "passed":
        return LOG_LEVELS["info"]
    if name in ("failed", "undefined", "pending", "error"):
        return LOG_LEVELS["error"]
    if name == "skipped":
        return LOG_LEVELS["warn"]
    return LOG_LEVELS.get(name, LOG_LEVELS["info"])


def _start_time_conflict(error: BaseException) -> str:
    if isinstance(error, TransportError) and is_start_time_conflict(error.message):
        return FAIL
    return RETRY


class ReportingClient:
    """Reports one launch to Report Portal."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[Transport] = None,
        session: Optional[ReportingSession] = None,
        executor: Optional[RetryExecutor] = None,
    ):
        """Initialize reporting client.

        Args:
            settings: Resolved reporter settings.
            transport: HTTP transport (default: ReportPortalHttpClient from settings).
            session: Launch state (default: a fresh session).
            executor: Retry executor (default: 3 attempts, 10s delay).
        """
        self.settings = settings
        self.transport = transport or ReportPortalHttpClient.from_settings(settings)
        self.session = session or ReportingSession()
        self.executor = executor or RetryExecutor()

    @property
    def launch_id(self) -> Optional[str]:
        return self.session.launch_id

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    def start_launch(self, description: Optional[str] = None, start_time: Optional[int] = None) -> Optional[str]:
        """Create the launch; on failure disable reporting for the run.

        Returns:
            The launch id, or None if reporting is disabled.
        """
        if self.session.disabled:
            return None

        data = {
            "name": self.settings.launch_name,
            "start_time": now() if start_time is None else start_time,
            "tags": self.settings.launch_tags,
            "description": description,
            "mode": self.settings.launch_mode,
        }
        outcome = self.executor.execute(
            lambda: self.transport.request("POST", "launch", json=data).json()["id"],
            "launch",
        )
        if isinstance(outcome, Success):
            self.session.launch_id = outcome.value
            return outcome.value

        logger.warning("[ReportPortal] Could not create a launch, no results will be sent to Report Portal.")
        self.session.disable()
        return None

    def finish_launch(self, end_time: Optional[int] = None) -> Optional[Any]:
        if self.session.disabled:
            return None

        data = {"end_time": now() if end_time is None else end_time}
        path = f"launch/{self.session.launch_id}/finish"
        outcome = self.executor.execute(
            lambda: self.transport.request("PUT", path, json=data).json(),
            path,
        )
        return outcome.value if isinstance(outcome, Success) else None

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def start_item(self, node: ItemNode) -> Optional[str]:
        """Start the item held by ``node`` under its parent item.

        A start time rejected for preceding the parent's is moved to one
        second after the parent's and the request is sent again with a fresh
        attempt budget.

        Returns:
            The item id assigned by Report Portal, or None.
        """
        if self.session.disabled or node.content is None:
            return None

        item = node.content
        data = {
            "start_time": item.start_time,
            "name": item.truncated_name,
            "type": None if item.type is None else str(getattr(item.type, "value", item.type)),
            "launch_id": self.session.launch_id,
            "description": item.description,
        }
        if item.tags:
            data["tags"] = sorted(item.tags)

        parent_id = node.parent_id
        path = "item" if parent_id is None else f"item/{parent_id}"

        outcome = self._post_item(path, data, classify=_start_time_conflict)
        if isinstance(outcome, PermanentFailure) and isinstance(outcome.reason, TransportError):
            repaired = resolve_start_time_conflict(outcome.reason.message, data)
            if repaired is not None:
                logger.warning("[ReportPortal] Shifting item [start_time] by 1 second is required.")
                item.start_time = repaired["start_time"]
                self.session.shift_watermark(repaired["start_time"])
                outcome = self._post_item(path, repaired)
                if isinstance(outcome, Success):
                    logger.warning("[ReportPortal][***] Retry with time shifted [start_time] was required.")

        return outcome.value if isinstance(outcome, Success) else None

    def _post_item(self, path: str, data: dict, classify=None):
        return self.executor.execute(
            lambda: self.transport.request("POST", path, json=data).json()["id"],
            path,
            classify=classify,
        )

    def finish_item(
        self,
        item: Optional[TestItem],
        status=None,
        end_time: Optional[int] = None,
        force_issue: Optional[str] = None,
    ) -> None:
        """Finish ``item``; closing it locally even if the request is dropped."""
        if self.session.disabled or item is None or item.id is None or item.closed:
            return

        status = _status_name(status)
        data: dict[str, Any] = {"end_time": now() if end_time is None else end_time}
        if status is not None:
            data["status"] = status
        if force_issue and status != "passed":
            data["issue"] = {"issue_type": "AUTOMATION_BUG", "comment": str(force_issue)}
        elif status == "skipped":
            data["issue"] = {"issue_type": "NOT_ISSUE"}

        path = f"item/{item.id}"
        self.executor.execute(
            lambda: self.transport.request("PUT", path, json=data),
            path,
        )
        item.closed = True

    def finish_open_items(self, status=None, end_time: Optional[int] = None) -> int:
        """Finish every started, unfinished item of the session tree, leaves first.

        Returns:
            Number of items finished.
        """
        nodes = self.session.tree.open_nodes()
        for node in nodes:
            self.finish_item(node.content, status, end_time)
        return len(nodes)

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def _log_target(self) -> Optional[TestItem]:
        item = self.session.current_item
        if self.session.disabled or item is None or item.closed or item.id is None:
            return None
        return item

    def send_log(self, status, message, time: Optional[int] = None) -> None:
        """Attach a log line to the current item."""
        item = self._log_target()
        if item is None:
            return

        data = {
            "item_id": item.id,
            "time": now() if time is None else time,
            "level": status_to_level(status),
            "message": str(message),
        }
        self.executor.execute(
            lambda: self.transport.request("POST", "log", json=data),
            "log",
        )

    def send_file(
        self,
        status,
        path_or_data: Union[str, bytes, Path],
        label: Optional[str] = None,
        time: Optional[int] = None,
        mime_type: str = "image/png",
    ) -> None:
        """Attach a file to the current item.

        Args:
            status: Status used to pick the log level.
            path_or_data: Path of the file to upload, or base64 encoded content.
            label: Log message (default: the file name).
            time: Log time in epoch ms (default: now).
            mime_type: MIME type of the content.
        """
        item = self._log_target()
        if item is None:
            return

        if _is_file(path_or_data):
            self._upload(item, status, Path(path_or_data), label, time, mime_type)
            return
        if isinstance(path_or_data, Path):
            logger.warning("[ReportPortal] Attachment file [%s] does not exist, not sending it.", path_or_data)
            return

        try:
            content = base64.b64decode(path_or_data)
        except (TypeError, ValueError) as e:
            logger.warning("[ReportPortal] Attachment is neither a file nor base64 data, not sending it: %s", e)
            return

        extension = mimetypes.guess_extension(mime_type) or ""
        with tempfile.TemporaryDirectory(prefix="rp_reporter_") as tmp_dir:
            path = Path(tmp_dir) / f"file{extension}"
            path.write_bytes(content)
            self._upload(item, status, path, label, time, mime_type)

    def _upload(self, item, status, path: Path, label, time, mime_type) -> None:
        data = {
            "level": status_to_level(status),
            "message": label or path.name,
            "item_id": item.id,
            "time": now() if time is None else time,
            "file": {"name": path.name},
        }

        def upload():
            files = [
                ("json_request_part", (None, json.dumps([data]), "application/json")),
                ("file", (path.name, path.read_bytes(), mime_type)),
            ]
            return self.transport.request("POST", "log", files=files)

        self.executor.execute(upload, "log")

    # ------------------------------------------------------------------
    # Parallel runs
    # ------------------------------------------------------------------

    def item_id_of(self, name: str, parent_node: ItemNode) -> Optional[str]:
        """Id of an item already started by another process, or None."""
        if self.session.disabled:
            return None

        params: dict[str, Any] = {"filter.eq.launch": self.session.launch_id}
        if parent_node.is_root:
            params["filter.eq.name"] = name
            params["filter.size.path"] = 0
        else:
            if parent_node.content is None or parent_node.content.id is None:
                return None
            params["filter.eq.parent"] = parent_node.content.id
            params["filter.eq.name"] = name

        outcome = self.executor.execute(
            lambda: _first_id(self.transport.request("GET", "item", params=params).json()),
            f"item?name={name}",
        )
        return outcome.value if isinstance(outcome, Success) else None

    def close_child_items(self, parent_id: Optional[str] = None) -> None:
        """Finish in-progress items with children under ``parent_id``.

        Walks every page under ``parent_id`` (the launch's top level when
        None), then for each in-progress parent closes its own children
        before finishing it.
        """
        if self.session.disabled:
            return

        params: Optional[dict[str, Any]] = {"filter.eq.launch": self.session.launch_id}
        if parent_id is None:
            params["filter.size.path"] = 0
        else:
            params["filter.eq.parent"] = parent_id
        params["page.page"] = 1
        params["page.size"] = PAGE_SIZE

        url: Optional[str] = "item"
        ids = []
        while url is not None:
            page_url, page_params = url, params
            outcome = self.executor.execute(
                lambda: _in_progress_parents(
                    self.transport.request("GET", page_url, params=page_params).json()
                ),
                page_url,
            )
            if not isinstance(outcome, Success):
                break

            page_ids, url = outcome.value
            ids.extend(page_ids)
            # next links carry their own query string
            params = None

        for item_id in ids:
            self.close_child_items(item_id)
            self.finish_item(TestItem(id=item_id))


def _first_id(body: dict) -> Optional[str]:
    """Id of the first item of a search result; raises on a malformed body."""
    content = body.get("content")
    if content is None or len(content) == 0:
        return None
    return content[0]["id"]


def _in_progress_parents(page: dict) -> tuple[list[str], Optional[str]]:
    """In-progress items with children on ``page``, and the next page link.

    Raises on a malformed page so that it is retried like a failed request.
    """
    ids = [
        entry["id"]
        for entry in page.get("content") or []
        if entry.get("has_childs") and entry.get("status") == "IN_PROGRESS"
    ]
    return ids, _next_link(page)


def _next_link(page: dict) -> Optional[str]:
    for link in page.get("links") or []:
        if link.get("rel") == "next":
            return link.get("href")
    return None


def _is_file(path_or_data) -> bool:
    if isinstance(path_or_data, Path):
        return path_or_data.is_file()
    if isinstance(path_or_data, bytes):
        return False
    try:
        return Path(path_or_data).is_file()
    except (OSError, ValueError):
        # base64 payloads can be too long to be a path
        return False
