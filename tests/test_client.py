from __future__ import annotations

import base64
import json
import logging
from pathlib import Path

import pytest

from rp_reporter.client import ReportingClient, status_to_level
from rp_reporter.session import LAUNCH_DISABLED, ReportingSession
from rp_reporter.transport.retry_policy import RetryExecutor
from rp_reporter.tree import ItemTree, ItemType, TestItem

from fakes import FakeTransport, error_response

CONFLICT = (
    "Start time of child ['2024-01-01T00:00:00'] item should be same or later than "
    "start time ['2023-12-31T23:59:59'] of the parent item/launch 'x'"
)
PARENT_MS = 1704067199000


def _client(settings, transport, wait, launch_id="launch-1") -> ReportingClient:
    return ReportingClient(
        settings,
        transport=transport,
        session=ReportingSession(launch_id=launch_id),
        executor=RetryExecutor(wait=wait),
    )


# -- launch -------------------------------------------------------------------


def test_start_launch_stores_id(settings, wait) -> None:
    transport = FakeTransport([{"id": "launch-42"}])
    client = _client(settings, transport, wait, launch_id=None)

    assert client.start_launch("nightly run", start_time=1000) == "launch-42"
    assert client.launch_id == "launch-42"
    assert transport.calls == [{
        "method": "POST",
        "path": "launch",
        "json": {
            "name": "Nightly",
            "start_time": 1000,
            "tags": ["smoke", "linux"],
            "description": "nightly run",
            "mode": "DEFAULT",
        },
        "files": None,
        "params": None,
    }]


def test_failed_launch_disables_reporting(settings, wait, caplog: pytest.LogCaptureFixture) -> None:
    transport = FakeTransport([ConnectionError("down")] * 3)
    client = _client(settings, transport, wait, launch_id=None)

    assert client.start_launch("nightly") is None
    assert client.session.launch_id == LAUNCH_DISABLED
    assert client.session.disabled
    assert len(transport.calls) == 3
    assert "Could not create a launch" in caplog.text


def test_disabled_session_makes_no_requests(settings, wait, tmp_path: Path) -> None:
    transport = FakeTransport()
    client = _client(settings, transport, wait, launch_id=LAUNCH_DISABLED)
    tree = ItemTree()
    node = tree.add(TestItem("Feature", ItemType.SUITE, start_time=1))
    item = TestItem("Running", ItemType.STEP, id="step-1")
    client.session.current_item = item
    attachment = tmp_path / "shot.png"
    attachment.write_bytes(b"png")

    assert client.start_launch("again") is None
    assert client.finish_launch() is None
    assert client.start_item(node) is None
    assert client.finish_item(item, "passed") is None
    assert client.send_log("passed", "hello") is None
    assert client.send_file("passed", attachment) is None
    assert client.item_id_of("Feature", tree.root) is None
    assert client.close_child_items() is None
    assert transport.calls == []


def test_finish_launch(client, transport) -> None:
    client.finish_launch(end_time=5000)

    assert transport.calls[0]["method"] == "PUT"
    assert transport.calls[0]["path"] == "launch/launch-1/finish"
    assert transport.calls[0]["json"] == {"end_time": 5000}


# -- items --------------------------------------------------------------------


def test_start_root_item(client, transport) -> None:
    transport.replies = [{"id": "suite-1"}]
    tree = ItemTree()
    node = tree.add(TestItem("Feature", ItemType.SUITE, start_time=10, description="d"))

    assert client.start_item(node) == "suite-1"
    assert transport.calls[0]["path"] == "item"
    assert transport.calls[0]["json"] == {
        "start_time": 10,
        "name": "Feature",
        "type": "SUITE",
        "launch_id": "launch-1",
        "description": "d",
    }


def test_start_nested_item_with_tags_and_long_name(client, transport) -> None:
    transport.replies = [{"id": "step-1"}]
    tree = ItemTree()
    suite = tree.add(TestItem("Feature", ItemType.SUITE, id="suite-1"))
    node = tree.add(TestItem("n" * 300, ItemType.STEP, start_time=20, tags={"b", "a"}), suite)

    assert client.start_item(node) == "step-1"
    call = transport.calls[0]
    assert call["path"] == "item/suite-1"
    assert len(call["json"]["name"]) == 255
    assert call["json"]["tags"] == ["a", "b"]


def test_start_item_repairs_start_time_conflict(client, transport, wait) -> None:
    transport.replies = [error_response(CONFLICT), {"id": "step-1"}]
    tree = ItemTree()
    suite = tree.add(TestItem("Feature", ItemType.SUITE, id="suite-1"))
    item = TestItem("Scenario", ItemType.STEP, start_time=5)
    node = tree.add(item, suite)

    assert client.start_item(node) == "step-1"
    assert len(transport.calls) == 2
    assert transport.calls[0]["json"]["start_time"] == 5
    assert transport.calls[1]["json"]["start_time"] == PARENT_MS + 1000
    assert transport.calls[1]["path"] == "item/suite-1"
    assert item.start_time == PARENT_MS + 1000
    assert client.session.last_used_time == PARENT_MS + 1000
    assert wait.delays == []


def test_conflict_repair_does_not_use_retry_budget(client, transport, wait) -> None:
    transport.replies = [
        error_response(CONFLICT),
        ConnectionError("1"),
        ConnectionError("2"),
        {"id": "step-1"},
    ]
    tree = ItemTree()
    node = tree.add(TestItem("Scenario", ItemType.STEP, start_time=5))

    assert client.start_item(node) == "step-1"
    assert len(transport.calls) == 4
    assert wait.delays == [10.0, 10.0]


def test_unmatched_error_is_ordinary_failure(client, transport, wait, caplog: pytest.LogCaptureFixture) -> None:
    transport.replies = [error_response("Launch not found", 404)] * 3
    tree = ItemTree()
    node = tree.add(TestItem("Scenario", ItemType.STEP, start_time=5))

    assert client.start_item(node) is None
    assert len(transport.calls) == 3
    assert all(c["json"]["start_time"] == 5 for c in transport.calls)
    assert client.session.last_used_time is None
    assert "Failed to execute request to [item] after 3 attempts." in caplog.text


def test_malformed_start_response_is_retried(client, transport) -> None:
    transport.replies = [{"unexpected": True}, {"id": "step-1"}]
    tree = ItemTree()
    node = tree.add(TestItem("Scenario", ItemType.STEP, start_time=5))

    assert client.start_item(node) == "step-1"
    assert len(transport.calls) == 2


def test_finish_item_is_idempotent(client, transport) -> None:
    item = TestItem("Scenario", ItemType.STEP, id="step-1")

    client.finish_item(item, "passed", end_time=100)
    client.finish_item(item, "passed", end_time=200)

    assert item.closed
    assert len(transport.calls) == 1
    assert transport.calls[0]["method"] == "PUT"
    assert transport.calls[0]["path"] == "item/step-1"
    assert transport.calls[0]["json"] == {"end_time": 100, "status": "passed"}


def test_finish_item_closes_even_when_request_fails(client, transport) -> None:
    transport.replies = [ConnectionError("down")] * 3
    item = TestItem("Scenario", ItemType.STEP, id="step-1")

    client.finish_item(item, "failed")

    assert item.closed
    assert len(transport.calls) == 3


def test_finish_item_skips_unstarted_and_missing_items(client, transport) -> None:
    client.finish_item(None)
    client.finish_item(TestItem("Not started"))

    assert transport.calls == []


def test_finish_item_force_issue(client, transport) -> None:
    client.finish_item(TestItem(id="step-1"), "failed", end_time=1, force_issue="flaky locator")

    assert transport.calls[0]["json"]["issue"] == {
        "issue_type": "AUTOMATION_BUG",
        "comment": "flaky locator",
    }


def test_finish_item_force_issue_ignored_when_passed(client, transport) -> None:
    client.finish_item(TestItem(id="step-1"), "passed", end_time=1, force_issue="flaky")

    assert "issue" not in transport.calls[0]["json"]


def test_finish_skipped_item_is_not_an_issue(client, transport) -> None:
    client.finish_item(TestItem(id="step-1"), "skipped", end_time=1)

    assert transport.calls[0]["json"] == {
        "end_time": 1,
        "status": "skipped",
        "issue": {"issue_type": "NOT_ISSUE"},
    }


def test_finish_open_items_closes_leaves_first(client, transport) -> None:
    tree = client.session.tree
    suite = tree.add(TestItem("Feature", ItemType.SUITE, id="suite-1"))
    tree.add(TestItem("Scenario", ItemType.STEP, id="step-1"), suite)

    assert client.finish_open_items("failed", end_time=1) == 2
    assert [c["path"] for c in transport.calls] == ["item/step-1", "item/suite-1"]


# -- logs ---------------------------------------------------------------------


@pytest.mark.parametrize(
    ("status", "level"),
    [
        ("passed", "INFO"),
        ("failed", "ERROR"),
        ("undefined", "ERROR"),
        ("pending", "ERROR"),
        ("error", "ERROR"),
        ("skipped", "WARN"),
        ("debug", "DEBUG"),
        ("something-else", "INFO"),
        (None, "INFO"),
    ],
)
def test_status_to_level(status, level) -> None:
    assert status_to_level(status) == level


def test_send_log(client, transport) -> None:
    client.session.current_item = TestItem("Scenario", id="step-1")

    client.send_log("failed", "boom", time=77)

    assert transport.calls[0]["path"] == "log"
    assert transport.calls[0]["json"] == {
        "item_id": "step-1",
        "time": 77,
        "level": "ERROR",
        "message": "boom",
    }


def test_send_log_without_open_item(client, transport) -> None:
    client.send_log("passed", "nobody listens")
    client.session.current_item = TestItem("Scenario", id="step-1", closed=True)
    client.send_log("passed", "still nobody")

    assert transport.calls == []


def test_send_file_from_path(client, transport, tmp_path: Path) -> None:
    client.session.current_item = TestItem("Scenario", id="step-1")
    attachment = tmp_path / "screen.png"
    attachment.write_bytes(b"\x89PNG")

    client.send_file("failed", attachment, time=5)

    files = transport.calls[0]["files"]
    name, (filename, body, content_type) = files[0]
    assert name == "json_request_part"
    assert filename is None
    assert content_type == "application/json"
    assert json.loads(body) == [{
        "level": "ERROR",
        "message": "screen.png",
        "item_id": "step-1",
        "time": 5,
        "file": {"name": "screen.png"},
    }]
    assert files[1] == ("file", ("screen.png", b"\x89PNG", "image/png"))


def test_send_file_from_base64_cleans_up(client, transport) -> None:
    client.session.current_item = TestItem("Scenario", id="step-1")
    tmp_paths: list[Path] = []
    original_upload = client._upload

    def spy(item, status, path, label, time, mime_type):
        tmp_paths.append(path)
        assert path.exists()
        original_upload(item, status, path, label, time, mime_type)

    client._upload = spy
    client.send_file("passed", base64.b64encode(b"%PDF").decode(), label="report", mime_type="application/pdf")

    assert tmp_paths[0].suffix == ".pdf"
    assert not tmp_paths[0].exists()
    assert not tmp_paths[0].parent.exists()
    data = json.loads(transport.calls[0]["files"][0][1][1])
    assert data[0]["message"] == "report"
    assert transport.calls[0]["files"][1][1][1] == b"%PDF"


def test_send_file_cleans_up_when_upload_fails(client, transport) -> None:
    client.session.current_item = TestItem("Scenario", id="step-1")
    transport.replies = [ConnectionError("down")] * 3
    tmp_paths: list[Path] = []
    original_upload = client._upload

    def spy(item, status, path, label, time, mime_type):
        tmp_paths.append(path)
        original_upload(item, status, path, label, time, mime_type)

    client._upload = spy
    client.send_file("passed", base64.b64encode(b"png").decode())

    assert len(transport.calls) == 3
    assert not tmp_paths[0].exists()


# -- parallel runs --------------------------------------------------------------


def test_item_id_of_root_level(client, transport) -> None:
    transport.replies = [{"content": [{"id": "suite-9"}, {"id": "suite-10"}]}]
    tree = ItemTree()

    assert client.item_id_of("Feature", tree.root) == "suite-9"
    assert transport.calls[0]["method"] == "GET"
    assert transport.calls[0]["params"] == {
        "filter.eq.launch": "launch-1",
        "filter.eq.name": "Feature",
        "filter.size.path": 0,
    }


def test_item_id_of_nested(client, transport) -> None:
    transport.replies = [{"content": []}]
    tree = ItemTree()
    suite = tree.add(TestItem("Feature", ItemType.SUITE, id="suite-1"))

    assert client.item_id_of("Scenario", suite) is None
    assert transport.calls[0]["params"] == {
        "filter.eq.launch": "launch-1",
        "filter.eq.parent": "suite-1",
        "filter.eq.name": "Scenario",
    }


def test_item_id_of_not_started_yet(client, transport) -> None:
    transport.replies = [{}]

    assert client.item_id_of("Feature", ItemTree().root) is None


def test_close_child_items_recurses_before_finishing(client, transport) -> None:
    next_url = "https://rp.example.com/api/v1/demo/item?page.page=2"
    transport.replies = [
        # launch level, page 1
        {
            "content": [
                {"id": "suite-1", "has_childs": True, "status": "IN_PROGRESS"},
                {"id": "suite-2", "has_childs": True, "status": "PASSED"},
                {"id": "step-0", "has_childs": False, "status": "IN_PROGRESS"},
            ],
            "links": [{"rel": "next", "href": next_url}],
        },
        # launch level, page 2
        {"content": [], "links": [{"rel": "self", "href": next_url}]},
        # children of suite-1
        {"content": [{"id": "test-1", "has_childs": True, "status": "IN_PROGRESS"}]},
        # children of test-1
        {"content": []},
        {},  # finish test-1
        {},  # finish suite-1
    ]

    client.close_child_items()

    calls = [(c["method"], c["path"]) for c in transport.calls]
    assert calls == [
        ("GET", "item"),
        ("GET", next_url),
        ("GET", "item"),
        ("GET", "item"),
        ("PUT", "item/test-1"),
        ("PUT", "item/suite-1"),
    ]
    assert transport.calls[0]["params"] == {
        "filter.eq.launch": "launch-1",
        "filter.size.path": 0,
        "page.page": 1,
        "page.size": 100,
    }
    assert transport.calls[1]["params"] is None
    assert transport.calls[2]["params"]["filter.eq.parent"] == "suite-1"
    assert transport.calls[3]["params"]["filter.eq.parent"] == "test-1"
    assert set(transport.calls[4]["json"]) == {"end_time"}


def test_close_child_items_stops_when_page_fails(client, transport, caplog: pytest.LogCaptureFixture) -> None:
    transport.replies = [ConnectionError("down")] * 3

    with caplog.at_level(logging.WARNING):
        client.close_child_items("suite-1")

    assert len(transport.calls) == 3


def test_send_file_with_undecodable_data(client, transport) -> None:
    client.session.current_item = TestItem("Scenario", id="step-1")

    client.send_file("passed", "not base64: é")

    assert transport.calls == []


def test_send_file_missing_path(client, transport, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    client.session.current_item = TestItem("Scenario", id="step-1")

    with caplog.at_level(logging.WARNING):
        client.send_file("failed", tmp_path / "gone.png")

    assert transport.calls == []
    assert "does not exist" in caplog.text


def test_item_id_of_null_content(client, transport) -> None:
    transport.replies = [{"content": None}]

    assert client.item_id_of("Feature", ItemTree().root) is None
    assert len(transport.calls) == 1


def test_item_id_of_entry_without_id_is_retried(client, transport, wait) -> None:
    transport.replies = [{"content": [{"name": "Feature"}]}] * 3

    assert client.item_id_of("Feature", ItemTree().root) is None
    assert len(transport.calls) == 3
    assert wait.delays == [10.0, 10.0]


def test_close_child_items_null_content(client, transport) -> None:
    transport.replies = [{"content": None}]

    client.close_child_items()

    assert [c["method"] for c in transport.calls] == ["GET"]


def test_close_child_items_malformed_page_is_retried(client, transport) -> None:
    transport.replies = [[[]]] * 3

    client.close_child_items("suite-1")

    assert [c["method"] for c in transport.calls] == ["GET"] * 3


def test_close_child_items_entry_without_id_is_retried(client, transport) -> None:
    transport.replies = [{"content": [{"has_childs": True, "status": "IN_PROGRESS"}]}] * 3

    client.close_child_items()

    assert [c["method"] for c in transport.calls] == ["GET"] * 3
