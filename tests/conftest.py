from __future__ import annotations

import pytest

from fakes import FakeTransport, RecordingWait
from rp_reporter.client import ReportingClient
from rp_reporter.session import ReportingSession
from rp_reporter.settings import Settings
from rp_reporter.transport.retry_policy import RetryExecutor


@pytest.fixture
def settings() -> Settings:
    return Settings(
        uuid="token-123",
        endpoint="https://rp.example.com/",
        project="demo",
        launch="Nightly",
        tags=["smoke", "linux"],
    )


@pytest.fixture
def wait() -> RecordingWait:
    return RecordingWait()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def client(settings, transport, wait) -> ReportingClient:
    return ReportingClient(
        settings,
        transport=transport,
        session=ReportingSession(launch_id="launch-1"),
        executor=RetryExecutor(wait=wait),
    )
