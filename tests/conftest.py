from __future__ import annotations

from typing import Any

import pytest

from inputguard.events import SecurityEventLog
from inputguard.models import RequestContext
from inputguard.sanitizer import GuardConfig


class RecordingEventLog(SecurityEventLog):
    """Keeps every recorded event in memory."""

    def __init__(self) -> None:
        self.events: list[tuple[RequestContext, str, dict[str, Any]]] = []

    def record(self, context: RequestContext, event_kind: str, details: dict[str, Any]) -> None:
        self.events.append((context, event_kind, details))

    @property
    def kinds(self) -> list[str]:
        return [kind for _, kind, _ in self.events]


class FailingEventLog(SecurityEventLog):
    def record(self, context: RequestContext, event_kind: str, details: dict[str, Any]) -> None:
        raise ConnectionError("event store unavailable")


@pytest.fixture
def event_log() -> RecordingEventLog:
    return RecordingEventLog()


@pytest.fixture
def guard_config(event_log: RecordingEventLog) -> GuardConfig:
    """Default tables and scoring, with events captured in memory."""
    return GuardConfig(event_log=event_log)


@pytest.fixture
def sql_attacks() -> list[str]:
    """Canonical query-injection payloads."""
    return [
        "'; DROP TABLE users; --",
        "' OR '1'='1",
        "1 OR 1=1",
        "admin' --",
        "1 UNION SELECT username, password FROM users",
        "1'; WAITFOR DELAY '0:0:5'--",
        "1 UNION SELECT 1",
        "SLEEP(5)",
        "WAITFOR DELAY '0:0:5'",
    ]


@pytest.fixture
def markup_attacks() -> list[str]:
    """Canonical markup/script-injection payloads."""
    return [
        "<script>alert(1)</script>",
        "<img src=x onerror=alert(1)>",
        '<iframe src="javascript:alert(1)"></iframe>',
        '<a href="javascript:alert(1)">x</a>',
        "<object data=x>",
        "<embed src=x>",
        "<iframe src=x>",
    ]


@pytest.fixture
def benign_inputs() -> list[str]:
    return [
        "john_doe",
        "user@example.com",
        "Normal text content",
        "O'Brien and sons",
        "Tom & Jerry",
    ]


@pytest.fixture
def failing_event_log() -> FailingEventLog:
    return FailingEventLog()
