"""Security-event log contract and the in-process implementations.

Recording is fire-and-forget: ``dispatch_event`` never raises, whatever the
sink does.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from inputguard.models import RequestContext

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("inputguard.security")


class SecurityEventLog(ABC):
    """Sink for structured security events."""

    @abstractmethod
    def record(self, context: RequestContext, event_kind: str, details: dict[str, Any]) -> None:
        ...


class LoggingEventLog(SecurityEventLog):
    """Writes each event as a warning on the ``inputguard.security`` logger."""

    def record(self, context: RequestContext, event_kind: str, details: dict[str, Any]) -> None:
        security_logger.warning(
            "%s field=%s ip=%s request=%s details=%s",
            event_kind,
            context.field,
            context.client_ip,
            context.request_id,
            details,
        )


class NullEventLog(SecurityEventLog):
    def record(self, context: RequestContext, event_kind: str, details: dict[str, Any]) -> None:
        return None


_DEFAULT_EVENT_LOG = LoggingEventLog()


def get_default_event_log() -> SecurityEventLog:
    return _DEFAULT_EVENT_LOG


def dispatch_event(
    event_log: SecurityEventLog,
    context: RequestContext,
    event_kind: str,
    details: dict[str, Any],
) -> None:
    """Hand an event to *event_log*; failures are logged and dropped."""
    try:
        event_log.record(context, event_kind, details)
    except Exception:
        logger.warning("Failed to record security event %s", event_kind, exc_info=True)
