from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from db import repositories
from db.database import async_session
from inputguard.events import LoggingEventLog, SecurityEventLog
from inputguard.models import RequestContext

logger = logging.getLogger(__name__)


class DatabaseEventLog(SecurityEventLog):
    """Persists security events to the ``security_events`` table.

    ``record`` is called from synchronous sanitizer code, so the write is
    scheduled as a task on the running event loop and never awaited by the
    caller. Outside an event loop the event is logged instead.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session):
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()
        self._fallback = LoggingEventLog()

    def record(self, context: RequestContext, event_kind: str, details: dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._fallback.record(context, event_kind, details)
            return

        task = loop.create_task(self._persist(context, event_kind, dict(details)))
        # The loop only keeps weak references to tasks
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(
        self, context: RequestContext, event_kind: str, details: dict[str, Any]
    ) -> None:
        try:
            async with self._session_factory() as db:
                await repositories.create_security_event(
                    db,
                    event_kind=event_kind,
                    severity=str(details.get("severity", "high")),
                    details=details,
                    field=context.field,
                    client_ip=context.client_ip,
                    request_id=context.request_id,
                )
                await db.commit()
        except Exception:
            logger.error("Failed to persist security event %s", event_kind, exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled write; used at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
