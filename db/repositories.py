import logging
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import SecurityEvent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security events
# ---------------------------------------------------------------------------

async def create_security_event(
    db: AsyncSession,
    event_kind: str,
    severity: str,
    details: dict | None = None,
    field: str | None = None,
    client_ip: str | None = None,
    request_id: str | None = None,
) -> SecurityEvent:
    """Persist a single security event."""
    event = SecurityEvent(
        id=uuid.uuid4(),
        event_kind=event_kind,
        severity=severity,
        field=field,
        client_ip=client_ip,
        request_id=request_id,
        details=details or {},
    )
    db.add(event)
    await db.flush()
    return event


async def list_security_events(
    db: AsyncSession,
    limit: int = 100,
    event_kind: str | None = None,
) -> list[SecurityEvent]:
    """Most recent events first, optionally filtered by kind."""
    query = select(SecurityEvent)
    if event_kind:
        query = query.where(SecurityEvent.event_kind == event_kind)
    query = query.order_by(SecurityEvent.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def count_security_events(db: AsyncSession) -> dict[tuple[str, str], int]:
    """Event counts keyed by ``(event_kind, severity)``."""
    result = await db.execute(
        select(SecurityEvent.event_kind, SecurityEvent.severity, func.count())
        .group_by(SecurityEvent.event_kind, SecurityEvent.severity)
    )
    return {(kind, severity): count for kind, severity, count in result.all()}
