from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from db import repositories
from schemas.api import SecurityEventResponse, SecurityEventSummaryResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=list[SecurityEventResponse])
async def list_security_events(
    limit: int = Query(100, ge=1, le=1000),
    event_kind: str | None = Query(None, max_length=64),
    db: AsyncSession = Depends(get_db),
):
    """Return the most recent recorded security events."""
    events = await repositories.list_security_events(db, limit=limit, event_kind=event_kind)
    return [SecurityEventResponse.model_validate(e) for e in events]


@router.get("/summary", response_model=SecurityEventSummaryResponse)
async def get_security_event_summary(
    db: AsyncSession = Depends(get_db),
):
    """Return event counts per kind and per severity."""
    counts = await repositories.count_security_events(db)

    events_by_kind: dict[str, int] = {}
    events_by_severity: dict[str, int] = {}
    for (kind, severity), count in counts.items():
        events_by_kind[kind] = events_by_kind.get(kind, 0) + count
        events_by_severity[severity] = events_by_severity.get(severity, 0) + count

    return SecurityEventSummaryResponse(
        total_events=sum(counts.values()),
        events_by_kind=events_by_kind,
        events_by_severity=events_by_severity,
    )
