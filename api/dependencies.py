from functools import lru_cache

from fastapi import Request

from config import Settings, get_settings
from inputguard.events import LoggingEventLog, NullEventLog, SecurityEventLog
from inputguard.models import QueryClause, RequestContext
from inputguard.sanitizer import GuardConfig
from inputguard.scoring import ScoringPolicy
from services.security_events import DatabaseEventLog


def build_event_log(sink: str) -> SecurityEventLog:
    sink = sink.strip().lower()
    if sink == "database":
        return DatabaseEventLog()
    if sink == "none":
        return NullEventLog()
    return LoggingEventLog()


def build_guard_config(settings: Settings, event_log: SecurityEventLog) -> GuardConfig:
    policy = ScoringPolicy(
        critical_weight=settings.critical_weight,
        high_weight=settings.high_weight,
        medium_weight=settings.medium_weight,
        low_weight=settings.low_weight,
        safe_threshold=settings.safe_threshold,
    )
    return GuardConfig(
        policy=policy,
        event_log=event_log,
        max_passes=settings.max_convergence_passes,
        preview_length=settings.event_preview_length,
    )


@lru_cache
def get_event_log() -> SecurityEventLog:
    return build_event_log(get_settings().security_event_sink)


@lru_cache
def get_guard_config() -> GuardConfig:
    return build_guard_config(get_settings(), get_event_log())


def request_context(
    request: Request,
    field: str | None = None,
    query_clause: QueryClause | None = None,
    user_id: str | None = None,
) -> RequestContext:
    """Build the engine's request context from the incoming HTTP request."""
    return RequestContext(
        client_ip=request.client.host if request.client else None,
        user_id=user_id,
        request_id=request.headers.get("x-request-id"),
        field=field,
        query_clause=query_clause,
    )
