from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from inputguard.field_types import resolve_field_type
from inputguard.models import QueryClause, RenderContext, Severity

MAX_INPUT_LENGTH = 100_000

Scalar = str | int | float | bool | None


# --- Request context ---

class ContextIn(BaseModel):
    user_id: str | None = Field(None, max_length=255)
    field: str | None = Field(None, max_length=255)
    query_clause: QueryClause | None = None


# --- Shared result schemas ---

class ThreatResponse(BaseModel):
    kind: str
    message: str
    severity: Severity
    context: str
    matched_fragment: str | None = None
    signature: str | None = None

    model_config = {"from_attributes": True}


class WarningResponse(BaseModel):
    kind: str
    message: str
    severity: Severity
    threats: list[ThreatResponse] = []
    field: str | None = None

    model_config = {"from_attributes": True}


# --- Sanitize Schemas ---

class SanitizeRequest(BaseModel):
    value: Scalar = None
    field_type: str = Field("plainText", max_length=32)
    context: ContextIn | None = None
    options: dict[str, Any] | None = None

    @field_validator("value")
    @classmethod
    def _bounded(cls, value: Scalar) -> Scalar:
        if isinstance(value, str) and len(value) > MAX_INPUT_LENGTH:
            raise ValueError(f"value longer than {MAX_INPUT_LENGTH} characters")
        return value

    @field_validator("field_type")
    @classmethod
    def _known_field_type(cls, value: str) -> str:
        resolve_field_type(value)
        return value


class SanitizeResponse(BaseModel):
    safe: bool
    sanitized_value: str
    warnings: list[WarningResponse]
    safety_score: int
    original_length: int
    sanitized_length: int
    changed: bool
    error: str | None = None

    model_config = {"from_attributes": True}


class BatchSanitizeRequest(BaseModel):
    fields: dict[str, Scalar]
    types: dict[str, str] = {}
    context: ContextIn | None = None

    @field_validator("types")
    @classmethod
    def _known_field_types(cls, value: dict[str, str]) -> dict[str, str]:
        for field_type in value.values():
            resolve_field_type(field_type)
        return value


class BatchSanitizeResponse(BaseModel):
    safe: bool
    per_field: dict[str, SanitizeResponse]
    warnings: list[WarningResponse]
    sanitized_values: dict[str, str]

    model_config = {"from_attributes": True}


# --- Scan Schemas ---

class SqlScanRequest(BaseModel):
    text: str = Field(..., max_length=MAX_INPUT_LENGTH)
    field_label: str = Field("unknown", max_length=255)
    query_clause: QueryClause | None = None


class MarkupScanRequest(BaseModel):
    text: str = Field(..., max_length=MAX_INPUT_LENGTH)
    field_label: str = Field("unknown", max_length=255)
    render_context: RenderContext = RenderContext.HTML


class ScanResponse(BaseModel):
    safe: bool
    threats: list[ThreatResponse]
    risk_score: int
    severity: Severity

    model_config = {"from_attributes": True}


# --- Security Event Schemas ---

class SecurityEventResponse(BaseModel):
    id: UUID
    event_kind: str
    severity: str
    field: str | None = None
    client_ip: str | None = None
    request_id: str | None = None
    details: dict = {}
    created_at: datetime

    model_config = {"from_attributes": True}


class SecurityEventSummaryResponse(BaseModel):
    total_events: int
    events_by_kind: dict[str, int]
    events_by_severity: dict[str, int]
