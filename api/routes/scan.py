from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_guard_config, request_context
from inputguard.markup_scanner import scan_markup_injection
from inputguard.sanitizer import GuardConfig
from inputguard.sql_scanner import scan_injection
from schemas.api import MarkupScanRequest, ScanResponse, SqlScanRequest

router = APIRouter()


@router.post("/sql", response_model=ScanResponse)
async def scan_sql(
    body: SqlScanRequest,
    request: Request,
    config: GuardConfig = Depends(get_guard_config),
):
    """Report query-injection threats without changing the text."""
    ctx = request_context(request, field=body.field_label, query_clause=body.query_clause)
    verdict = scan_injection(body.text, ctx, body.field_label, policy=config.policy)
    return ScanResponse.model_validate(verdict)


@router.post("/markup", response_model=ScanResponse)
async def scan_markup(
    body: MarkupScanRequest,
    request: Request,
    config: GuardConfig = Depends(get_guard_config),
):
    """Report markup/script-injection threats for the given render context."""
    ctx = request_context(request, field=body.field_label)
    verdict = scan_markup_injection(
        body.text, ctx, body.field_label, body.render_context, policy=config.policy
    )
    return ScanResponse.model_validate(verdict)
