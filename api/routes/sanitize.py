from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_guard_config, request_context
from inputguard.sanitizer import GuardConfig, sanitize, sanitize_batch
from schemas.api import (
    BatchSanitizeRequest,
    BatchSanitizeResponse,
    SanitizeRequest,
    SanitizeResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=SanitizeResponse)
async def sanitize_value(
    body: SanitizeRequest,
    request: Request,
    config: GuardConfig = Depends(get_guard_config),
):
    """Sanitize a single value.

    The verdict is always returned with status 200; callers reject the
    request themselves when ``safe`` is false.
    """
    ctx_in = body.context
    ctx = request_context(
        request,
        field=ctx_in.field if ctx_in else None,
        query_clause=ctx_in.query_clause if ctx_in else None,
        user_id=ctx_in.user_id if ctx_in else None,
    )
    result = sanitize(body.value, body.field_type, ctx, body.options, config=config)
    if not result.safe:
        logger.info(
            "Rejected %s value (score %d, %d warnings)",
            body.field_type,
            result.safety_score,
            len(result.warnings),
        )
    return SanitizeResponse.model_validate(result)


@router.post("/batch", response_model=BatchSanitizeResponse)
async def sanitize_fields(
    body: BatchSanitizeRequest,
    request: Request,
    config: GuardConfig = Depends(get_guard_config),
):
    """Sanitize a set of named fields and combine their verdicts."""
    ctx_in = body.context
    ctx = request_context(
        request,
        query_clause=ctx_in.query_clause if ctx_in else None,
        user_id=ctx_in.user_id if ctx_in else None,
    )
    result = sanitize_batch(body.fields, body.types, ctx, config=config)
    return BatchSanitizeResponse.model_validate(result)
