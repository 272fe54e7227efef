"""Approval endpoints — list pending approvals and resolve them.

The UI learns about a pending approval from the ``approval_requested`` SSE
event and answers through ``POST /api/approvals``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from orion.api.models import ApiResponse
from orion.api.models.approval import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    PendingApprovalModel,
)
from orion.api.security import enforce_rate_limit, require_allowed_origin
from orion.core.assistant import Orion

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/approvals",
    tags=["approvals"],
    dependencies=[Depends(require_allowed_origin)],
)


def _get_orion() -> Orion:
    """Dependency stub — overridden at app startup or in tests."""
    raise RuntimeError("Orion service not initialized")


@router.get("")
async def list_pending_approvals(
    orion: Orion = Depends(_get_orion),
) -> ApiResponse[list[PendingApprovalModel]]:
    """List approvals still waiting for a decision, oldest first."""
    pending = [
        PendingApprovalModel.model_validate(p.to_dict()) for p in orion.approvals.list_pending()
    ]
    return ApiResponse[list[PendingApprovalModel]](data=pending)


@router.post(
    "",
    response_model=ApprovalDecisionResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def resolve_approval(
    body: ApprovalDecisionRequest,
    orion: Orion = Depends(_get_orion),
) -> JSONResponse:
    """Resolve a pending approval. 404 when the id is unknown or already resolved."""
    ok = orion.approvals.resolve_approval(body.approval_id, body.approve)
    if not ok:
        logger.info("Approval not pending: %s", body.approval_id)
    return JSONResponse(
        status_code=200 if ok else 404,
        content=ApprovalDecisionResponse(ok=ok).model_dump(),
    )
