"""Pydantic models for the approvals API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PendingApprovalModel(BaseModel):
    """A pending approval as shown to the UI. Args are redacted."""

    approval_id: str
    tool: str
    risk: str
    session_id: str | None = None
    args: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    expires_at: datetime | None = None


class ApprovalDecisionRequest(BaseModel):
    """Request body for resolving an approval."""

    approval_id: str = Field(min_length=1)
    approve: bool


class ApprovalDecisionResponse(BaseModel):
    ok: bool
