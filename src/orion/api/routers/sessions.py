"""Session, chat and memory endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Query

from orion.api.models.session import (
    ChatRequest,
    ChatResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    MemoryRecentResponse,
    SessionHistoryResponse,
)
from orion.api.security import enforce_rate_limit, require_allowed_origin
from orion.core.assistant import Orion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sessions"])


def _get_orion() -> Orion:
    """Dependency stub — overridden at app startup or in tests."""
    raise RuntimeError("Orion service not initialized")


@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest | None = Body(default=None),
    orion: Orion = Depends(_get_orion),
) -> CreateSessionResponse:
    user_id = (body.user_id if body else None) or "anonymous"
    return CreateSessionResponse(session_id=orion.start_session(user_id))


@router.get("/sessions/{session_id}/history")
async def get_session_history(
    session_id: str,
    orion: Orion = Depends(_get_orion),
) -> SessionHistoryResponse:
    session = orion.sessions.require_session(session_id)
    return SessionHistoryResponse.model_validate(
        {
            "session_id": session.session_id,
            "user_id": session.user_id,
            "started_at": session.started_at,
            "messages": [m.to_dict() for m in session.messages],
        }
    )


@router.post(
    "/chat",
    dependencies=[Depends(require_allowed_origin), Depends(enforce_rate_limit)],
)
async def chat(
    body: ChatRequest,
    orion: Orion = Depends(_get_orion),
) -> ChatResponse:
    """Handle one chat message. Blocks while gated actions await approval."""
    outcome = await orion.handle_message(body.session_id, body.message)
    return ChatResponse.model_validate(outcome.to_dict())


@router.get("/memory/{session_id}/recent")
async def get_recent_memory(
    session_id: str,
    limit: int = Query(default=20, ge=1, le=200),
    orion: Orion = Depends(_get_orion),
) -> MemoryRecentResponse:
    items = orion.get_recent_memory(session_id, limit)
    return MemoryRecentResponse.model_validate({"items": [i.to_dict() for i in items]})
