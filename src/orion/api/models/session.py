"""Pydantic models for sessions, chat and memory endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    user_id: str | None = Field(default=None, max_length=200)


class CreateSessionResponse(BaseModel):
    session_id: str


class MessageModel(BaseModel):
    role: str
    content: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionHistoryResponse(BaseModel):
    session_id: str
    user_id: str
    started_at: datetime
    messages: list[MessageModel]


class ChatRequest(BaseModel):
    session_id: str = Field(min_length=1)
    message: str = Field(min_length=1, max_length=10_000)


class ActionResultModel(BaseModel):
    tool: str
    ok: bool
    output: Any = None
    error: str | None = None
    duration_ms: int


class ChatResponse(BaseModel):
    response: str
    intent: str
    results: list[ActionResultModel]


class MemoryItemModel(BaseModel):
    ts: datetime
    kind: str
    data: dict[str, Any]


class MemoryRecentResponse(BaseModel):
    items: list[MemoryItemModel]
