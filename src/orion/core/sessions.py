"""Chat sessions and their message history."""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a session id does not refer to a live session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(session_id)

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class MessageRole(enum.StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Message:
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class Session:
    session_id: str
    user_id: str
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    messages: list[Message] = field(default_factory=list)

    def add_message(
        self, role: MessageRole, content: str, metadata: dict[str, Any] | None = None
    ) -> Message:
        message = Message(role=role, content=content, metadata=metadata or {})
        self.messages.append(message)
        return message


class SessionManager:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def start_session(self, user_id: str = "anonymous") -> str:
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = Session(session_id=session_id, user_id=user_id)
        logger.info("Session started: id=%s user=%s", session_id, user_id)
        return session_id

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def end_session(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
