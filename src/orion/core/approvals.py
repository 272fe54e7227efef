"""Pending-approval registry — correlates a gated action with a later decision.

The engine side calls :meth:`ApprovalRegistry.request_approval` and awaits the
returned future; the decision arrives out-of-band (typically an HTTP call from
the UI) through :meth:`ApprovalRegistry.resolve_approval`.

Lifecycle of an entry::

    requested ──resolve(id, bool)──▶ removed, future → bool
        │
        ├──deadline elapsed / expire()──▶ removed, future → ApprovalExpiredError
        └──awaiting caller cancelled────▶ removed

An id is resolved at most once; a second resolution finds nothing and
returns False.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from orion.core.redaction import redact_args

logger = logging.getLogger(__name__)


class ApprovalEventType(enum.StrEnum):
    """Event names published on the bus for approval lifecycle steps."""

    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RESOLVED = "approval_resolved"
    APPROVAL_EXPIRED = "approval_expired"


class ApprovalExpiredError(Exception):
    """Raised into an approval future whose deadline passed without a decision."""

    def __init__(self, approval_id: str) -> None:
        self.approval_id = approval_id
        super().__init__(f"Approval {approval_id} expired without a decision")


@dataclass(eq=False)
class PendingApproval:
    """An approval request awaiting an external yes/no decision."""

    approval_id: str
    tool: str
    risk: str
    future: asyncio.Future[bool]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    session_id: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    expires_at: datetime | None = None
    timeout_handle: asyncio.TimerHandle | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary (args are already redacted)."""
        return {
            "approval_id": self.approval_id,
            "tool": self.tool,
            "risk": self.risk,
            "session_id": self.session_id,
            "args": self.args,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


class ApprovalRegistry:
    """In-memory registry of pending approvals keyed by generated id.

    Parameters
    ----------
    default_timeout:
        Deadline in seconds applied when ``request_approval`` is called
        without an explicit ``timeout``. ``None`` or ``0`` means no deadline.
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        self._pending: dict[str, PendingApproval] = {}
        self._default_timeout = default_timeout or None

    def request_approval(
        self,
        tool: str,
        risk: str,
        *,
        session_id: str | None = None,
        args: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> tuple[str, asyncio.Future[bool]]:
        """Register a pending approval and return ``(approval_id, future)``.

        Must be called from within a running event loop. The stored args are
        redacted; the caller keeps the originals.
        """
        loop = asyncio.get_running_loop()
        approval_id = uuid.uuid4().hex
        future: asyncio.Future[bool] = loop.create_future()

        effective_timeout = timeout if timeout is not None else self._default_timeout
        now = datetime.now(UTC)
        pending = PendingApproval(
            approval_id=approval_id,
            tool=tool,
            risk=risk,
            future=future,
            created_at=now,
            session_id=session_id,
            args=redact_args(args or {}),
        )
        if effective_timeout:
            pending.expires_at = now + timedelta(seconds=effective_timeout)
            pending.timeout_handle = loop.call_later(
                effective_timeout, self.expire, approval_id
            )

        future.add_done_callback(lambda f: self._on_future_done(approval_id, f))
        self._pending[approval_id] = pending
        logger.info(
            "Approval requested: id=%s tool=%s risk=%s timeout=%s",
            approval_id,
            tool,
            risk,
            effective_timeout,
        )
        return approval_id, future

    def resolve_approval(self, approval_id: str, decision: bool) -> bool:
        """Settle a pending approval with *decision*.

        Returns True if the id was pending (and is now removed), False if it
        is unknown or was already resolved.
        """
        pending = self._pending.pop(approval_id, None)
        if pending is None:
            logger.info("Approval resolution ignored for unknown id=%s", approval_id)
            return False

        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        if not pending.future.done():
            pending.future.set_result(bool(decision))
        logger.info("Approval resolved: id=%s approved=%s", approval_id, bool(decision))
        return True

    def expire(self, approval_id: str) -> bool:
        """Expire a pending approval, failing its future with ApprovalExpiredError."""
        pending = self._pending.pop(approval_id, None)
        if pending is None:
            return False

        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        if not pending.future.done():
            pending.future.set_exception(ApprovalExpiredError(approval_id))
        logger.warning("Approval expired: id=%s tool=%s", approval_id, pending.tool)
        return True

    def expire_all(self) -> int:
        """Expire every pending approval. Returns the number expired."""
        return sum(1 for approval_id in list(self._pending) if self.expire(approval_id))

    def get_pending_approvals(self) -> set[str]:
        """Return the ids of all currently unresolved approvals."""
        return set(self._pending)

    def get(self, approval_id: str) -> PendingApproval | None:
        return self._pending.get(approval_id)

    def list_pending(self) -> list[PendingApproval]:
        """Return pending approvals, oldest first."""
        return sorted(self._pending.values(), key=lambda p: p.created_at)

    def _on_future_done(self, approval_id: str, future: asyncio.Future[bool]) -> None:
        # A cancelled await abandons the request; drop the entry so it cannot leak.
        if future.cancelled():
            pending = self._pending.pop(approval_id, None)
            if pending is not None and pending.timeout_handle is not None:
                pending.timeout_handle.cancel()
