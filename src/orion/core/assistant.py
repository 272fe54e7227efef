"""Orion service — wires intent routing, the action engine and approvals.

One chat message flows as::

    route(message) ─▶ ActionEngine.run ─▶ ToolDispatcher
                          │
                          └─ gated action ─▶ ApprovalRegistry.request_approval
                                             EventBus "approval_requested"
                                             ... await POST /api/approvals ...

Lifecycle events (``message_started``, ``tool_call_started``,
``tool_call_completed``, ``audit``, ``approval_requested``,
``approval_resolved``, ``approval_expired``, ``action_result``,
``message_completed``) are published on the bus under the session id.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from orion.config import OrionConfig
from orion.core.approvals import ApprovalEventType, ApprovalExpiredError, ApprovalRegistry
from orion.core.audit import AuditLog
from orion.core.engine import (
    Action,
    ActionEngine,
    ActionResult,
    ApprovalHandler,
    AuditEventType,
    AuditSink,
    ReflectionGuard,
    RetryPolicy,
    ToolExecutor,
)
from orion.core.events import EventBus
from orion.core.intent import Intent, IntentRouter
from orion.core.logging import set_session_context
from orion.core.memory import MemoryItem, MemoryKind, MemoryStore
from orion.core.redaction import redact_args
from orion.core.sessions import MessageRole, Session, SessionManager
from orion.tools import FileSystemPolicy, FileSystemTools, ToolDispatcher, ToolRegistry, WebFetcher

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "I can read your tasks, summarize text, or fetch an allowlisted URL. "
    "Try 'show my tasks' or 'fetch https://example.com'."
)

_SUMMARIZE_REQUEST = re.compile(
    r"^\s*(?:please\s+)?(?:summarize|summarise|summary of)(?:\s+this)?\s*[:,-]?\s*",
    re.IGNORECASE,
)


@dataclass
class MessageOutcome:
    intent: Intent
    results: list[ActionResult] = field(default_factory=list)
    response: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent.value,
            "results": [r.to_dict() for r in self.results],
            "response": self.response,
        }


def _describe_output(output: Any) -> str:
    if isinstance(output, dict) and "summary" in output:
        return str(output["summary"])
    if isinstance(output, list):
        return f"{len(output)} item(s)"
    if isinstance(output, dict) and "status" in output:
        return f"HTTP {output['status']}"
    text = str(output)
    return text if len(text) <= 200 else text[:197] + "..."


def render_response(intent: Intent, results: list[ActionResult]) -> str:
    """Plain-text reply summarising *results*."""
    if intent is Intent.UNKNOWN or not results:
        return HELP_TEXT
    lines = []
    for result in results:
        if result.ok:
            lines.append(f"[ok] {result.tool}: {_describe_output(result.output)}")
        else:
            lines.append(f"[failed] {result.tool}: {result.error}")
    return "\n".join(lines)


class Orion:
    """Session-aware facade over routing, execution and approvals."""

    def __init__(
        self,
        *,
        dispatcher: ToolExecutor,
        bus: EventBus | None = None,
        approvals: ApprovalRegistry | None = None,
        sessions: SessionManager | None = None,
        memory: MemoryStore | None = None,
        router: IntentRouter | None = None,
        audit: AuditLog | None = None,
        retry: RetryPolicy | None = None,
        guard: ReflectionGuard | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.bus = bus or EventBus()
        self.approvals = approvals or ApprovalRegistry()
        self.sessions = sessions or SessionManager()
        self.memory = memory or MemoryStore()
        self.router = router or IntentRouter()
        self.audit = audit or AuditLog()
        self._retry = retry
        self._guard = guard

    @classmethod
    def from_config(cls, config: OrionConfig) -> Orion:
        """Build a fully wired service from *config*."""
        registry = ToolRegistry(url_allowlist=config.web.allowlist)
        dispatcher = ToolDispatcher(
            registry=registry,
            fs_tools=FileSystemTools(FileSystemPolicy.from_config(config.policy)),
            web_fetcher=WebFetcher(registry, timeout_seconds=config.web.timeout_seconds),
        )
        return cls(
            dispatcher=dispatcher,
            approvals=ApprovalRegistry(default_timeout=config.approvals.timeout_seconds),
            memory=MemoryStore(
                ttl_seconds=config.memory.ttl_seconds,
                max_items=config.memory.max_items,
                snapshot_dir=config.memory.snapshot_dir,
            ),
            audit=AuditLog(
                Path(config.audit.path) if config.audit.path else None,
                hashing=config.audit.hashing,
            ),
            retry=RetryPolicy(
                max_attempts=config.retry.max_attempts,
                base_delay_ms=config.retry.base_delay_ms,
                jitter_ms=config.retry.jitter_ms,
            ),
        )

    # ------------------------------------------------------------------
    # Sessions and memory
    # ------------------------------------------------------------------

    def start_session(self, user_id: str = "anonymous") -> str:
        session_id = self.sessions.start_session(user_id)
        self.memory.ensure_session(session_id)
        self.audit("session_start", {"session_id": session_id, "user_id": user_id})
        return session_id

    def get_session(self, session_id: str) -> Session | None:
        return self.sessions.get_session(session_id)

    def get_recent_memory(self, session_id: str, limit: int = 20) -> list[MemoryItem]:
        return self.memory.get_recent(session_id, limit)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def handle_message(self, session_id: str, message: str) -> MessageOutcome:
        """Route *message*, execute its actions and record the exchange.

        Raises
        ------
        SessionNotFoundError
            If *session_id* is not a live session.
        """
        session = self.sessions.require_session(session_id)
        set_session_context(session_id)

        session.add_message(MessageRole.USER, message)
        self.memory.remember(
            session_id,
            MemoryItem(MemoryKind.MESSAGE, {"role": "user", "content": message}),
        )

        route = self.router.route(message)
        self.bus.publish("message_started", session_id=session_id, intent=route.intent.value)
        logger.info("Message routed: intent=%s actions=%d", route.intent, len(route.actions))

        results = await self.run_actions(session_id, route.actions, message=message)
        response = render_response(route.intent, results)

        session.add_message(
            MessageRole.ASSISTANT,
            response,
            {"intent": route.intent.value, "results": [r.to_dict() for r in results]},
        )
        self.memory.remember(
            session_id,
            MemoryItem(MemoryKind.MESSAGE, {"role": "assistant", "content": response}),
        )
        self.bus.publish(
            "message_completed",
            session_id=session_id,
            intent=route.intent.value,
            ok=all(r.ok for r in results),
        )
        return MessageOutcome(intent=route.intent, results=results, response=response)

    async def run_actions(
        self, session_id: str, actions: Iterable[Action], *, message: str | None = None
    ) -> list[ActionResult]:
        """Execute *actions* for a session through a freshly wired engine.

        Each result is published as ``action_result`` and remembered as soon
        as its action finishes. *message* is the user text that
        ``summarize.text`` falls back to when nothing earlier produced output.
        """

        def record(result: ActionResult) -> None:
            self.bus.publish("action_result", session_id=session_id, **result.to_dict())
            self.memory.remember(session_id, MemoryItem(MemoryKind.EVENT, result.to_dict()))

        engine = ActionEngine(
            self._chained_executor(message),
            self._approval_handler(session_id),
            self._session_audit(session_id),
            guard=self._guard,
            retry=self._retry,
            on_result=record,
        )
        return await engine.run(actions)

    def _session_audit(self, session_id: str) -> AuditSink:
        """Audit sink that records to the audit log and relays to the bus.

        ``tool_called`` becomes ``tool_call_started``; ``completed`` and
        ``error`` become ``tool_call_completed``. ``error`` and the remaining
        engine events are also forwarded verbatim as ``audit``.
        ``approval_requested`` is left to the approval handler, which
        publishes it with the approval id.
        """

        def sink(event: str, payload: dict[str, Any]) -> None:
            self.audit(event, {**payload, "session_id": session_id})
            tool = payload.get("tool")
            if event == AuditEventType.APPROVAL_REQUESTED:
                return
            if event == AuditEventType.TOOL_CALLED and tool:
                self.bus.publish(
                    "tool_call_started", session_id=session_id, tool=tool, args=payload.get("args")
                )
                return
            if event in (AuditEventType.COMPLETED, AuditEventType.ERROR) and tool:
                self.bus.publish(
                    "tool_call_completed",
                    session_id=session_id,
                    tool=tool,
                    ok=event == AuditEventType.COMPLETED,
                    duration_ms=payload.get("duration_ms"),
                )
                if event == AuditEventType.COMPLETED:
                    return
            self.bus.publish("audit", session_id=session_id, event=event, metadata=payload)

        return sink

    def _chained_executor(self, message: str | None = None) -> ToolExecutor:
        """Wrap the dispatcher so summarizers receive the previous output.

        With no previous output, ``summarize.text`` summarizes *message*
        instead, minus a leading "summarize:" style request.
        """
        last_output: dict[str, Any] = {}

        async def execute(tool: str, args: dict[str, Any]) -> dict[str, Any]:
            if tool.startswith("summarize.") and "text" not in args:
                if "value" in last_output:
                    args = {**args, "text": last_output["value"]}
                elif tool == "summarize.text" and message:
                    args = {**args, "text": _SUMMARIZE_REQUEST.sub("", message, count=1)}
            execution = await self.dispatcher(tool, args)
            if execution.get("ok") is True:
                last_output["value"] = execution.get("data")
            return execution

        return execute

    def _approval_handler(self, session_id: str) -> ApprovalHandler:
        async def request_approval(action: Action) -> bool:
            approval_id, future = self.approvals.request_approval(
                action.tool,
                action.risk.value,
                session_id=session_id,
                args=dict(action.args),
            )
            self.bus.publish(
                ApprovalEventType.APPROVAL_REQUESTED.value,
                session_id=session_id,
                approval_id=approval_id,
                tool=action.tool,
                risk=action.risk.value,
                args=redact_args(action.args),
            )
            try:
                approved = await future
            except ApprovalExpiredError:
                self.bus.publish(
                    ApprovalEventType.APPROVAL_EXPIRED.value,
                    session_id=session_id,
                    approval_id=approval_id,
                    tool=action.tool,
                )
                raise
            self.bus.publish(
                ApprovalEventType.APPROVAL_RESOLVED.value,
                session_id=session_id,
                approval_id=approval_id,
                tool=action.tool,
                approved=approved,
            )
            return approved

        return request_approval

    async def aclose(self) -> None:
        """Expire outstanding approvals and release tool resources."""
        expired = self.approvals.expire_all()
        if expired:
            logger.info("Expired %d pending approval(s) on shutdown", expired)
        aclose = getattr(self.dispatcher, "aclose", None)
        if aclose is not None:
            await aclose()
