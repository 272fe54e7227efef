"""ActionEngine — sequential executor with a human-in-the-loop approval gate.

For each submitted action, in order:

1. Resolve the risk tier (default ``low``).
2. ``medium``/``high``: audit ``approval_requested`` and await the injected
   approval handler. A ``False`` decision ends the action with
   ``"User rejected"``; an expired approval ends it with ``"Approval expired"``.
3. Optional reflection guard; a block ends the action.
4. Audit ``tool_called`` and await the injected tool executor, converting any
   raise or ``ok=False`` outcome into a failed result.

Every action yields exactly one :class:`ActionResult`, in submission order,
and nothing raised by a collaborator escapes :meth:`ActionEngine.run`.
Sensitive argument values are redacted (one level deep) in audit payloads.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypedDict

from orion.core.approvals import ApprovalExpiredError
from orion.core.redaction import redact_args
from orion.core.telemetry import action_span

logger = logging.getLogger(__name__)

USER_REJECTED = "User rejected"
APPROVAL_EXPIRED = "Approval expired"
UNKNOWN_ERROR = "Unknown error"


class Risk(enum.StrEnum):
    """Risk tier of an action. Only ``low`` bypasses the approval gate."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def requires_approval(self) -> bool:
        return self is not Risk.LOW


class AuditEventType(enum.StrEnum):
    """Canonical audit event names emitted by the engine."""

    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_REJECTED = "approval_rejected"
    APPROVAL_EXPIRED = "approval_expired"
    REFLECTION_BLOCK = "reflection_block"
    TOOL_CALLED = "tool_called"
    RETRYABLE_ERROR = "retryable_error"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Action:
    """A single tool invocation request with an associated risk tier.

    ``args`` is copied into a read-only mapping, so later changes to the
    caller's dict do not reach a submitted action.
    """

    tool: str
    args: Mapping[str, Any] = field(default_factory=dict)
    risk: Risk = Risk.LOW

    def __post_init__(self) -> None:
        # Accept plain strings (and None) for risk; store the enum.
        object.__setattr__(self, "risk", Risk(self.risk or Risk.LOW))
        object.__setattr__(self, "args", MappingProxyType(dict(self.args or {})))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Action:
        return cls(tool=data["tool"], args=dict(data.get("args") or {}), risk=data.get("risk"))

    def to_dict(self) -> dict[str, Any]:
        return {"tool": self.tool, "args": dict(self.args), "risk": self.risk.value}


@dataclass
class ActionResult:
    """Outcome of one submitted action."""

    tool: str
    ok: bool
    output: Any = None
    error: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary, omitting unset fields."""
        d: dict[str, Any] = {"tool": self.tool, "ok": self.ok, "duration_ms": self.duration_ms}
        if self.output is not None:
            d["output"] = self.output
        if self.error is not None:
            d["error"] = self.error
        return d


class ToolExecution(TypedDict, total=False):
    """Shape returned by a tool executor."""

    ok: bool
    data: Any
    error: str


@dataclass(frozen=True)
class GuardVerdict:
    """Decision returned by a reflection guard."""

    ok: bool
    reason: str | None = None


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for tool-executor failures.

    The default of a single attempt disables retries entirely.
    """

    max_attempts: int = 1
    base_delay_ms: int = 250
    jitter_ms: int = 150

    def delay_seconds(self) -> float:
        jitter = random.randint(0, self.jitter_ms) if self.jitter_ms > 0 else 0
        return (self.base_delay_ms + jitter) / 1000


ToolExecutor = Callable[[str, dict[str, Any]], Awaitable[Mapping[str, Any]]]
ApprovalHandler = Callable[[Action], Awaitable[bool]]
AuditSink = Callable[[str, dict[str, Any]], None]
ReflectionGuard = Callable[[Action], Awaitable[GuardVerdict]]
ResultListener = Callable[[ActionResult], None]


def _error_message(exc: BaseException) -> str:
    return str(exc) or UNKNOWN_ERROR


class ActionEngine:
    """Run action lists one at a time through approval, guard and execution.

    Parameters
    ----------
    execute_tool:
        ``async (tool, args) -> {"ok": bool, "data"?: Any, "error"?: str}``.
    request_approval:
        ``async (action) -> bool``; only consulted for medium/high risk.
    audit:
        ``(event_name, payload) -> None``; failures are logged and ignored.
    guard:
        Optional ``async (action) -> GuardVerdict`` run after the gate.
    retry:
        Optional :class:`RetryPolicy`; defaults to a single attempt.
    on_result:
        Optional ``(result) -> None`` called as each action finishes, before
        the next one starts. Failures are logged and ignored.
    """

    def __init__(
        self,
        execute_tool: ToolExecutor,
        request_approval: ApprovalHandler,
        audit: AuditSink,
        *,
        guard: ReflectionGuard | None = None,
        retry: RetryPolicy | None = None,
        on_result: ResultListener | None = None,
    ) -> None:
        self._execute_tool = execute_tool
        self._request_approval = request_approval
        self._audit = audit
        self._guard = guard
        self._retry = retry or RetryPolicy()
        self._on_result = on_result

    async def run(self, actions: Iterable[Action]) -> list[ActionResult]:
        """Execute *actions* sequentially and return one result per action."""
        results: list[ActionResult] = []
        for action in actions:
            with action_span(action.tool, risk=action.risk.value):
                result = await self._run_one(action)
            results.append(result)
            if self._on_result is not None:
                try:
                    self._on_result(result)
                except Exception:
                    logger.warning("Result listener failed for %s", action.tool, exc_info=True)
        return results

    async def _run_one(self, action: Action) -> ActionResult:
        start = time.monotonic()
        risk = action.risk

        def elapsed() -> int:
            return int((time.monotonic() - start) * 1000)

        if risk.requires_approval:
            self._emit(
                AuditEventType.APPROVAL_REQUESTED,
                {"tool": action.tool, "args": redact_args(action.args), "risk": risk.value},
            )
            try:
                approved = await self._request_approval(action)
            except ApprovalExpiredError:
                duration_ms = elapsed()
                self._emit(
                    AuditEventType.APPROVAL_EXPIRED,
                    {"tool": action.tool, "duration_ms": duration_ms},
                )
                return ActionResult(
                    tool=action.tool, ok=False, error=APPROVAL_EXPIRED, duration_ms=duration_ms
                )
            except Exception as exc:
                logger.warning("Approval handler failed for %s", action.tool, exc_info=True)
                return self._fail(action, _error_message(exc), elapsed(), attempts=0)

            if not approved:
                duration_ms = elapsed()
                self._emit(
                    AuditEventType.APPROVAL_REJECTED,
                    {"tool": action.tool, "duration_ms": duration_ms},
                )
                return ActionResult(
                    tool=action.tool, ok=False, error=USER_REJECTED, duration_ms=duration_ms
                )

        if self._guard is not None:
            try:
                verdict = await self._guard(action)
            except Exception as exc:
                logger.warning("Reflection guard failed for %s", action.tool, exc_info=True)
                return self._fail(action, _error_message(exc), elapsed(), attempts=0)
            if not verdict.ok:
                duration_ms = elapsed()
                self._emit(
                    AuditEventType.REFLECTION_BLOCK,
                    {"tool": action.tool, "reason": verdict.reason, "duration_ms": duration_ms},
                )
                return ActionResult(
                    tool=action.tool,
                    ok=False,
                    error=f"blocked_by_guard: {verdict.reason}",
                    duration_ms=duration_ms,
                )

        self._emit(
            AuditEventType.TOOL_CALLED,
            {"tool": action.tool, "args": redact_args(action.args), "risk": risk.value},
        )

        max_attempts = max(1, self._retry.max_attempts)
        error: str | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                execution = await self._execute_tool(action.tool, dict(action.args))
            except Exception as exc:
                logger.info("Tool %s raised on attempt %d: %s", action.tool, attempt, exc)
                error = _error_message(exc)
            else:
                if not isinstance(execution, Mapping):
                    execution = {"ok": False, "error": UNKNOWN_ERROR}
                if execution.get("ok") is True:
                    duration_ms = elapsed()
                    self._emit(
                        AuditEventType.COMPLETED,
                        {"tool": action.tool, "attempts": attempt, "duration_ms": duration_ms},
                    )
                    return ActionResult(
                        tool=action.tool,
                        ok=True,
                        output=execution.get("data"),
                        duration_ms=duration_ms,
                    )
                error = execution.get("error")

            if attempt < max_attempts:
                self._emit(
                    AuditEventType.RETRYABLE_ERROR,
                    {"tool": action.tool, "attempt": attempt, "error": error},
                )
                await asyncio.sleep(self._retry.delay_seconds())

        return self._fail(action, error, elapsed(), attempts=max_attempts)

    def _fail(
        self, action: Action, error: str | None, duration_ms: int, *, attempts: int
    ) -> ActionResult:
        self._emit(
            AuditEventType.ERROR,
            {
                "tool": action.tool,
                "error": error,
                "attempts": attempts,
                "duration_ms": duration_ms,
            },
        )
        return ActionResult(tool=action.tool, ok=False, error=error, duration_ms=duration_ms)

    def _emit(self, event: AuditEventType, payload: dict[str, Any]) -> None:
        try:
            self._audit(event.value, payload)
        except Exception:
            logger.warning("Audit sink failed for event=%s", event.value, exc_info=True)
