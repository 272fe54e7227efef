"""Audit sink for engine lifecycle events.

Every event is logged through the standard logger. When a path is configured
the event is also appended as a JSON line, optionally hash-chained so that
tampering with an earlier line breaks every later ``hash``.

Fire-and-forget: write failures are logged and swallowed so that audit
logging never blocks or breaks the primary operation.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import deque
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


def compute_entry_hash(prev_hash: str, event: str, payload: dict[str, Any], ts: str) -> str:
    """SHA-256 over the previous hash and the canonical JSON of the entry."""
    body = json.dumps(
        {"prev_hash": prev_hash, "event": event, "payload": payload, "ts": ts},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(body.encode()).hexdigest()


class AuditLog:
    """Callable audit sink: ``audit(event_name, payload)``.

    Parameters
    ----------
    path:
        JSONL file to append to. ``None`` keeps the log in memory only.
    hashing:
        Chain each entry's hash to the previous one.
    actor:
        Recorded on every entry.
    keep:
        Number of recent entries retained in memory for inspection.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        hashing: bool = True,
        actor: str = "orion-core",
        keep: int = 500,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._hashing = hashing
        self._actor = actor
        self._prev_hash = GENESIS_HASH
        self._recent: deque[dict[str, Any]] = deque(maxlen=keep)

    def __call__(self, event: str, payload: dict[str, Any]) -> None:
        ts = datetime.now(UTC).isoformat()
        entry: dict[str, Any] = {
            "ts": ts,
            "actor": self._actor,
            "event": event,
            "payload": payload,
        }
        if self._hashing:
            entry["prev_hash"] = self._prev_hash
            entry["hash"] = compute_entry_hash(self._prev_hash, event, payload, ts)
            self._prev_hash = entry["hash"]

        self._recent.append(entry)
        logger.info("audit %s", event, extra={"audit_event": event, "audit_payload": payload})

        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, default=str) + "\n")
        except OSError:
            logger.warning("Failed to write audit entry: event=%s", event, exc_info=True)

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Return up to *limit* most recent entries, oldest first."""
        if limit <= 0:
            return []
        return list(self._recent)[-limit:]


def verify_chain(lines: list[dict[str, Any]]) -> bool:
    """Check that a sequence of hash-chained entries is intact."""
    prev = GENESIS_HASH
    for entry in lines:
        if entry.get("prev_hash") != prev:
            return False
        expected = compute_entry_hash(prev, entry["event"], entry["payload"], entry["ts"])
        if entry.get("hash") != expected:
            return False
        prev = expected
    return True
