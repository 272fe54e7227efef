"""Short-term per-session memory with TTL and size caps.

Items older than ``ttl_seconds`` and anything beyond the newest ``max_items``
are pruned on every write. When ``snapshot_dir`` is set each item is also
appended to ``memory-<session_id>.jsonl`` there.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class MemoryKind(enum.StrEnum):
    MESSAGE = "message"
    EVENT = "event"
    NOTE = "note"


@dataclass
class MemoryItem:
    kind: MemoryKind
    data: dict[str, Any] = field(default_factory=dict)
    ts: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {"ts": self.ts.isoformat(), "kind": self.kind.value, "data": self.data}


class MemoryStore:
    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_items: int = 200,
        snapshot_dir: Path | str | None = None,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_items = max_items
        self._snapshot_dir = Path(snapshot_dir) if snapshot_dir is not None else None
        self._items: dict[str, list[MemoryItem]] = {}

    def ensure_session(self, session_id: str) -> None:
        self._items.setdefault(session_id, [])

    def remember(self, session_id: str, item: MemoryItem) -> None:
        """Store *item* for *session_id*, prune, then snapshot it."""
        self.ensure_session(session_id)
        self._items[session_id].append(item)
        self.prune(session_id)
        self._snapshot(session_id, item)

    def get_recent(self, session_id: str, limit: int = 20) -> list[MemoryItem]:
        if limit <= 0:
            return []
        return self._items.get(session_id, [])[-limit:]

    def prune(self, session_id: str, *, now: datetime | None = None) -> None:
        items = self._items.get(session_id)
        if items is None:
            return
        cutoff = (now or datetime.now(UTC)) - self._ttl
        kept = [item for item in items if item.ts >= cutoff]
        self._items[session_id] = kept[-self._max_items :]

    def _snapshot(self, session_id: str, item: MemoryItem) -> None:
        if self._snapshot_dir is None:
            return
        try:
            self._snapshot_dir.mkdir(parents=True, exist_ok=True)
            path = self._snapshot_dir / f"memory-{session_id}.jsonl"
            with path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps({"session_id": session_id, **item.to_dict()}, default=str))
                fh.write("\n")
        except OSError:
            logger.warning("Failed to snapshot memory for session %s", session_id, exc_info=True)
