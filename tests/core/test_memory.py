"""Tests for orion.core.memory."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from orion.core.memory import MemoryItem, MemoryKind, MemoryStore

pytestmark = pytest.mark.unit


def _note(text: str, ts: datetime | None = None) -> MemoryItem:
    item = MemoryItem(MemoryKind.NOTE, {"text": text})
    if ts is not None:
        item.ts = ts
    return item


class TestMemoryStore:
    def test_unknown_session_is_empty(self):
        assert MemoryStore().get_recent("nope") == []

    def test_remember_and_recent(self):
        store = MemoryStore()
        for i in range(5):
            store.remember("s1", _note(str(i)))

        recent = store.get_recent("s1", limit=2)

        assert [item.data["text"] for item in recent] == ["3", "4"]

    def test_sessions_are_isolated(self):
        store = MemoryStore()
        store.remember("s1", _note("a"))
        store.remember("s2", _note("b"))

        assert [i.data["text"] for i in store.get_recent("s1")] == ["a"]

    def test_max_items_cap(self):
        store = MemoryStore(max_items=3)
        for i in range(10):
            store.remember("s1", _note(str(i)))

        assert [i.data["text"] for i in store.get_recent("s1", limit=50)] == ["7", "8", "9"]

    def test_ttl_prunes_old_items(self):
        store = MemoryStore(ttl_seconds=60)
        old = datetime.now(UTC) - timedelta(minutes=5)
        store.remember("s1", _note("stale", ts=old))
        store.remember("s1", _note("fresh"))

        assert [i.data["text"] for i in store.get_recent("s1")] == ["fresh"]

    def test_prune_with_explicit_now(self):
        store = MemoryStore(ttl_seconds=60)
        store.remember("s1", _note("a"))

        store.prune("s1", now=datetime.now(UTC) + timedelta(minutes=2))

        assert store.get_recent("s1") == []

    def test_non_positive_limit(self):
        store = MemoryStore()
        store.remember("s1", _note("a"))
        assert store.get_recent("s1", limit=0) == []

    def test_snapshot_appends_jsonl(self, tmp_path):
        store = MemoryStore(snapshot_dir=tmp_path)
        store.remember("s1", _note("a"))
        store.remember("s1", MemoryItem(MemoryKind.MESSAGE, {"role": "user", "content": "hi"}))

        lines = (tmp_path / "memory-s1.jsonl").read_text().splitlines()

        assert len(lines) == 2
        second = json.loads(lines[1])
        assert second["session_id"] == "s1"
        assert second["kind"] == "message"
        assert second["data"] == {"role": "user", "content": "hi"}

    def test_item_to_dict(self):
        item = MemoryItem(MemoryKind.EVENT, {"tool": "fs.read"})
        data = item.to_dict()
        assert data["kind"] == "event"
        assert data["data"] == {"tool": "fs.read"}
        assert datetime.fromisoformat(data["ts"]) == item.ts
