"""Local, deterministic summarizers for ``summarize.text`` and ``summarize.tasks``.

Both take their input from ``args["text"]``. The orchestrator fills it with
the previous action's output when the router supplied no argument, and
``summarize.text`` falls back to the user's own message.
"""

from __future__ import annotations

import json
import re
from typing import Any

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

DEFAULT_MAX_SENTENCES = 3
MAX_LISTED_TASKS = 10


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def summarize_text(args: dict[str, Any]) -> dict[str, Any]:
    text = _as_text(args.get("text")).strip()
    if not text:
        return {"ok": False, "error": "Nothing to summarize"}
    max_sentences = int(args.get("max_sentences") or DEFAULT_MAX_SENTENCES)
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    summary = " ".join(sentences[:max_sentences])
    return {
        "ok": True,
        "data": {
            "summary": summary,
            "sentences": len(sentences),
            "words": len(text.split()),
        },
    }


def _extract_tasks(payload: Any) -> list[dict[str, Any]]:
    """Flatten a Google Tasks export (list, ``{"items": [...]}`` or a list of lists)."""
    if isinstance(payload, list):
        tasks: list[dict[str, Any]] = []
        for entry in payload:
            if isinstance(entry, dict) and "items" in entry:
                tasks.extend(_extract_tasks(entry))
            elif isinstance(entry, dict):
                tasks.append(entry)
        return tasks
    if isinstance(payload, dict):
        for key in ("items", "tasks"):
            if isinstance(payload.get(key), list):
                return _extract_tasks(payload[key])
    return []


def summarize_tasks(args: dict[str, Any]) -> dict[str, Any]:
    raw = args.get("text")
    if raw is None:
        return {"ok": False, "error": "Nothing to summarize"}
    if isinstance(raw, str):
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return {"ok": False, "error": "Tasks input is not valid JSON"}
    else:
        payload = raw

    tasks = _extract_tasks(payload)
    open_tasks = [t for t in tasks if t.get("status") != "completed"]
    titles = [str(t.get("title") or "(untitled)") for t in open_tasks]

    if not tasks:
        summary = "No tasks found."
    else:
        listed = ", ".join(titles[:MAX_LISTED_TASKS])
        more = len(titles) - MAX_LISTED_TASKS
        summary = f"{len(open_tasks)} open of {len(tasks)} tasks"
        if listed:
            summary += f": {listed}"
        if more > 0:
            summary += f" (+{more} more)"

    return {
        "ok": True,
        "data": {
            "summary": summary,
            "total": len(tasks),
            "open": len(open_tasks),
            "completed": len(tasks) - len(open_tasks),
            "open_titles": titles,
        },
    }
