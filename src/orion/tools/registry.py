"""Tool catalogue — names, descriptions, policy tags and argument schemas.

Policy tags carry an optional risk prefix (``low:``, ``med:``, ``high:``)
followed by a capability label, e.g. ``med:calendar.write``. Untagged
``network`` tools are treated as medium risk; anything else is low.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from orion.core.engine import Risk

logger = logging.getLogger(__name__)

_RISK_PREFIXES = {"low": Risk.LOW, "med": Risk.MEDIUM, "medium": Risk.MEDIUM, "high": Risk.HIGH}


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    policy_tag: str
    schema: dict[str, Any] | None = field(default=None, hash=False, compare=False)

    @property
    def risk(self) -> Risk:
        prefix, sep, _ = self.policy_tag.partition(":")
        if sep and prefix in _RISK_PREFIXES:
            return _RISK_PREFIXES[prefix]
        if self.policy_tag == "network":
            return Risk.MEDIUM
        return Risk.LOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "policy_tag": self.policy_tag,
            "risk": self.risk.value,
            "schema": self.schema,
        }


def _object_schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


_STR = {"type": "string"}
_STR_LIST = {"type": "array", "items": {"type": "string"}}

BUILTIN_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition("fs.read", "Read the contents of a file (read-only)", "read"),
    ToolDefinition("fs.list", "List directory contents (read-only)", "read"),
    ToolDefinition("fs.search", "Search for files by pattern (read-only)", "read"),
    ToolDefinition("web.fetch", "HTTP GET a URL from an allowlist", "network"),
    ToolDefinition(
        "summarize.text",
        "Summarize a block of text",
        "low:local",
        _object_schema({"text": _STR, "max_sentences": {"type": "number"}}, []),
    ),
    ToolDefinition(
        "summarize.tasks",
        "Summarize a Google Tasks export",
        "low:local",
        _object_schema({"text": _STR}, []),
    ),
    ToolDefinition(
        "calendar.create_event",
        "Create a calendar event (Google or Microsoft Graph based on config)",
        "med:calendar.write",
        _object_schema(
            {
                "title": _STR,
                "date": {"type": "string", "description": "YYYY-MM-DD"},
                "time": {"type": "string", "description": "HH:MM (24h)"},
                "durationMins": {"type": "number", "minimum": 0},
                "description": _STR,
                "attendees": _STR_LIST,
                "sourceTaskId": _STR,
            },
            ["title", "date"],
        ),
    ),
    ToolDefinition(
        "calendar.update_event",
        "Update an existing calendar event",
        "med:calendar.write",
        _object_schema(
            {
                "eventId": _STR,
                "title": _STR,
                "date": _STR,
                "time": _STR,
                "durationMins": {"type": "number", "minimum": 0},
                "description": _STR,
                "attendees": _STR_LIST,
            },
            ["eventId"],
        ),
    ),
    ToolDefinition(
        "github.issue.create",
        "Create a GitHub issue in a repository",
        "med:github.write",
        _object_schema(
            {"owner": _STR, "repo": _STR, "title": _STR, "body": _STR, "labels": _STR_LIST},
            ["owner", "repo", "title"],
        ),
    ),
    ToolDefinition(
        "github.comment.create",
        "Create a comment on an issue or PR",
        "med:github.write",
        _object_schema(
            {"owner": _STR, "repo": _STR, "issue_number": {"type": "number"}, "body": _STR},
            ["owner", "repo", "issue_number", "body"],
        ),
    ),
    ToolDefinition(
        "github.search_prs",
        "Search pull requests by query string",
        "low:github.read",
        _object_schema(
            {
                "query": _STR,
                "per_page": {"type": "number", "minimum": 1, "maximum": 100, "default": 10},
                "page": {"type": "number", "minimum": 1, "default": 1},
            },
            ["query"],
        ),
    ),
    ToolDefinition(
        "notion.task.create",
        "Create a task/page in a Notion database",
        "med:notion.write",
        _object_schema(
            {"databaseId": _STR, "title": _STR, "properties": {"type": "object"}},
            ["databaseId", "title"],
        ),
    ),
    ToolDefinition(
        "notion.task.update",
        "Update a Notion task/page",
        "med:notion.write",
        _object_schema({"pageId": _STR, "properties": {"type": "object"}}, ["pageId"]),
    ),
    ToolDefinition(
        "linear.issue.create",
        "Create a Linear issue",
        "med:linear.write",
        _object_schema(
            {
                "teamId": _STR,
                "title": _STR,
                "description": _STR,
                "priority": {"type": "number"},
            },
            ["teamId", "title"],
        ),
    ),
    ToolDefinition(
        "linear.issue.update",
        "Update a Linear issue",
        "med:linear.write",
        _object_schema(
            {
                "issueId": _STR,
                "title": _STR,
                "description": _STR,
                "priority": {"type": "number"},
                "stateId": _STR,
            },
            ["issueId"],
        ),
    ),
)


class ToolRegistry:
    """Name-keyed catalogue of :class:`ToolDefinition` entries."""

    def __init__(self, url_allowlist: list[str] | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._url_allowlist = list(url_allowlist or [])
        for definition in BUILTIN_TOOLS:
            self.register(definition)

    def register(self, definition: ToolDefinition) -> None:
        if definition.name in self._tools:
            logger.debug("Replacing tool definition %s", definition.name)
        self._tools[definition.name] = definition

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def get_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def risk_for(self, name: str) -> Risk:
        """Risk tier of *name*; unknown tools are treated as high risk."""
        definition = self._tools.get(name)
        return definition.risk if definition is not None else Risk.HIGH

    def is_url_allowed(self, url: str) -> bool:
        """True when *url* starts with an allowlisted prefix. Empty list allows nothing."""
        return any(url.startswith(prefix) for prefix in self._url_allowlist)
