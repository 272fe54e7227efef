"""Orion tools package.

Read-only file-system tools, the allowlisted ``web.fetch`` tool, local
summarizers, the tool catalogue, and the dispatcher the engine executes
through.
"""

from orion.tools.dispatcher import ToolDispatcher
from orion.tools.fs import FileSystemPolicy, FileSystemTools, PolicyDecision
from orion.tools.registry import ToolDefinition, ToolRegistry
from orion.tools.web import WebFetcher

__all__ = [
    "FileSystemPolicy",
    "FileSystemTools",
    "PolicyDecision",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolRegistry",
    "WebFetcher",
]
