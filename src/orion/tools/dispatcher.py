"""Tool dispatcher — the engine's ``execute_tool`` callable.

Routes a tool name to its handler and always answers with the executor shape
``{"ok": bool, "data"?: Any, "error"?: str}``. Handler exceptions are not
caught here; the engine records them as failed results.
"""

from __future__ import annotations

import logging
from typing import Any

from orion.tools.fs import FileSystemTools
from orion.tools.registry import ToolRegistry
from orion.tools.summarize import summarize_tasks, summarize_text
from orion.tools.web import WebFetcher

logger = logging.getLogger(__name__)


class ToolDispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        fs_tools: FileSystemTools,
        web_fetcher: WebFetcher,
    ) -> None:
        self.registry = registry
        self._fs = fs_tools
        self._web = web_fetcher

    async def __call__(self, tool: str, args: dict[str, Any]) -> dict[str, Any]:
        return await self.execute(tool, args)

    async def execute(self, tool: str, args: dict[str, Any]) -> dict[str, Any]:
        if tool.startswith("shell."):
            return {"ok": False, "error": "Shell operations not supported"}

        if self.registry.get_tool(tool) is None:
            return {"ok": False, "error": f"Unknown tool: {tool}"}

        if tool.startswith("fs."):
            return await self._fs.execute(tool, args)
        if tool == "web.fetch":
            return await self._web.fetch(args)
        if tool == "summarize.text":
            return summarize_text(args)
        if tool == "summarize.tasks":
            return summarize_tasks(args)

        # Registered connector without a configured backend (calendar, github, ...).
        logger.info("Tool %s is registered but no connector is configured", tool)
        return {"ok": False, "error": f"Tool not available: {tool}"}

    async def aclose(self) -> None:
        await self._web.aclose()
