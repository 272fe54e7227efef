"""Read-only file-system tools guarded by an allow/deny path policy.

Only ``fs.read``, ``fs.list`` and ``fs.search`` exist. Paths are resolved
before checking; the deny list is consulted first, then the allowed roots.
Blocking file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from orion.config import PolicyConfig, parse_file_size

logger = logging.getLogger(__name__)

READ_ONLY_OPERATIONS = frozenset({"fs.read", "fs.list", "fs.search"})

RESTRICTED_PATTERN_FRAGMENTS = (
    "/etc/",
    "/sys/",
    "/proc/",
    "/.git/",
    "/node_modules/",
    "/.ssh/",
    "/password",
    "/secret",
)

MAX_SEARCH_RESULTS = 200


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str | None = None
    sanitized: str | None = None


def _strip_glob(pattern: str) -> str:
    return pattern.replace("**", "")


class FileSystemPolicy:
    def __init__(self, fs_allow: list[str], fs_deny: list[str], max_file_size: str = "1MB") -> None:
        self._allowed_roots = [Path(_strip_glob(p)).resolve() for p in fs_allow]
        self._denied = [Path(_strip_glob(p)).resolve() for p in fs_deny]
        self._max_file_size_label = max_file_size
        self.max_file_size = parse_file_size(max_file_size)

    @classmethod
    def from_config(cls, config: PolicyConfig) -> FileSystemPolicy:
        return cls(config.fs_allow, config.fs_deny, config.max_file_size)

    @property
    def allowed_roots(self) -> list[Path]:
        return list(self._allowed_roots)

    def validate_path(self, path: str | os.PathLike[str]) -> PolicyDecision:
        """Check *path* against the deny list, then the allowed roots."""
        try:
            resolved = Path(path).resolve()
        except (OSError, RuntimeError, ValueError) as exc:
            return PolicyDecision(False, f"Invalid path: {exc}")

        for denied in self._denied:
            if resolved == denied or resolved.is_relative_to(denied):
                return PolicyDecision(False, f"Path is in denied list: {denied}")

        if not any(resolved.is_relative_to(root) for root in self._allowed_roots):
            return PolicyDecision(False, "Path is not in allowed directories")
        return PolicyDecision(True)

    def check_file_size(self, size_bytes: int) -> PolicyDecision:
        if size_bytes > self.max_file_size:
            return PolicyDecision(
                False,
                f"File size ({size_bytes} bytes) exceeds limit ({self._max_file_size_label})",
            )
        return PolicyDecision(True)

    def enforce_read_only(self, operation: str) -> PolicyDecision:
        if operation not in READ_ONLY_OPERATIONS:
            return PolicyDecision(False, f"Operation '{operation}' not allowed (read-only mode)")
        return PolicyDecision(True)

    def validate_search_pattern(self, pattern: str, root: str) -> PolicyDecision:
        """Sanitize a glob *pattern* and reject ones reaching restricted paths."""
        root_check = self.validate_path(root)
        if not root_check.allowed:
            return root_check

        sanitized = pattern.replace("..", "")
        while "//" in sanitized:
            sanitized = sanitized.replace("//", "/")
        sanitized = sanitized.lstrip("/")

        candidate = f"/{sanitized.lower()}"
        for fragment in RESTRICTED_PATTERN_FRAGMENTS:
            if fragment in candidate:
                return PolicyDecision(False, f"Pattern contains restricted path: {fragment}")
        if not sanitized:
            return PolicyDecision(False, "Empty search pattern")
        return PolicyDecision(True, sanitized=sanitized)

    def safe_display_path(self, path: str | os.PathLike[str]) -> str:
        """Render *path* relative to its allowed root, or as a bare filename."""
        resolved = Path(path).resolve()
        for root in self._allowed_roots:
            if resolved.is_relative_to(root):
                relative = resolved.relative_to(root)
                root_name = root.name or str(root)
                return f"{root_name}/{relative}" if relative.parts else root_name
        return Path(path).name or str(path)


class FileSystemTools:
    """Async handlers for the read-only ``fs.*`` tools."""

    def __init__(self, policy: FileSystemPolicy) -> None:
        self.policy = policy

    async def execute(self, tool: str, args: dict[str, Any]) -> dict[str, Any]:
        decision = self.policy.enforce_read_only(tool)
        if not decision.allowed:
            return {"ok": False, "error": decision.reason}

        if tool == "fs.search":
            pattern = args.get("pattern")
            if not pattern:
                return {"ok": False, "error": "Missing pattern"}
            return await asyncio.to_thread(self._search, str(pattern), str(args.get("path", ".")))

        path = args.get("path")
        if not path:
            return {"ok": False, "error": "Missing path"}
        decision = self.policy.validate_path(str(path))
        if not decision.allowed:
            return {"ok": False, "error": decision.reason}

        if tool == "fs.read":
            return await asyncio.to_thread(self._read, Path(str(path)))
        return await asyncio.to_thread(self._list, Path(str(path)))

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            size = path.stat().st_size
            decision = self.policy.check_file_size(size)
            if not decision.allowed:
                return {"ok": False, "error": decision.reason}
            return {"ok": True, "data": path.read_text(encoding="utf-8", errors="replace")}
        except OSError as exc:
            return {"ok": False, "error": f"Failed to read file: {exc}"}

    def _list(self, path: Path) -> dict[str, Any]:
        try:
            entries = sorted(
                f"{entry.name}/" if entry.is_dir() else entry.name for entry in path.iterdir()
            )
        except OSError as exc:
            return {"ok": False, "error": f"Failed to list directory: {exc}"}
        return {"ok": True, "data": entries}

    def _search(self, pattern: str, root: str) -> dict[str, Any]:
        decision = self.policy.validate_search_pattern(pattern, root)
        if not decision.allowed:
            return {"ok": False, "error": decision.reason}

        root_path = Path(root).resolve()
        matches: list[str] = []
        try:
            for match in root_path.glob(decision.sanitized or ""):
                if not match.is_file() or not self.policy.validate_path(match).allowed:
                    continue
                matches.append(str(match.relative_to(root_path)))
                if len(matches) >= MAX_SEARCH_RESULTS:
                    break
        except (OSError, ValueError) as exc:
            return {"ok": False, "error": f"Failed to search files: {exc}"}
        return {"ok": True, "data": sorted(matches)}
