"""Orion configuration loading and validation.

Reads orion.toml, parses all sections, and returns a validated OrionConfig
dataclass. Every section is optional; a missing file yields the defaults from
:func:`default_config`.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Pattern matching ${VAR_NAME}; supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_FILE_SIZE_PATTERN = re.compile(r"^(\d+)(B|KB|MB|GB)$", re.IGNORECASE)

DEFAULT_CONFIG_FILENAME = "orion.toml"


class ConfigError(Exception):
    """Raised when Orion configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [orion.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class ApprovalsConfig:
    """Approval gate configuration from [orion.approvals].

    ``timeout_seconds`` bounds how long a gated action waits for a decision.
    Zero disables the deadline.
    """

    timeout_seconds: float = 300.0


@dataclass
class RetryConfig:
    """Tool-executor retry policy from [orion.engine.retry]."""

    max_attempts: int = 1
    base_delay_ms: int = 250
    jitter_ms: int = 150


@dataclass
class PolicyConfig:
    """File-system policy from [orion.policy]."""

    fs_allow: list[str] = field(default_factory=lambda: ["./"])
    fs_deny: list[str] = field(default_factory=lambda: ["./.git", "./.env"])
    max_file_size: str = "1MB"


@dataclass
class WebConfig:
    """Native web.fetch configuration from [orion.web]."""

    allowlist: list[str] = field(default_factory=list)
    timeout_seconds: float = 10.0


@dataclass
class MemoryConfig:
    """Short-term session memory from [orion.memory]."""

    ttl_seconds: int = 3600
    max_items: int = 200
    snapshot_dir: str | None = None


@dataclass
class AuditConfig:
    """Audit sink from [orion.audit]."""

    path: str | None = None
    hashing: bool = True


@dataclass
class ServerConfig:
    """HTTP server from [orion.server].

    ``enforce_origin`` rejects browser requests whose ``Origin`` is not in
    ``cors_origins`` on the chat, approvals and event routes.
    ``rate_limit_per_minute`` is a per-client budget for those POST routes;
    zero disables it.
    """

    host: str = "127.0.0.1"
    port: int = 8787
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    enforce_origin: bool = True
    security_headers: bool = True
    rate_limit_per_minute: int = 30


@dataclass
class OrionConfig:
    """Parsed and validated Orion configuration."""

    name: str = "orion"
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    approvals: ApprovalsConfig = field(default_factory=ApprovalsConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    web: WebConfig = field(default_factory=WebConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def default_config() -> OrionConfig:
    """Return a configuration with every section at its default."""
    return OrionConfig()


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def parse_file_size(size: str) -> int:
    """Parse a size string such as ``"512KB"`` or ``"1MB"`` into bytes."""
    units = {"B": 1, "KB": 1024, "MB": 1024 * 1024, "GB": 1024 * 1024 * 1024}
    match = _FILE_SIZE_PATTERN.match(size.strip())
    if match is None:
        raise ConfigError(f"Invalid file size format: {size!r}")
    number, unit = match.groups()
    return int(number) * units[unit.upper()]


def _string_list(section: dict, key: str, default: list[str], where: str) -> list[str]:
    raw = section.get(key)
    if raw is None:
        return list(default)
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ConfigError(f"{where}.{key} must be a list of strings")
    return list(raw)


def _number(section: dict, key: str, default: Any, where: str, kind: type = int) -> Any:
    """Coerce ``section[key]`` with *kind*, reporting bad values as ConfigError."""
    raw = section.get(key, default)
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid {where}.{key}: {raw!r}. Must be a number.")
    try:
        return kind(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {where}.{key}: {raw!r}. Must be a number.") from exc


def _parse_logging(section: dict) -> LoggingConfig:
    level = str(section.get("level", "INFO")).upper()
    fmt = str(section.get("format", "text")).lower()
    if fmt not in ("text", "json"):
        raise ConfigError(f"Invalid orion.logging.format: {fmt!r}. Expected 'text' or 'json'.")
    return LoggingConfig(level=level, format=fmt, log_root=section.get("log_root"))


def _parse_approvals(section: dict) -> ApprovalsConfig:
    timeout = _number(section, "timeout_seconds", 300, "orion.approvals", float)
    if timeout < 0:
        raise ConfigError(f"Invalid orion.approvals.timeout_seconds: {timeout!r}. Must be >= 0.")
    return ApprovalsConfig(timeout_seconds=timeout)


def _parse_retry(section: dict) -> RetryConfig:
    where = "orion.engine.retry"
    max_attempts = _number(section, "max_attempts", 1, where)
    if max_attempts < 1:
        raise ConfigError(f"Invalid {where}.max_attempts: {max_attempts!r}. Must be >= 1.")
    base_delay_ms = _number(section, "base_delay_ms", 250, where)
    jitter_ms = _number(section, "jitter_ms", 150, where)
    if base_delay_ms < 0 or jitter_ms < 0:
        raise ConfigError("orion.engine.retry delays must be non-negative")
    return RetryConfig(max_attempts=max_attempts, base_delay_ms=base_delay_ms, jitter_ms=jitter_ms)


def _parse_policy(section: dict) -> PolicyConfig:
    defaults = PolicyConfig()
    max_file_size = str(section.get("max_file_size", defaults.max_file_size))
    parse_file_size(max_file_size)
    return PolicyConfig(
        fs_allow=_string_list(section, "fs_allow", defaults.fs_allow, "orion.policy"),
        fs_deny=_string_list(section, "fs_deny", defaults.fs_deny, "orion.policy"),
        max_file_size=max_file_size,
    )


def _parse_web(section: dict) -> WebConfig:
    timeout_seconds = _number(section, "timeout_seconds", 10.0, "orion.web", float)
    if timeout_seconds <= 0:
        raise ConfigError(f"Invalid orion.web.timeout_seconds: {timeout_seconds!r}. Must be > 0.")
    return WebConfig(
        allowlist=_string_list(section, "allowlist", [], "orion.web"),
        timeout_seconds=timeout_seconds,
    )


def _parse_memory(section: dict) -> MemoryConfig:
    ttl_seconds = _number(section, "ttl_seconds", 3600, "orion.memory")
    max_items = _number(section, "max_items", 200, "orion.memory")
    if ttl_seconds <= 0 or max_items <= 0:
        raise ConfigError("orion.memory.ttl_seconds and max_items must be positive integers")
    return MemoryConfig(
        ttl_seconds=ttl_seconds,
        max_items=max_items,
        snapshot_dir=section.get("snapshot_dir"),
    )


def _parse_audit(section: dict) -> AuditConfig:
    return AuditConfig(path=section.get("path"), hashing=bool(section.get("hashing", True)))


def _parse_server(section: dict) -> ServerConfig:
    defaults = ServerConfig()
    port = _number(section, "port", defaults.port, "orion.server")
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid orion.server.port: {port!r}")
    rate_limit = _number(
        section, "rate_limit_per_minute", defaults.rate_limit_per_minute, "orion.server"
    )
    if rate_limit < 0:
        raise ConfigError(f"Invalid orion.server.rate_limit_per_minute: {rate_limit!r}")
    return ServerConfig(
        host=str(section.get("host", defaults.host)),
        port=port,
        cors_origins=_string_list(
            section, "cors_origins", defaults.cors_origins, "orion.server"
        ),
        enforce_origin=bool(section.get("enforce_origin", defaults.enforce_origin)),
        security_headers=bool(section.get("security_headers", defaults.security_headers)),
        rate_limit_per_minute=rate_limit,
    )


def parse_config(data: dict[str, Any]) -> OrionConfig:
    """Build an :class:`OrionConfig` from an already-decoded TOML mapping."""
    data = resolve_env_vars(data)

    orion_section = data.get("orion", {})
    if not isinstance(orion_section, dict):
        raise ConfigError("[orion] must be a table")

    def sub(name: str, parent: dict | None = None) -> dict:
        value = (orion_section if parent is None else parent).get(name, {})
        if not isinstance(value, dict):
            raise ConfigError(f"[orion.{name}] must be a table")
        return value

    engine_section = sub("engine")
    return OrionConfig(
        name=str(orion_section.get("name", "orion")),
        logging=_parse_logging(sub("logging")),
        approvals=_parse_approvals(sub("approvals")),
        retry=_parse_retry(sub("retry", engine_section)),
        policy=_parse_policy(sub("policy")),
        web=_parse_web(sub("web")),
        memory=_parse_memory(sub("memory")),
        audit=_parse_audit(sub("audit")),
        server=_parse_server(sub("server")),
    )


def load_config(path: Path | None = None) -> OrionConfig:
    """Load and validate an orion.toml.

    Parameters
    ----------
    path:
        Either the TOML file itself or a directory containing ``orion.toml``.
        When None, falls back to ``ORION_CONFIG`` and then to the defaults.

    Raises
    ------
    ConfigError
        If an explicitly requested file is missing, contains invalid TOML, or
        holds invalid values.
    """
    if path is None:
        env_path = os.environ.get("ORION_CONFIG")
        if not env_path:
            return default_config()
        path = Path(env_path)

    toml_path = path / DEFAULT_CONFIG_FILENAME if path.is_dir() else path
    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
