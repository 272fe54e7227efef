"""Tests for Orion configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from orion.config import (
    ConfigError,
    OrionConfig,
    default_config,
    load_config,
    parse_config,
    parse_file_size,
)

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FULL_TOML = """\
[orion]
name = "home"

[orion.logging]
level = "debug"
format = "json"
log_root = "logs"

[orion.approvals]
timeout_seconds = 30

[orion.engine.retry]
max_attempts = 3
base_delay_ms = 100
jitter_ms = 0

[orion.policy]
fs_allow = ["./data"]
fs_deny = ["./data/private"]
max_file_size = "512KB"

[orion.web]
allowlist = ["https://example.com/"]
timeout_seconds = 5

[orion.memory]
ttl_seconds = 600
max_items = 50
snapshot_dir = "snapshots"

[orion.audit]
path = "audit.jsonl"
hashing = false

[orion.server]
host = "0.0.0.0"
port = 9000
cors_origins = ["http://localhost:5173"]
"""


def _write_toml(tmp_path: Path, content: str, filename: str = "orion.toml") -> Path:
    (tmp_path / filename).write_text(content)
    return tmp_path


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


def test_load_full_config(tmp_path: Path):
    cfg = load_config(_write_toml(tmp_path, FULL_TOML))

    assert isinstance(cfg, OrionConfig)
    assert cfg.name == "home"
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"
    assert cfg.approvals.timeout_seconds == 30.0
    assert cfg.retry.max_attempts == 3
    assert cfg.retry.jitter_ms == 0
    assert cfg.policy.fs_allow == ["./data"]
    assert cfg.policy.max_file_size == "512KB"
    assert cfg.web.allowlist == ["https://example.com/"]
    assert cfg.memory.max_items == 50
    assert cfg.audit.path == "audit.jsonl"
    assert cfg.audit.hashing is False
    assert cfg.server.port == 9000
    assert cfg.server.cors_origins == ["http://localhost:5173"]


def test_load_config_accepts_file_path(tmp_path: Path):
    path = _write_toml(tmp_path, '[orion]\nname = "x"\n', "custom.toml") / "custom.toml"
    assert load_config(path).name == "x"


def test_empty_file_yields_defaults(tmp_path: Path):
    cfg = load_config(_write_toml(tmp_path, ""))
    assert cfg == default_config()


def test_defaults():
    cfg = default_config()
    assert cfg.approvals.timeout_seconds == 300.0
    assert cfg.retry.max_attempts == 1
    assert cfg.memory.ttl_seconds == 3600
    assert cfg.memory.max_items == 200
    assert cfg.web.allowlist == []
    assert cfg.server.port == 8787


def test_no_path_and_no_env_uses_defaults(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("ORION_CONFIG", raising=False)
    assert load_config() == default_config()


def test_orion_config_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _write_toml(tmp_path, '[orion]\nname = "from-env"\n')
    monkeypatch.setenv("ORION_CONFIG", str(tmp_path))
    assert load_config().name == "from-env"


def test_env_var_interpolation(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ORION_AUDIT_PATH", "/var/log/orion/audit.jsonl")
    cfg = parse_config({"orion": {"audit": {"path": "${ORION_AUDIT_PATH}"}}})
    assert cfg.audit.path == "/var/log/orion/audit.jsonl"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="Config file not found"):
        load_config(tmp_path)


def test_invalid_toml_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(_write_toml(tmp_path, "[orion\nname="))


def test_unresolved_env_var_raises(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("ORION_MISSING", raising=False)
    with pytest.raises(ConfigError, match="ORION_MISSING"):
        parse_config({"orion": {"name": "${ORION_MISSING}"}})


@pytest.mark.parametrize(
    "data",
    [
        {"orion": {"logging": {"format": "xml"}}},
        {"orion": {"approvals": {"timeout_seconds": -1}}},
        {"orion": {"approvals": {"timeout_seconds": "soon"}}},
        {"orion": {"engine": {"retry": {"max_attempts": 0}}}},
        {"orion": {"policy": {"max_file_size": "huge"}}},
        {"orion": {"policy": {"fs_allow": "./"}}},
        {"orion": {"memory": {"max_items": 0}}},
        {"orion": {"server": {"port": 70000}}},
        {"orion": {"web": "nope"}},
        {"orion": {"web": {"timeout_seconds": 0}}},
        {"orion": {"server": {"rate_limit_per_minute": -1}}},
    ],
)
def test_invalid_values_raise(data):
    with pytest.raises(ConfigError):
        parse_config(data)


@pytest.mark.parametrize(
    ("data", "key"),
    [
        ({"orion": {"engine": {"retry": {"max_attempts": "three"}}}}, "max_attempts"),
        ({"orion": {"engine": {"retry": {"base_delay_ms": "slow"}}}}, "base_delay_ms"),
        ({"orion": {"engine": {"retry": {"jitter_ms": [1]}}}}, "jitter_ms"),
        ({"orion": {"web": {"timeout_seconds": "ten"}}}, "timeout_seconds"),
        ({"orion": {"memory": {"ttl_seconds": "hour"}}}, "ttl_seconds"),
        ({"orion": {"memory": {"max_items": None}}}, "max_items"),
        ({"orion": {"server": {"port": "http"}}}, "port"),
        ({"orion": {"server": {"port": True}}}, "port"),
        ({"orion": {"server": {"rate_limit_per_minute": "lots"}}}, "rate_limit_per_minute"),
    ],
)
def test_non_numeric_values_raise_config_error(data, key):
    with pytest.raises(ConfigError, match=key):
        parse_config(data)


def test_numeric_strings_are_accepted():
    cfg = parse_config({"orion": {"server": {"port": "9001"}, "memory": {"max_items": "10"}}})
    assert cfg.server.port == 9001
    assert cfg.memory.max_items == 10


def test_server_security_defaults():
    server = default_config().server
    assert server.enforce_origin is True
    assert server.security_headers is True
    assert server.rate_limit_per_minute == 30


# ---------------------------------------------------------------------------
# parse_file_size
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("size", "expected"),
    [("10B", 10), ("512KB", 512 * 1024), ("1MB", 1024 * 1024), ("2gb", 2 * 1024**3)],
)
def test_parse_file_size(size, expected):
    assert parse_file_size(size) == expected


def test_parse_file_size_rejects_garbage():
    with pytest.raises(ConfigError):
        parse_file_size("1.5MB")
