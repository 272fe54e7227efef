"""Redaction of sensitive tool arguments before they reach audit payloads.

Redaction is shallow: only the top-level keys of the argument mapping are
inspected. Nested mappings are copied by reference and never traversed.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

REDACTION_MARKER = "[redacted]"

SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = ("token", "authorization")


def is_sensitive_key(key: str) -> bool:
    """Return True when *key* names a credential-bearing argument."""
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def redact_args(args: Mapping[str, Any]) -> dict[str, Any]:
    """Return a one-level copy of *args* with sensitive values replaced.

    >>> redact_args({"access_token": "abc123", "path": "a.txt"})
    {'access_token': '[redacted]', 'path': 'a.txt'}
    """
    return {
        key: REDACTION_MARKER if is_sensitive_key(str(key)) else value
        for key, value in args.items()
    }
