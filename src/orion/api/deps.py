"""Dependency wiring for the Orion API.

Each router module exposes a ``_get_orion`` stub; :func:`wire_orion_dependencies`
overrides all of them with the application's single :class:`Orion` instance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from orion.core.assistant import Orion

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


def wire_orion_dependencies(app: FastAPI, orion: Orion) -> None:
    """Override every router-level ``_get_orion`` stub with *orion*."""
    from orion.api.routers import approvals, sessions, sse

    app.state.orion = orion
    for module in (approvals, sessions, sse):
        app.dependency_overrides[module._get_orion] = lambda: orion
    logger.debug("Wired Orion service into API routers")
