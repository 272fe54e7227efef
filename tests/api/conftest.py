"""Shared fixtures for API tests: an Orion service with stubbed tools."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from orion.api.app import create_app
from orion.core.assistant import Orion


class StubDispatcher:
    async def __call__(self, tool: str, args: dict[str, Any]) -> dict[str, Any]:
        if tool == "web.fetch":
            return {"ok": True, "data": {"url": args.get("url"), "status": 200}}
        return {"ok": True, "data": f"{tool} done"}


@pytest.fixture
def orion() -> Orion:
    return Orion(dispatcher=StubDispatcher())


@pytest.fixture
def app(orion: Orion):
    return create_app(orion=orion)


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
