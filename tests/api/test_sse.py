"""Tests for the SSE endpoint.

The async generator is exercised directly with a mock ``Request``.
HTTP-level streaming tests are avoided because ``BaseHTTPMiddleware`` buffers
streaming responses in ASGI test transports.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from orion.api.routers.sse import _SHUTDOWN, _event_generator, _format
from orion.core.events import EventBus

pytestmark = pytest.mark.unit


def _mock_request(*, disconnected: bool = False) -> AsyncMock:
    """Create a mock Starlette Request with configurable is_disconnected()."""
    request = AsyncMock()
    request.is_disconnected = AsyncMock(return_value=disconnected)
    return request


def _payload(event_text: str) -> dict:
    data_line = [line for line in event_text.split("\n") if line.startswith("data:")][0]
    return json.loads(data_line.removeprefix("data: "))


class TestFormat:
    def test_sse_framing(self):
        assert _format("x", {"a": 1}) == 'event: x\ndata: {"a": 1}\n\n'


class TestEventGenerator:
    async def test_initial_connected_event_subscribes(self):
        bus = EventBus()
        gen = _event_generator(_mock_request(), bus, "s1")

        first = await gen.__anext__()

        assert "event: connected" in first
        assert _payload(first) == {"status": "ok", "session_id": "s1"}
        assert bus.subscriber_count == 1
        await gen.aclose()

    async def test_close_unsubscribes(self):
        bus = EventBus()
        gen = _event_generator(_mock_request(), bus, "*")
        await gen.__anext__()

        await gen.aclose()

        assert bus.subscriber_count == 0

    async def test_receives_session_events(self):
        bus = EventBus()
        gen = _event_generator(_mock_request(), bus, "s1")
        await gen.__anext__()

        bus.publish("approval_requested", session_id="s1", approval_id="a1", tool="web.fetch")
        event_text = await gen.__anext__()

        assert "event: approval_requested" in event_text
        payload = _payload(event_text)
        assert payload["approval_id"] == "a1"
        assert payload["session_id"] == "s1"
        await gen.aclose()

    async def test_other_sessions_filtered_out(self):
        bus = EventBus()
        queue: asyncio.Queue = asyncio.Queue()
        gen = _event_generator(_mock_request(), bus, "s1", queue=queue)
        await gen.__anext__()

        bus.publish("message_started", session_id="s2")
        bus.publish("message_started", session_id="s1")

        assert queue.qsize() == 1
        assert _payload(await gen.__anext__())["session_id"] == "s1"
        await gen.aclose()

    async def test_shutdown_sentinel_stops_generator(self):
        bus = EventBus()
        queue: asyncio.Queue = asyncio.Queue()
        gen = _event_generator(_mock_request(), bus, "*", queue=queue)
        await gen.__anext__()

        queue.put_nowait(_SHUTDOWN)

        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()
        assert bus.subscriber_count == 0

    async def test_disconnected_client_stops_generator(self):
        bus = EventBus()
        gen = _event_generator(_mock_request(disconnected=True), bus, "*")
        await gen.__anext__()

        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()
        assert bus.subscriber_count == 0

    async def test_slow_consumer_is_dropped(self):
        bus = EventBus()
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        gen = _event_generator(_mock_request(), bus, "*", queue=queue)
        await gen.__anext__()

        bus.publish("e1")
        bus.publish("e2")

        assert bus.subscriber_count == 0
        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()

    async def test_keepalive_on_idle(self, monkeypatch):
        monkeypatch.setattr("orion.api.routers.sse.KEEPALIVE_SECONDS", 0.01)
        bus = EventBus()
        gen = _event_generator(_mock_request(), bus, "*")
        await gen.__anext__()

        assert await gen.__anext__() == ": keepalive\n\n"
        await gen.aclose()
