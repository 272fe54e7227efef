"""Server-Sent Events (SSE) endpoint relaying event-bus traffic to the UI.

``GET /api/events?session_id=<id>`` streams events for one session;
omitting ``session_id`` (or passing ``*``) streams everything.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Query
from starlette.requests import Request
from starlette.responses import StreamingResponse

from orion.api.security import require_allowed_origin
from orion.core.assistant import Orion
from orion.core.events import WILDCARD_TOPIC, Event, EventBus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sse"])

KEEPALIVE_SECONDS = 15.0
QUEUE_SIZE = 256

# Sentinel object to signal generator shutdown (used in tests)
_SHUTDOWN = object()


def _get_orion() -> Orion:
    """Dependency stub — overridden at app startup or in tests."""
    raise RuntimeError("Orion service not initialized")


def _format(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data, default=str)}\n\n"


async def _event_generator(
    request: Request,
    bus: EventBus,
    topic: str,
    queue: asyncio.Queue | None = None,
) -> AsyncGenerator[str, None]:
    """Yield SSE-formatted bus events until the client disconnects."""
    if queue is None:
        queue = asyncio.Queue(maxsize=QUEUE_SIZE)

    def on_event(event: Event) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            # Slow consumer: drop it rather than block the publisher.
            logger.warning("SSE subscriber queue full; dropping subscription topic=%s", topic)
            unsubscribe()
            _drain_and_close(queue)

    unsubscribe = bus.subscribe(topic, on_event)
    try:
        yield _format("connected", {"status": "ok", "session_id": topic})

        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            if event is _SHUTDOWN:
                break
            yield _format(event.type, event.to_dict())
    finally:
        unsubscribe()


def _drain_and_close(queue: asyncio.Queue) -> None:
    while not queue.empty():
        queue.get_nowait()
    queue.put_nowait(_SHUTDOWN)


@router.get("/events", dependencies=[Depends(require_allowed_origin)])
async def sse_events(
    request: Request,
    session_id: str = Query(default=WILDCARD_TOPIC, min_length=1),
    orion: Orion = Depends(_get_orion),
) -> StreamingResponse:
    """Server-Sent Events stream of lifecycle events.

    Event types:
    - connected: Initial connection confirmation
    - message_started / message_completed: chat message lifecycle
    - approval_requested / approval_resolved / approval_expired
    - tool_call_started / tool_call_completed: one pair per executed tool
    - action_result: one per action, as soon as it finishes
    - audit: raw engine audit events for inspection
    - keepalive: periodic comment, not a named event
    """
    return StreamingResponse(
        _event_generator(request, orion.bus, session_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
