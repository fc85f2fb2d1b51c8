import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

_subscribers: Set[asyncio.Queue] = set()
_loop: Optional[asyncio.AbstractEventLoop] = None


def _fanout(event_type: str, payload: Dict[str, Any]) -> None:
    dead = []
    for q in _subscribers:
        try:
            q.put_nowait({"event": event_type, "data": payload})
        except asyncio.QueueFull:
            dead.append(q)

    for q in dead:
        _subscribers.discard(q)


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    """
    Emite un evento a todos los clientes SSE. Se puede llamar desde
    cualquier hilo (endpoints sync, hilos del sweep): fire-and-forget.
    """
    loop = _loop
    if loop is None or loop.is_closed():
        logger.debug("Evento %s sin suscriptores", event_type)
        return
    loop.call_soon_threadsafe(_fanout, event_type, payload)


def subscribe(maxsize: int = 100) -> asyncio.Queue:
    global _loop
    _loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
    _subscribers.add(queue)
    return queue


def unsubscribe(queue: asyncio.Queue) -> None:
    _subscribers.discard(queue)


@router.get("/events")
async def sse_events():
    queue = subscribe()

    async def generator():
        try:
            while True:
                msg = await queue.get()
                yield {
                    "event": msg["event"],
                    "data": json.dumps(msg["data"], ensure_ascii=False),
                }
        except asyncio.CancelledError:
            pass
        finally:
            unsubscribe(queue)

    return EventSourceResponse(generator())
