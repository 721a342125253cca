"""Async event emitter used to report release progress."""
import asyncio
import inspect
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

RELEASE_EVENTS = (
    "state_change",
    "release_created",
    "files_selected",
    "file_start",
    "file_retry",
    "file_complete",
    "file_fail",
    "finish",
)


class EventEmitter:
    """
    Simple event emitter for release upload events.

    Listeners may be plain functions or coroutine functions. A failing
    listener is logged and never interrupts the upload that emitted it.
    """

    def __init__(self, known_events=RELEASE_EVENTS):
        self._known = set(known_events) if known_events else None
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if self._known is not None and event_name not in self._known:
            raise ValueError(f"Unknown event: {event_name}")
        listeners = self._listeners.setdefault(event_name, [])
        if callback not in listeners:
            listeners.append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        listeners = self._listeners.get(event_name, [])
        if callback in listeners:
            listeners.remove(callback)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners."""
        for callback in list(self._listeners.get(event_name, [])):
            try:
                result = callback(*args, **kwargs)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
