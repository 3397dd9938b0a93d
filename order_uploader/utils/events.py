from dataclasses import dataclass
from typing import Dict, List, Callable
import inspect
import logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadProgress:
    """Progress after a completed chunk."""
    uploaded: int
    total: int
    chunk: int
    total_chunks: int

    @property
    def percent(self) -> float:
        if self.total_chunks <= 0:
            return 0.0
        return 100.0 * self.chunk / self.total_chunks


class EventEmitter:
    """Simple event emitter for upload events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def has_listeners(self, event_name: str) -> bool:
        return bool(self._listeners.get(event_name))

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners, in subscription order."""
        if event_name not in self._listeners:
            return

        for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
            await invoke_listener(event_name, callback, *args, **kwargs)


async def invoke_listener(event_name: str, callback: Callable, *args, **kwargs):
    """Call a sync or async listener; listener errors are logged, not raised."""
    try:
        if inspect.iscoroutinefunction(callback):
            await callback(*args, **kwargs)
        else:
            callback(*args, **kwargs)
    except Exception as e:
        logger.error(f"Error in event listener for {event_name}: {e}")
