import threading
from typing import Type, Callable, List, Dict, Any
from dualcam.domain.events import Event

class EventBus:
    """Synchronous event bus. Callbacks run on the publishing thread.

    Jobs publish from worker threads while the CLI subscribes from the main
    thread, so the subscriber table is guarded by a lock.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], callback: Callable[[Any], None]):
        """Subscribes a callback to a specific event type."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: Event):
        """Publishes an event to all subscribers of its exact type."""
        with self._lock:
            callbacks = list(self._subscribers.get(type(event), ()))
        for callback in callbacks:
            callback(event)
