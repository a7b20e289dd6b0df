from typing import Callable, Dict, List
import logging
import threading

logger = logging.getLogger(__name__)

# Transaction events
COMMIT_STARTED = "commit_started"
COMMIT_COMPLETED = "commit_completed"
COMMIT_ABORTED = "commit_aborted"
FOLDER_CREATED = "folder_created"
FILE_WRITTEN = "file_written"
FILE_SKIPPED = "file_skipped"
ENTRY_DELETED = "entry_deleted"
UPLOAD_DROPPED = "upload_dropped"
ALIAS_COPIED = "alias_copied"

# Transfer events (facade)
TRANSFER_INITIATED = "transfer_initiated"
TRANSFER_COMPLETED = "transfer_completed"
TRANSFER_ERROR = "transfer_error"

# Connection events
CONNECTION_OPENED = "connection_opened"
CONNECTION_CLOSED = "connection_closed"


class EventEmitter:
    """Simple synchronous event emitter for publish events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._lock = threading.Lock()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        with self._lock:
            if event_name not in self._listeners:
                self._listeners[event_name] = []
            if callback not in self._listeners[event_name]:
                self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        with self._lock:
            if event_name in self._listeners:
                if callback in self._listeners[event_name]:
                    self._listeners[event_name].remove(callback)

    def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners."""
        with self._lock:
            listeners = list(self._listeners.get(event_name, ()))

        for callback in listeners:
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
