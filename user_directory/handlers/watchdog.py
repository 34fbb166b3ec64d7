"""
File system watchdog for monitoring the users file.
"""
import time
import logging
from pathlib import Path
from watchdog.events import FileSystemEventHandler

# Configure logging
logger = logging.getLogger(__name__)

class StoreFileHandler(FileSystemEventHandler):
    """Handle file system events for the users file."""
    def __init__(self, server, users_file: Path, reload_delay: float = 1.0):
        self.server = server
        self.users_file = Path(users_file).resolve()
        self.reload_delay = reload_delay
        self.last_notify = 0.0
        logger.info(f"StoreFileHandler initialized for {self.users_file}")

    def _should_handle_event(self, event) -> bool:
        """Check if we should handle this event."""
        if event.is_directory:
            return False

        # Moves land on dest_path (editors save via rename)
        path = getattr(event, "dest_path", "") or event.src_path
        if Path(path).resolve() != self.users_file:
            return False

        current_time = time.time()
        if current_time - self.last_notify < self.reload_delay:
            logger.debug(f"Ignoring event due to reload delay: {path}")
            return False

        return True

    def _notify(self, event):
        if not self._should_handle_event(event):
            return
        self.last_notify = time.time()
        logger.info(f"[STORE] Change detected: {event.src_path}")
        self.server.schedule_users_changed()

    def on_modified(self, event):
        self._notify(event)

    def on_created(self, event):
        self._notify(event)

    def on_moved(self, event):
        self._notify(event)
