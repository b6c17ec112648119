"""Thread-safe registry of group_id -> lock for roster check-then-act sequences."""
import threading
import logging
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class GroupLockRegistry:
    """Locks exist only while some thread holds or waits for them."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def _checkout(self, key: str) -> _Entry:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
                logger.debug(f"Created roster lock for group {key}")
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._lock:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, group_id) -> Iterator[None]:
        """Serialize roster changes for one group; other groups are unaffected."""
        key = str(group_id)
        entry = self._checkout(key)
        try:
            with entry.lock:
                yield
        finally:
            self._checkin(key, entry)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
