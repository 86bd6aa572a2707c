"""
Bounded in-memory TTL cache.

Entries expire a fixed time after insertion and the least recently used entry
is evicted once `max_entries` is reached. The clock is injectable so expiry
can be tested without sleeping.
"""

import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, Hashable, List, Optional, Tuple


class TTLCache:
    def __init__(
        self,
        ttl: timedelta,
        max_entries: int = 256,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self.clock = clock
        self._data: "OrderedDict[Hashable, Tuple[datetime, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            inserted_at, value = entry
            if self.clock() - inserted_at >= self.ttl:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data[key] = (self.clock(), value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None
