"""Tick anchors shared by the trackers of one process."""

import threading
from datetime import datetime, timedelta


class TickAnchors:
    """Time each (user, topic) was last accrued up to, with bounded size.

    Anchors older than ``max_age`` are treated as absent, and once
    ``max_entries`` is reached the oldest anchor is evicted.
    """

    MAX_ENTRIES = 10_000

    def __init__(self, max_age: timedelta = timedelta(hours=12), max_entries: int = MAX_ENTRIES) -> None:
        self.max_age = max_age
        self.max_entries = max_entries
        self._anchors: dict[tuple[str, str], datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._anchors)

    def _live(self, key: tuple[str, str], anchor: datetime | None, now: datetime | None) -> datetime | None:
        if anchor is not None and now is not None and now - anchor > self.max_age:
            self._anchors.pop(key, None)
            return None
        return anchor

    def get(self, user_id: str, topic_id: str, now: datetime | None = None) -> datetime | None:
        key = (user_id, topic_id)
        with self._lock:
            return self._live(key, self._anchors.get(key), now)

    def set(self, user_id: str, topic_id: str, anchor: datetime) -> None:
        key = (user_id, topic_id)
        with self._lock:
            if key not in self._anchors and len(self._anchors) >= self.max_entries:
                self._evict_oldest()
            self._anchors[key] = anchor

    def pop(self, user_id: str, topic_id: str, now: datetime | None = None) -> datetime | None:
        key = (user_id, topic_id)
        with self._lock:
            return self._live(key, self._anchors.pop(key, None), now)

    def clear(self) -> None:
        with self._lock:
            self._anchors.clear()

    def _evict_oldest(self) -> None:
        if self._anchors:
            oldest = min(self._anchors, key=self._anchors.__getitem__)
            del self._anchors[oldest]
