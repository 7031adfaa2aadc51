import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional


@dataclass
class _Entry:
    expires_at: float
    value: Any


class TTLCache:
    """
    Explicit time-bounded cache owned by whoever constructs it.
    ``clock`` is injectable so expiry can be driven deterministically in tests.
    """

    def __init__(self, *, ttl_seconds: float = 300, max_items: int = 256, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._max_items = max(1, int(max_items or 1))
        self._clock = clock
        self._items: Dict[str, _Entry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._items.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._items.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        self._evict_if_needed()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._items[key] = _Entry(expires_at=self._clock() + ttl, value=value)

    def invalidate(self, keys: Optional[Iterable[str]] = None, prefix: Optional[str] = None) -> int:
        """Drop the given keys and/or every key under ``prefix``; no arguments clears everything."""
        if keys is None and prefix is None:
            dropped = len(self._items)
            self._items.clear()
            return dropped
        targets = set(keys or ())
        if prefix is not None:
            targets.update(k for k in self._items if k.startswith(prefix))
        dropped = 0
        for key in targets:
            if self._items.pop(key, None) is not None:
                dropped += 1
        return dropped

    def __len__(self) -> int:
        return len(self._items)

    def _evict_if_needed(self) -> None:
        if len(self._items) < self._max_items:
            return
        now = self._clock()
        for k in list(self._items.keys()):
            if self._items[k].expires_at <= now:
                self._items.pop(k, None)
        while len(self._items) >= self._max_items and self._items:
            self._items.pop(next(iter(self._items)), None)
