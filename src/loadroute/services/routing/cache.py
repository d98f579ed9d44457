"""In-memory route cache keyed by location fingerprint."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from .models import RouteResolution

logger = logging.getLogger(__name__)


class RouteCache:
    """Bounded TTL cache of successful resolutions.

    Owned by whoever builds the resolver and passed in explicitly; there is no
    module level instance.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, RouteResolution]] = OrderedDict()

    def get(self, key: str) -> Optional[RouteResolution]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, resolution = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            logger.debug(f"Route cache entry {key} expired")
            return None
        return resolution

    def put(self, key: str, resolution: RouteResolution) -> None:
        if not resolution.succeeded:
            return
        self._entries[key] = (self._clock(), resolution)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
