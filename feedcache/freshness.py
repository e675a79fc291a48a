import time

from feedcache import config


class FeedFreshness:
    """Remembers which filter keys were loaded in this process, and when.

    One instance per feed variant, created at startup and handed to the
    controller that owns that feed.
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self._initialized: set[str] = set()
        self._last_refresh: dict[str, float] = {}

    def mark_initialized(self, filter_key: str):
        self._initialized.add(filter_key)
        self._last_refresh[filter_key] = self.clock()

    def is_initialized(self, filter_key: str) -> bool:
        return filter_key in self._initialized

    def should_force_refresh(self, filter_key: str, expiry_minutes: int = config.CACHE_EXPIRY_MINUTES) -> bool:
        last_refresh = self._last_refresh.get(filter_key)
        if last_refresh is None:
            return True
        return self.clock() - last_refresh > expiry_minutes * 60

    def clear(self):
        self._initialized.clear()
        self._last_refresh.clear()
