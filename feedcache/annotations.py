import asyncio
import logging
import threading

from feedcache.errors import FeedError
from feedcache.schemas import UserAnnotation

logger = logging.getLogger(__name__)


class UserAnnotationCache:
    """Memoized user lookups for decorating feed items.

    Two concurrent misses for the same id may both hit the directory; the
    second write simply replaces the first.
    """

    def __init__(self, directory):
        self.directory = directory
        self._entries: dict[str, UserAnnotation] = {}
        self._lock = threading.Lock()

    def peek(self, user_id: str) -> UserAnnotation | None:
        with self._lock:
            return self._entries.get(user_id)

    def set(self, user_id: str, annotation: UserAnnotation):
        with self._lock:
            self._entries[user_id] = annotation

    async def get(self, user_id: str) -> UserAnnotation | None:
        cached = self.peek(user_id)
        if cached is not None:
            return cached

        try:
            annotation = await self.directory.fetch_user(user_id)
        except FeedError as e:
            logger.warning(f"No annotation for user {user_id}: {e}")
            return None

        self.set(user_id, annotation)
        return annotation

    async def get_many(self, user_ids) -> dict[str, UserAnnotation]:
        unique_ids = list(dict.fromkeys(user_ids))
        results = await asyncio.gather(*(self.get(user_id) for user_id in unique_ids))
        return {
            user_id: annotation
            for user_id, annotation in zip(unique_ids, results)
            if annotation is not None
        }

    def clear(self):
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} cached user annotations")

    def __len__(self):
        with self._lock:
            return len(self._entries)
