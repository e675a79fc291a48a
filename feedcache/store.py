import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from peewee import PeeweeException, chunked

from feedcache.errors import StorageError
from feedcache.models import CachedFeedItem, db
from feedcache.schemas import FeedItem, FeedOrdering, UserAnnotation

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
INSERT_BATCH_SIZE = 50


def to_micros(value: datetime) -> int:
    return (value - EPOCH) // timedelta(microseconds=1)


def from_micros(value: int) -> datetime:
    return EPOCH + timedelta(microseconds=value)


def to_row(feed: str, filter_key: str, item: FeedItem) -> dict:
    return {
        "feed": feed,
        "item_id": item.id,
        "owner_id": item.owner_id,
        "body": item.body,
        "created_at": to_micros(item.created_at),
        "like_count": item.like_count,
        "comment_count": item.comment_count,
        "filter_key": filter_key,
        "media_urls": json.dumps(item.media_urls) if item.media_urls else None,
        "annotation": item.annotation.model_dump_json() if item.annotation else None,
    }


def from_row(row: CachedFeedItem) -> FeedItem:
    return FeedItem(
        id=row.item_id,
        owner_id=row.owner_id,
        body=row.body,
        created_at=from_micros(row.created_at),
        like_count=row.like_count,
        comment_count=row.comment_count,
        filter_key=row.filter_key,
        media_urls=json.loads(row.media_urls) if row.media_urls else None,
        annotation=UserAnnotation.model_validate_json(row.annotation) if row.annotation else None,
    )


class LocalFeedStore:
    """SQLite-backed cache of feed items for one feed variant.

    Every query is scoped to ``feed`` and, where it takes one, a filter key.
    Writers are the feed controllers; views read with :meth:`fetch_all`.
    """

    def __init__(self, feed: str = FeedOrdering.LATEST.value):
        self.feed = feed

    @contextmanager
    def atomic(self):
        try:
            with db.atomic():
                yield
        except PeeweeException as e:
            raise StorageError(f"Transaction failed for feed {self.feed}: {e}") from e

    def _scope(self, filter_key: str):
        return (CachedFeedItem.feed == self.feed) & (CachedFeedItem.filter_key == filter_key)

    def _insert(self, filter_key: str, items: list[FeedItem]):
        rows = [to_row(self.feed, filter_key, item) for item in items]
        for batch in chunked(rows, INSERT_BATCH_SIZE):
            CachedFeedItem.insert_many(batch).on_conflict_replace().execute()

    def replace_scope(self, filter_key: str, items: list[FeedItem]):
        """Swap every cached row for ``filter_key`` with ``items``."""
        with self.atomic():
            removed = CachedFeedItem.delete().where(self._scope(filter_key)).execute()
            self._insert(filter_key, items)
        logger.info(f"Replaced {removed} cached items with {len(items)} for {self.feed}/{filter_key}")

    def append_scope(self, filter_key: str, items: list[FeedItem]):
        """Upsert ``items`` by id, keeping the rest of the scope."""
        with self.atomic():
            self._insert(filter_key, items)
        logger.info(f"Appended {len(items)} items for {self.feed}/{filter_key}")

    def fetch_all(self, filter_key: str, order_by: FeedOrdering = FeedOrdering.LATEST) -> list[FeedItem]:
        if order_by == FeedOrdering.TRENDING:
            ordering = (CachedFeedItem.like_count.desc(), CachedFeedItem.created_at.desc())
        else:
            ordering = (CachedFeedItem.created_at.desc(), CachedFeedItem.item_id.asc())
        try:
            rows = (
                CachedFeedItem
                .select()
                .where(self._scope(filter_key))
                .order_by(*ordering)
            )
            return [from_row(row) for row in rows]
        except PeeweeException as e:
            raise StorageError(f"Could not read {self.feed}/{filter_key}: {e}") from e

    def delete(self, items: list[FeedItem]) -> int:
        ids = [item.id for item in items]
        removed = 0
        with self.atomic():
            for batch in chunked(ids, INSERT_BATCH_SIZE):
                removed += (
                    CachedFeedItem
                    .delete()
                    .where((CachedFeedItem.feed == self.feed) & (CachedFeedItem.item_id.in_(batch)))
                    .execute()
                )
        return removed

    def count(self, filter_key: str) -> int:
        try:
            return CachedFeedItem.select().where(self._scope(filter_key)).count()
        except PeeweeException as e:
            raise StorageError(f"Could not count {self.feed}/{filter_key}: {e}") from e

    def clear(self) -> int:
        with self.atomic():
            removed = CachedFeedItem.delete().where(CachedFeedItem.feed == self.feed).execute()
        logger.info(f"Cleared {removed} cached items for {self.feed}")
        return removed
