import asyncio
from datetime import datetime, timezone

import pytest

from feedcache.annotations import UserAnnotationCache
from feedcache.controller import FeedCacheController
from feedcache.errors import NotFoundError
from feedcache.freshness import FeedFreshness
from feedcache.models import db, init_db
from feedcache.schemas import FeedItem, FeedOrdering, FeedPage, UserAnnotation
from feedcache.store import LocalFeedStore


def make_item(item_id: str, ts: int, filter_key: str = "560001", owner_id: str = "u1", **fields) -> FeedItem:
    return FeedItem(
        id=item_id,
        owner_id=owner_id,
        body=fields.pop("body", f"news {item_id}"),
        created_at=datetime.fromtimestamp(ts, tz=timezone.utc),
        filter_key=filter_key,
        **fields,
    )


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFeedSource:
    """Pages through ``items`` newest first; scripted responses take priority."""

    def __init__(self, items=()):
        self.items = list(items)
        self.calls = []
        self.scripted = []

    def script(self, items=(), cursor="scripted", gate: asyncio.Event | None = None, error: Exception | None = None):
        self.scripted.append((list(items), cursor, gate, error))

    async def fetch_page(self, filter_key, page_size, after_cursor=None, ordering=FeedOrdering.LATEST):
        self.calls.append((filter_key, page_size, after_cursor, ordering))

        if self.scripted:
            items, cursor, gate, error = self.scripted.pop(0)
            if gate is not None:
                await gate.wait()
            if error is not None:
                raise error
            return FeedPage(items=items, next_cursor=cursor if items else None, raw_count=len(items))

        scoped = sorted(
            (item for item in self.items if item.filter_key == filter_key),
            key=lambda item: item.created_at,
            reverse=True,
        )
        offset = int(after_cursor) if after_cursor else 0
        page = scoped[offset:offset + page_size]
        next_offset = offset + len(page)
        return FeedPage(
            items=page,
            next_cursor=str(next_offset) if page else None,
            raw_count=len(page),
        )


class FakeUserDirectory:
    def __init__(self, users=None):
        self.users = users or {}
        self.calls = []

    async def fetch_user(self, user_id):
        self.calls.append(user_id)
        if user_id not in self.users:
            raise NotFoundError(f"User {user_id} not found")
        return self.users[user_id]


@pytest.fixture
def database():
    init_db(":memory:")
    yield db
    db.close()


@pytest.fixture
def store(database):
    return LocalFeedStore(feed="latest")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    return FakeUserDirectory({
        "u1": UserAnnotation(display_name="padda", avatar_url="https://img/u1.png"),
        "u2": UserAnnotation(display_name="ravi", role="reporter"),
    })


@pytest.fixture
def annotations(directory):
    return UserAnnotationCache(directory)


@pytest.fixture
def source():
    return FakeFeedSource()


@pytest.fixture
def make_controller(source, store, annotations, clock):
    def factory(**options):
        options.setdefault("page_size", 10)
        options.setdefault("max_cached_items", 50)
        options.setdefault("cache_expiry_minutes", 30)
        return FeedCacheController(
            source,
            store,
            annotations,
            FeedFreshness(clock=clock),
            clock=clock,
            **options,
        )
    return factory
