import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from feedcache import config
from feedcache.annotations import UserAnnotationCache
from feedcache.errors import FeedError, NetworkError
from feedcache.freshness import FeedFreshness
from feedcache.media import TemporaryMedia
from feedcache.remote import HttpFeedSource
from feedcache.schemas import FeedItem, FeedOrdering, FeedPage, FeedStatus
from feedcache.store import LocalFeedStore

logger = logging.getLogger(__name__)

# Start fetching the next page once the view reaches one of the last N items
LOAD_MORE_THRESHOLD = 3


@dataclass
class CacheState:
    """Pagination and loading state for one filter key. Never persisted."""

    initialized: bool = False
    last_fetch_time: datetime | None = None
    has_more_content: bool = True
    cursor: str | None = None
    generation: int = 0
    is_loading: bool = False
    is_loading_more: bool = False
    last_error: FeedError | None = None

    def pagination(self):
        return self.cursor, self.has_more_content, self.initialized

    def restore(self, snapshot):
        self.cursor, self.has_more_content, self.initialized = snapshot

    def begin_first_page(self) -> int:
        self.generation += 1
        self.cursor = None
        self.has_more_content = True
        self.initialized = False
        self.is_loading = True
        self.is_loading_more = False
        return self.generation

    def reset(self):
        """Drop pagination and suppress whatever is still in flight."""
        self.generation += 1
        self.cursor = None
        self.has_more_content = True
        self.initialized = False
        self.is_loading = False
        self.is_loading_more = False


class FeedCacheController:
    """Write path of a cached, paginated news feed.

    Fetches pages from ``source``, decorates them through ``annotations`` and
    writes them into ``store``, which views read directly. ``freshness``
    decides whether :meth:`initial_load` has to go to the network at all.

    Every first-page load bumps a per-key generation; results that come back
    under an older generation are dropped, so the latest refresh always wins
    regardless of completion order.
    """

    def __init__(self, source: HttpFeedSource, store: LocalFeedStore,
                 annotations: UserAnnotationCache, freshness: FeedFreshness,
                 media: TemporaryMedia | None = None,
                 ordering: FeedOrdering = FeedOrdering.LATEST,
                 page_size: int = config.PAGE_SIZE,
                 max_cached_items: int = config.MAX_CACHED_ITEMS,
                 cache_expiry_minutes: int = config.CACHE_EXPIRY_MINUTES,
                 clock: Callable[[], float] = time.time):
        self.source = source
        self.store = store
        self.annotations = annotations
        self.freshness = freshness
        self.media = media
        self.ordering = ordering
        self.page_size = page_size
        self.max_cached_items = max_cached_items
        self.cache_expiry_minutes = cache_expiry_minutes
        self.clock = clock

        self._states: dict[str, CacheState] = {}
        self._current_key = ""

    # Observable state of the current filter key

    @property
    def current_filter_key(self) -> str:
        return self._current_key

    @property
    def is_loading(self) -> bool:
        return self._current_state().is_loading

    @property
    def is_loading_more(self) -> bool:
        return self._current_state().is_loading_more

    @property
    def has_more_content(self) -> bool:
        return self._current_state().has_more_content

    @property
    def last_fetch_time(self) -> datetime | None:
        return self._current_state().last_fetch_time

    @property
    def last_error(self) -> FeedError | None:
        return self._current_state().last_error

    def status(self, filter_key: str | None = None) -> FeedStatus:
        key = self._current_key if filter_key is None else filter_key
        state = self._states.get(key) or CacheState()
        return FeedStatus(
            filter_key=key,
            is_loading=state.is_loading,
            is_loading_more=state.is_loading_more,
            has_more_content=state.has_more_content,
            last_fetch_time=state.last_fetch_time,
            last_error=str(state.last_error) if state.last_error else None,
        )

    def _current_state(self) -> CacheState:
        return self._states.get(self._current_key) or CacheState()

    def _activate(self, filter_key: str) -> CacheState:
        if self._current_key and filter_key != self._current_key:
            previous = self._states.get(self._current_key)
            if previous is not None:
                previous.reset()
            logger.info(f"[{self.ordering.value}] Filter key changed {self._current_key} -> {filter_key}")
        self._current_key = filter_key
        return self._states.setdefault(filter_key, CacheState())

    def reset(self):
        """Forget every filter key; loads still in flight will not commit."""
        for state in self._states.values():
            state.reset()
        self._current_key = ""
        logger.info(f"[{self.ordering.value}] Reset feed state")

    # Commands

    async def initial_load(self, filter_key: str):
        """Load the first page unless this key was loaded within the expiry window."""
        if not filter_key:
            return

        state = self._activate(filter_key)
        should_load = (
            not self.freshness.is_initialized(filter_key)
            or self.freshness.should_force_refresh(filter_key, self.cache_expiry_minutes)
        )
        if not should_load:
            state.initialized = True
            logger.debug(f"[{self.ordering.value}] Serving cached feed for {filter_key}")
            return

        if state.is_loading:
            logger.debug(f"[{self.ordering.value}] First page for {filter_key} already in flight")
            return

        if await self._load_first_page(filter_key, state):
            self.freshness.mark_initialized(filter_key)

    async def refresh(self, filter_key: str):
        """Pull-to-refresh: drop side caches and reload the first page unconditionally."""
        if not filter_key:
            return

        if self.media is not None:
            self.media.clear()
        self.annotations.clear()

        state = self._activate(filter_key)
        if await self._load_first_page(filter_key, state):
            self.freshness.mark_initialized(filter_key)

    async def load_more_if_needed(self, filter_key: str, current_item: FeedItem, items_in_view: list[FeedItem]):
        """Fetch the next page when ``current_item`` is close to the end of the view."""
        state = self._states.get(filter_key)
        if (state is None
                or filter_key != self._current_key
                or not state.has_more_content
                or state.is_loading_more
                or not state.initialized):
            return

        ids = [item.id for item in items_in_view]
        try:
            index = ids.index(current_item.id)
        except ValueError:
            return
        if index < len(ids) - LOAD_MORE_THRESHOLD:
            return

        if state.cursor is None:
            return

        await self._load_next_page(filter_key, state)

    # Loading

    async def _fetch(self, filter_key: str, cursor: str | None) -> FeedPage:
        try:
            return await self.source.fetch_page(
                filter_key, self.page_size, after_cursor=cursor, ordering=self.ordering
            )
        except FeedError:
            raise
        except httpx.HTTPError as e:
            raise NetworkError(str(e)) from e

    async def _annotate(self, items: list[FeedItem]) -> list[FeedItem]:
        annotations = await self.annotations.get_many(item.owner_id for item in items)
        return [
            item.model_copy(update={"annotation": annotations.get(item.owner_id)})
            for item in items
        ]

    async def _load_first_page(self, filter_key: str, state: CacheState) -> bool:
        snapshot = state.pagination()
        generation = state.begin_first_page()
        started = time.perf_counter()
        committed = False
        try:
            page = await self._fetch(filter_key, None)
            items = await self._annotate(page.items)
            if generation != state.generation:
                logger.info(f"[{self.ordering.value}] Discarding stale first page for {filter_key}")
                return False

            with self.store.atomic():
                self.store.replace_scope(filter_key, items)
                self._enforce_cache_size(filter_key)
            committed = True
        except FeedError as e:
            if generation != state.generation:
                logger.info(f"[{self.ordering.value}] Superseded first page for {filter_key} failed: {e}")
                return False
            state.last_error = e
            logger.error(f"[{self.ordering.value}] Failed to load first page for {filter_key}: {e}", exc_info=True)
            raise
        finally:
            if not committed and generation == state.generation:
                state.restore(snapshot)
                state.is_loading = False

        state.cursor = page.next_cursor
        state.has_more_content = page.raw_count >= self.page_size
        state.last_fetch_time = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        state.initialized = True
        state.is_loading = False
        state.last_error = None

        logger.info(f"[{self.ordering.value}] Cached {len(items)} items for {filter_key}")
        logger.debug(f"First page load: {len(items)} items in {time.perf_counter() - started:.2f}s")
        return True

    async def _load_next_page(self, filter_key: str, state: CacheState) -> bool:
        generation = state.generation
        snapshot = state.pagination()
        state.is_loading_more = True
        started = time.perf_counter()
        committed = False
        try:
            page = await self._fetch(filter_key, state.cursor)
            items = await self._annotate(page.items)
            if generation != state.generation:
                logger.info(f"[{self.ordering.value}] Discarding stale next page for {filter_key}")
                return False

            with self.store.atomic():
                self.store.append_scope(filter_key, items)
                self._enforce_cache_size(filter_key)
            committed = True
        except FeedError as e:
            if generation != state.generation:
                logger.info(f"[{self.ordering.value}] Superseded next page for {filter_key} failed: {e}")
                return False
            state.last_error = e
            logger.error(f"[{self.ordering.value}] Failed to load next page for {filter_key}: {e}", exc_info=True)
            raise
        finally:
            if not committed and generation == state.generation:
                state.restore(snapshot)
                state.is_loading_more = False

        state.cursor = page.next_cursor
        state.has_more_content = page.raw_count >= self.page_size
        state.is_loading_more = False
        state.last_error = None

        logger.info(f"[{self.ordering.value}] Appended {len(items)} items for {filter_key}")
        logger.debug(f"Next page load: {len(items)} items in {time.perf_counter() - started:.2f}s")
        return True

    def _enforce_cache_size(self, filter_key: str):
        """Keep only the ``max_cached_items`` most recent items of the scope."""
        items = self.store.fetch_all(filter_key, order_by=FeedOrdering.LATEST)
        if len(items) <= self.max_cached_items:
            return
        excess = items[self.max_cached_items:]
        self.store.delete(excess)
        logger.info(f"Removed {len(excess)} old items to keep {filter_key} at {self.max_cached_items}")
