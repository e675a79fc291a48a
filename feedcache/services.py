import logging
import time
from dataclasses import dataclass, field

from feedcache import config
from feedcache.annotations import UserAnnotationCache
from feedcache.controller import FeedCacheController
from feedcache.freshness import FeedFreshness
from feedcache.media import TemporaryMedia
from feedcache.remote import HttpFeedSource, HttpUserDirectory
from feedcache.schemas import FeedOrdering
from feedcache.store import LocalFeedStore

logger = logging.getLogger(__name__)


@dataclass
class FeedServices:
    """Everything the feed screens share, built once at startup."""

    annotations: UserAnnotationCache
    media: TemporaryMedia
    stores: dict[str, LocalFeedStore] = field(default_factory=dict)
    freshness: dict[str, FeedFreshness] = field(default_factory=dict)
    controllers: dict[str, FeedCacheController] = field(default_factory=dict)

    def add_feed(self, ordering: FeedOrdering, source, **options) -> FeedCacheController:
        name = ordering.value
        store = LocalFeedStore(feed=name)
        freshness = FeedFreshness(clock=options.get("clock", time.time))
        controller = FeedCacheController(
            source,
            store,
            self.annotations,
            freshness,
            media=self.media,
            ordering=ordering,
            **options,
        )
        self.stores[name] = store
        self.freshness[name] = freshness
        self.controllers[name] = controller
        return controller

    def sign_out(self):
        """Forget every cached feed, user annotation and media file."""
        for controller in self.controllers.values():
            controller.reset()
        for store in self.stores.values():
            store.clear()
        for freshness in self.freshness.values():
            freshness.clear()
        self.annotations.clear()
        self.media.clear()
        logger.info("Cleared all local feed state")


def build_services(source=None, directory=None, media_dir=None, **options) -> FeedServices:
    """Wire the latest and trending feeds against the configured backend."""
    source = source or HttpFeedSource(config.FEED_API_URL, config.HTTP_TIMEOUT)
    directory = directory or HttpUserDirectory(config.FEED_API_URL, config.HTTP_TIMEOUT)

    services = FeedServices(
        annotations=UserAnnotationCache(directory),
        media=TemporaryMedia(media_dir or config.MEDIA_TEMP_DIR),
    )
    for ordering in FeedOrdering:
        services.add_feed(ordering, source, **options)
    return services
