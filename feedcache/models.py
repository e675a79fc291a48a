import logging

from peewee import (
    BigIntegerField,
    CompositeKey,
    IntegerField,
    Model,
    SqliteDatabase,
    TextField,
)

logger = logging.getLogger(__name__)

# Deferred; bound to a file (or ":memory:") by init_db()
db = SqliteDatabase(None)


class CachedFeedItem(Model):
    feed = TextField()          # 'latest' or 'trending'
    item_id = TextField()
    owner_id = TextField()
    body = TextField()
    created_at = BigIntegerField()  # microseconds since the UNIX epoch
    like_count = IntegerField(default=0)
    comment_count = IntegerField(default=0)
    filter_key = TextField()    # e.g. a postal code
    media_urls = TextField(null=True)   # JSON list of URLs
    annotation = TextField(null=True)   # JSON of the owner's display annotation

    class Meta:
        database = db
        table_name = "cached_feed_item"
        primary_key = CompositeKey("feed", "item_id")
        indexes = (
            (("feed", "filter_key", "created_at"), False),
        )


MODELS = [CachedFeedItem]


def init_db(path: str):
    """Bind the database to ``path``, connect and ensure tables exist."""
    db.init(path, pragmas={"journal_mode": "wal", "foreign_keys": 1})
    db.connect(reuse_if_open=True)
    db.create_tables(MODELS, safe=True)
    logger.info(f"Feed cache database ready at {path}")
    return db
