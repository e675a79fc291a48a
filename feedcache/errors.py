class FeedError(Exception):
    """Base for every recoverable feed cache failure."""


class NetworkError(FeedError):
    """Remote backend unreachable, timed out or answered with an error status."""


class DecodeError(FeedError):
    """Remote payload could not be decoded."""


class StorageError(FeedError):
    """Local SQLite cache failed to read or write."""


class NotFoundError(FeedError):
    """Remote record does not exist."""
