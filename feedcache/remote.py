import logging

import httpx
from pydantic import ValidationError

from feedcache import config
from feedcache.errors import DecodeError, NetworkError, NotFoundError
from feedcache.schemas import FeedItem, FeedOrdering, FeedPage, UserAnnotation

logger = logging.getLogger(__name__)


class HttpFeedSource:
    """Paged news query against the remote backend.

    ``GET /news?filter_key=&limit=&order=&cursor=`` answers with
    ``{"cursor": ..., "feed": [...]}``, newest (or most liked) first.
    """

    def __init__(self, base_url: str = config.FEED_API_URL, timeout: float = config.HTTP_TIMEOUT,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def fetch_page(self, filter_key: str, page_size: int, after_cursor: str | None = None,
                         ordering: FeedOrdering = FeedOrdering.LATEST) -> FeedPage:
        params = {"filter_key": filter_key, "limit": page_size, "order": ordering.value}
        if after_cursor:
            params["cursor"] = after_cursor

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.get(f"{self.base_url}/news", params=params)
        except httpx.HTTPError as e:
            raise NetworkError(f"News fetch failed for {filter_key}: {e}") from e

        if r.status_code != 200:
            raise NetworkError(f"News fetch failed for {filter_key}: HTTP {r.status_code}")

        try:
            body = r.json()
        except ValueError as e:
            raise DecodeError(f"News response for {filter_key} is not JSON") from e

        records = body.get("feed") if isinstance(body, dict) else None
        if not isinstance(records, list):
            raise DecodeError(f"News response for {filter_key} has no feed list")

        items = []
        for record in records:
            if not isinstance(record, dict):
                logger.warning(f"Skipping non-object news record for {filter_key}")
                continue
            record["filter_key"] = filter_key
            try:
                items.append(FeedItem.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed news record {record.get('id')}: {e.error_count()} errors")

        cursor = body.get("cursor")
        return FeedPage(
            items=items,
            next_cursor=str(cursor) if cursor else None,
            raw_count=len(records),
        )


class HttpUserDirectory:
    """User lookups used to annotate feed items with author details."""

    def __init__(self, base_url: str = config.FEED_API_URL, timeout: float = config.HTTP_TIMEOUT,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def fetch_user(self, user_id: str) -> UserAnnotation:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.get(f"{self.base_url}/users/{user_id}")
        except httpx.HTTPError as e:
            raise NetworkError(f"User fetch failed for {user_id}: {e}") from e

        if r.status_code == 404:
            raise NotFoundError(f"User {user_id} not found")
        if r.status_code != 200:
            raise NetworkError(f"User fetch failed for {user_id}: HTTP {r.status_code}")

        try:
            data = r.json()
            return UserAnnotation(
                display_name=data["username"],
                avatar_url=data.get("profile_image_url") or "",
                role=data.get("role") or "endUser",
            )
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise DecodeError(f"Malformed user record for {user_id}") from e
