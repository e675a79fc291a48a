"""Tests for the memoized user annotation cache."""

import pytest

from feedcache.errors import NetworkError
from feedcache.schemas import UserAnnotation


@pytest.mark.asyncio
async def test_get_fetches_once_then_serves_from_memory(annotations, directory) -> None:
    first = await annotations.get("u1")
    second = await annotations.get("u1")

    assert first == UserAnnotation(display_name="padda", avatar_url="https://img/u1.png")
    assert second is first
    assert directory.calls == ["u1"]


@pytest.mark.asyncio
async def test_unknown_user_yields_none_and_is_not_cached(annotations, directory) -> None:
    assert await annotations.get("ghost") is None
    assert await annotations.get("ghost") is None
    assert directory.calls == ["ghost", "ghost"]
    assert len(annotations) == 0


@pytest.mark.asyncio
async def test_network_failure_yields_none(annotations, directory, monkeypatch) -> None:
    async def unreachable(user_id):
        raise NetworkError("timed out")

    monkeypatch.setattr(directory, "fetch_user", unreachable)

    assert await annotations.get("u1") is None


@pytest.mark.asyncio
async def test_get_many_deduplicates_and_skips_misses(annotations, directory) -> None:
    result = await annotations.get_many(["u1", "u2", "u1", "ghost", "u2"])

    assert set(result) == {"u1", "u2"}
    assert result["u2"].role == "reporter"
    assert sorted(directory.calls) == ["ghost", "u1", "u2"]


@pytest.mark.asyncio
async def test_clear_forces_refetch(annotations, directory) -> None:
    await annotations.get("u1")
    annotations.clear()
    await annotations.get("u1")

    assert directory.calls == ["u1", "u1"]


def test_set_overwrites_existing_entry(annotations) -> None:
    annotations.set("u1", UserAnnotation(display_name="old"))
    annotations.set("u1", UserAnnotation(display_name="new"))

    assert annotations.peek("u1").display_name == "new"
