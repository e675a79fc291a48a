"""Tests for the per-key freshness tracker and temporary media cleanup."""

from conftest import FakeClock
from feedcache.freshness import FeedFreshness
from feedcache.media import TemporaryMedia


def test_unknown_key_is_uninitialized_and_stale() -> None:
    freshness = FeedFreshness(clock=FakeClock())

    assert freshness.is_initialized("560001") is False
    assert freshness.should_force_refresh("560001", 30) is True


def test_mark_initialized_starts_expiry_window() -> None:
    clock = FakeClock()
    freshness = FeedFreshness(clock=clock)

    freshness.mark_initialized("560001")
    assert freshness.is_initialized("560001") is True
    assert freshness.should_force_refresh("560001", 30) is False

    clock.advance(30 * 60)
    assert freshness.should_force_refresh("560001", 30) is False

    clock.advance(1)
    assert freshness.should_force_refresh("560001", 30) is True


def test_clear_forgets_every_key() -> None:
    freshness = FeedFreshness(clock=FakeClock())
    freshness.mark_initialized("560001")
    freshness.mark_initialized("560002")

    freshness.clear()

    assert not freshness.is_initialized("560001")
    assert freshness.should_force_refresh("560002", 30)


def test_media_clear_removes_files_and_folders(tmp_path) -> None:
    (tmp_path / "a.jpg").write_bytes(b"jpg")
    (tmp_path / "trimmed").mkdir()
    (tmp_path / "trimmed" / "clip.mp4").write_bytes(b"mp4")

    removed = TemporaryMedia(str(tmp_path)).clear()

    assert removed == 2
    assert list(tmp_path.iterdir()) == []


def test_media_clear_on_missing_directory(tmp_path) -> None:
    assert TemporaryMedia(str(tmp_path / "missing")).clear() == 0
