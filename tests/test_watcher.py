import asyncio

import pytest

from conftest import write
from molesk_backend.cache import ContentCache
from molesk_backend.watcher import CacheInvalidator, build_tree_signature


def test_signature_changes_when_files_are_added(tmp_path):
    write(tmp_path / "a.md", "x")
    before = build_tree_signature(tmp_path)
    assert build_tree_signature(tmp_path) == before

    write(tmp_path / "sub" / "b.md", "x")
    assert build_tree_signature(tmp_path) != before


def test_signature_of_missing_root_raises(tmp_path):
    with pytest.raises(OSError):
        build_tree_signature(tmp_path / "missing")


def test_poll_once_reports_changes_after_baseline(tmp_path):
    write(tmp_path / "a.md", "x")

    async def scenario():
        invalidator = CacheInvalidator(tmp_path, ContentCache())
        first = await invalidator.poll_once()
        unchanged = await invalidator.poll_once()
        write(tmp_path / "b.md", "x")
        changed = await invalidator.poll_once()
        return first, unchanged, changed, invalidator.events.qsize()

    assert asyncio.run(scenario()) == (False, False, True, 1)


def test_drain_clears_caches(tmp_path):
    cache = ContentCache()
    cache.set_tree(("root", None), "<ul></ul>")
    cache.feed = "<rss/>"

    async def scenario():
        invalidator = CacheInvalidator(tmp_path, cache)
        consumer = asyncio.create_task(invalidator.drain())
        invalidator.notify()
        invalidator.notify()
        await invalidator.events.join()
        consumer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await consumer

    asyncio.run(scenario())

    assert cache.get_tree(("root", None)) is None
    assert cache.feed is None
    assert cache.invalidations == 2


def test_start_on_missing_root_does_not_watch(tmp_path, caplog):
    async def scenario():
        invalidator = CacheInvalidator(tmp_path / "missing", ContentCache())
        return await invalidator.start()

    with caplog.at_level("WARNING", logger="molesk_backend.watcher"):
        assert asyncio.run(scenario()) is False
    assert "Failed to set up file watcher" in caplog.text


def test_running_watcher_invalidates_on_change(tmp_path):
    write(tmp_path / "a.md", "x")
    cache = ContentCache()

    async def scenario():
        invalidator = CacheInvalidator(tmp_path, cache, interval=0.05)
        assert await invalidator.start() is True
        try:
            write(tmp_path / "new.md", "x")
            for _ in range(100):
                if cache.invalidations:
                    break
                await asyncio.sleep(0.05)
        finally:
            await invalidator.stop()

    asyncio.run(scenario())

    assert cache.invalidations >= 1
