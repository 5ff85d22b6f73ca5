"""Tests for CrawlDispatcher deadlines, serialization and shutdown."""

import asyncio

import pytest

from sitemap_indexer.services.dispatcher import CrawlDispatcher


class RecordingProcessor:
    """Processor stand-in that sleeps, tracks overlap and honours cancellation."""

    def __init__(self, delay: float = 0.0, result=None):
        self.delay = delay
        self.result = result if result is not None else []
        self.started: list[str] = []
        self.cancelled: list[str] = []
        self.active = 0
        self.max_active = 0

    async def process(self, site_id: str):
        self.started.append(site_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            return self.result
        except asyncio.CancelledError:
            self.cancelled.append(site_id)
            raise
        finally:
            self.active -= 1


class TestCrawlDispatcher:
    """Test run(), dispatch() and shutdown()."""

    @pytest.mark.asyncio
    async def test_run_returns_processor_result(self):
        processor = RecordingProcessor(result=["page"])
        dispatcher = CrawlDispatcher(processor, timeout_seconds=1.0)

        assert await dispatcher.run("site-1") == ["page"]
        assert processor.started == ["site-1"]

    @pytest.mark.asyncio
    async def test_deadline_cancels_the_run(self):
        processor = RecordingProcessor(delay=5.0)
        dispatcher = CrawlDispatcher(processor, timeout_seconds=0.05)

        assert await dispatcher.run("slow-site") is None
        assert processor.cancelled == ["slow-site"]

    @pytest.mark.asyncio
    async def test_runs_are_serialized_by_default(self):
        processor = RecordingProcessor(delay=0.02)
        dispatcher = CrawlDispatcher(processor, timeout_seconds=1.0)

        tasks = [dispatcher.dispatch(f"site-{n}") for n in range(3)]
        await asyncio.gather(*tasks)

        assert processor.max_active == 1
        assert sorted(processor.started) == ["site-0", "site-1", "site-2"]

    @pytest.mark.asyncio
    async def test_concurrent_slots(self):
        processor = RecordingProcessor(delay=0.05)
        dispatcher = CrawlDispatcher(processor, timeout_seconds=1.0, max_concurrent=2)

        await asyncio.gather(*(dispatcher.dispatch(f"site-{n}") for n in range(4)))

        assert processor.max_active == 2

    @pytest.mark.asyncio
    async def test_pending_tracks_unfinished_tasks(self):
        dispatcher = CrawlDispatcher(RecordingProcessor(delay=0.01), timeout_seconds=1.0)

        task = dispatcher.dispatch("site-1")
        assert dispatcher.pending == 1

        await task
        await asyncio.sleep(0)
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_pending_runs(self):
        processor = RecordingProcessor(delay=0.02, result=["done"])
        dispatcher = CrawlDispatcher(processor, timeout_seconds=1.0)
        task = dispatcher.dispatch("site-1")

        await dispatcher.shutdown()

        assert task.done()
        assert task.result() == ["done"]

    @pytest.mark.asyncio
    async def test_shutdown_timeout_cancels_stragglers(self):
        processor = RecordingProcessor(delay=5.0)
        dispatcher = CrawlDispatcher(processor, timeout_seconds=10.0)
        task = dispatcher.dispatch("site-1")
        await asyncio.sleep(0)

        await dispatcher.shutdown(timeout=0.05)

        assert task.cancelled()
        assert processor.cancelled == ["site-1"]

    @pytest.mark.asyncio
    async def test_shutdown_without_tasks(self):
        dispatcher = CrawlDispatcher(RecordingProcessor(), timeout_seconds=1.0)

        await dispatcher.shutdown(timeout=0.01)

    def test_from_settings(self, settings):
        processor = RecordingProcessor()

        dispatcher = CrawlDispatcher.from_settings(settings, processor)

        assert dispatcher._timeout == settings.crawl_timeout_seconds
