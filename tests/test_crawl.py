import asyncio
import threading

import pytest
from src.sitesearch.crawl import CrawlContext, RecursiveCrawlTask, fork_join
from src.sitesearch.errors import CrawlCancelledError, NetworkError
from conftest import make_site


def _context(site, storage, fetcher, indexer, app_config, cancel_event=None):
    return CrawlContext(
        site=site,
        storage=storage,
        fetcher=fetcher,
        indexer=indexer,
        config=app_config.crawl,
        cancel_event=cancel_event or threading.Event(),
        semaphore=asyncio.Semaphore(app_config.crawl.max_concurrency),
    )


@pytest.mark.asyncio
async def test_cycle_terminates(storage, indexer, app_config, make_fetcher):
    pages = {
        "/": '<a href="/b">b</a>',
        "/b": '<a href="/">home</a><a href="/b">self</a>',
    }
    requested = []
    site = await make_site(storage)
    ctx = _context(site, storage, make_fetcher(pages, requested), indexer, app_config)

    await RecursiveCrawlTask(site.url, ctx).run()

    assert await storage.count_pages(site.id) == 2
    assert set(requested) == {"/", "/b"}


@pytest.mark.asyncio
async def test_link_filtering(storage, indexer, app_config, make_fetcher):
    pages = {
        "/": (
            '<a href="/report.pdf">pdf</a>'
            '<a href="https://other.org/x">other</a>'
            '<a href="/a#section">fragment</a>'
            '<a href="https://www.example.com/c?x=1">www</a>'
            '<a href="/c?y=2">query</a>'
        ),
        "/c": "leaf",
    }
    requested = []
    site = await make_site(storage)
    ctx = _context(site, storage, make_fetcher(pages, requested), indexer, app_config)

    await RecursiveCrawlTask(site.url, ctx).run()

    assert "/report.pdf" not in requested
    assert "/a" not in requested
    assert await storage.find_page(site.id, "/c") is not None
    assert await storage.count_pages(site.id) == 2


@pytest.mark.asyncio
async def test_error_pages_are_stored(storage, indexer, app_config, make_fetcher):
    site = await make_site(storage)
    ctx = _context(site, storage, make_fetcher({"/": '<a href="/missing">m</a>'}), indexer, app_config)

    await RecursiveCrawlTask(site.url, ctx).run()

    missing = await storage.find_page(site.id, "/missing")
    assert missing.code == 404
    assert missing.content == "not found"


@pytest.mark.asyncio
async def test_cancelled_before_fetch(storage, indexer, app_config, make_fetcher):
    requested = []
    site = await make_site(storage)
    cancel = threading.Event()
    cancel.set()
    ctx = _context(site, storage, make_fetcher({"/": "home"}, requested), indexer, app_config, cancel)

    with pytest.raises(CrawlCancelledError):
        await RecursiveCrawlTask(site.url, ctx).run()
    assert requested == []
    assert await storage.count_pages(site.id) == 0


@pytest.mark.asyncio
async def test_child_failure_propagates(storage, indexer, app_config, make_fetcher):
    pages = {"/": '<a href="/ok">ok</a><a href="/down">down</a>', "/ok": "fine"}
    site = await make_site(storage)
    ctx = _context(site, storage, make_fetcher(pages, failing=("/down",)), indexer, app_config)

    with pytest.raises(NetworkError):
        await RecursiveCrawlTask(site.url, ctx).run()
    assert await storage.find_page(site.id, "/") is not None


@pytest.mark.asyncio
async def test_fork_join_cancels_siblings():
    started = asyncio.Event()
    sibling_cancelled = []

    class Slow:
        async def run(self):
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                sibling_cancelled.append(True)
                raise

    class Failing:
        async def run(self):
            await started.wait()
            raise RuntimeError("child failed")

    with pytest.raises(RuntimeError):
        await fork_join([Slow(), Failing()])
    assert sibling_cancelled == [True]


@pytest.mark.asyncio
async def test_fork_join_empty():
    await fork_join([])


@pytest.mark.asyncio
async def test_shared_link_indexed_once(storage, indexer, app_config, make_fetcher):
    pages = {
        "/": '<a href="/a">a</a><a href="/b">b</a>',
        "/a": '<a href="/d">d</a>',
        "/b": '<a href="/d">d</a>',
        "/d": "unicorn",
    }
    site = await make_site(storage)
    ctx = _context(site, storage, make_fetcher(pages), indexer, app_config)

    await RecursiveCrawlTask(site.url, ctx).run()

    assert await storage.count_pages(site.id) == 4
    assert (await storage.find_lemma(site.id, "unicorn")).frequency == 1
    page = await storage.find_page(site.id, "/d")
    assert await storage.absolute_relevance([page.id]) == {page.id: pytest.approx(1.0)}


def test_claim_is_exclusive():
    ctx = CrawlContext(site=None, storage=None, fetcher=None, indexer=None, config=None,
                       cancel_event=threading.Event(), semaphore=None)
    assert ctx.claim("/x")
    assert not ctx.claim("/x")
    assert ctx.claim("/y")
