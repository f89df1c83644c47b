"""
Crawl lifecycle management: one worker thread per configured site, each
running its own event loop with a bounded crawl tree, plus on-demand
re-indexing of a single page.
"""
from __future__ import annotations
import asyncio
import threading
from typing import Awaitable, Callable, Dict, List, Optional

from .config import AppConfig, SiteConfig
from .crawl import STOPPED_BY_USER, CrawlContext, RecursiveCrawlTask
from .errors import (
    AlreadyRunningError,
    ConsistencyError,
    CrawlCancelledError,
    FetchError,
    InvalidUrlError,
    NotRunningError,
    OutOfScopeError,
    UserInputError,
)
from .fetch import PageFetcher
from .indexer import IndexBuilder
from .lemmatizer import Lemmatizer
from .models import IndexResponse, SiteStatus
from .parse import normalize_site_url, parse_page_url
from .storage import Storage


class SiteWorker:
    """A thread that runs one site's crawl on a private event loop."""

    def __init__(self, site: SiteConfig, target: Callable[[SiteConfig], Awaitable[None]]):
        self.site = site
        self._target = target
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.task: Optional[asyncio.Task] = None
        self.thread = threading.Thread(target=self._run, name=f"crawl-{site.url}", daemon=True)

    def start(self) -> None:
        self.thread.start()

    def is_alive(self) -> bool:
        return self.thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        self.thread.join(timeout)

    def _run(self) -> None:
        try:
            asyncio.run(self._main())
        except asyncio.CancelledError:
            print(f"Worker for {self.site.url} interrupted")

    async def _main(self) -> None:
        self.loop = asyncio.get_running_loop()
        self.task = asyncio.current_task()
        await self._target(self.site)

    def interrupt(self) -> None:
        """Cancel the running crawl tree from another thread."""
        loop, task = self.loop, self.task
        if loop is None or task is None:
            return
        try:
            loop.call_soon_threadsafe(task.cancel)
        except RuntimeError:
            # Loop already closed; the worker has finished
            pass


class CrawlOrchestrator:
    def __init__(self, config: AppConfig, storage: Storage, lemmatizer: Lemmatizer,
                 crawl_fetcher: Optional[PageFetcher] = None,
                 page_fetcher: Optional[PageFetcher] = None):
        self.config = config
        self.storage = storage
        self.indexer = IndexBuilder(storage, lemmatizer, config.crawl.index_batch_size)
        self.crawl_fetcher = crawl_fetcher or PageFetcher(config.http)
        self.page_fetcher = page_fetcher or PageFetcher(config.http, timeout=config.http.single_page_timeout)
        self.cancel_event = threading.Event()
        self._workers: Dict[str, SiteWorker] = {}
        self._lock = threading.Lock()

    # ------------------ full crawl ------------------

    def is_running(self) -> bool:
        with self._lock:
            return any(w.is_alive() for w in self._workers.values())

    def start_full_crawl(self) -> IndexResponse:
        """Launch one worker per configured site and return without waiting."""
        with self._lock:
            if any(w.is_alive() for w in self._workers.values()):
                print("Full crawl requested while one is already running")
                return IndexResponse.from_error(AlreadyRunningError("Indexing is already running"))

            print("Starting full crawl of configured sites")
            self.cancel_event.clear()
            self._workers = {}
            for site in self.config.sites:
                try:
                    key = normalize_site_url(site.url)
                except InvalidUrlError as e:
                    print(f"  -> Skipping misconfigured site {site.url!r}: {e}")
                    continue
                if key in self._workers:
                    continue
                self._workers[key] = SiteWorker(site, self._crawl_site)

            for worker in self._workers.values():
                worker.start()
        return IndexResponse.ok()

    async def _crawl_site(self, site_cfg: SiteConfig) -> None:
        site = None
        url = site_cfg.url
        try:
            url = normalize_site_url(site_cfg.url)
            print(f"Indexing site {url}")
            await self.storage.delete_site_by_url(url)
            site = await self.storage.create_site(url, site_cfg.name, SiteStatus.INDEXING)
            ctx = CrawlContext(
                site=site,
                storage=self.storage,
                fetcher=self.crawl_fetcher,
                indexer=self.indexer,
                config=self.config.crawl,
                cancel_event=self.cancel_event,
                semaphore=asyncio.Semaphore(max(1, self.config.crawl.max_concurrency)),
            )
            await RecursiveCrawlTask(url, ctx).run()
        except (CrawlCancelledError, asyncio.CancelledError):
            print(f"Indexing of {url} stopped by user")
            if site is not None:
                await self.storage.update_site_status(site.id, SiteStatus.FAILED, STOPPED_BY_USER)
            return
        except Exception as e:
            print(f"Error indexing {url}: {e!r}")
            if site is not None:
                await self.storage.update_site_status(site.id, SiteStatus.FAILED, f"Crawl error: {e}")
            return

        await self.storage.update_site_status(site.id, SiteStatus.INDEXED)
        print(f"Indexing of {url} complete")

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until every site worker has finished."""
        with self._lock:
            workers = list(self._workers.values())
        for worker in workers:
            worker.join(timeout)

    async def stop_crawl(self) -> IndexResponse:
        if not await self.storage.exists_site_with_status(SiteStatus.INDEXING):
            print("Stop requested but no indexing is running")
            return IndexResponse.from_error(NotRunningError("Indexing is not running"))

        print("Stopping indexing on request")
        self.cancel_event.set()
        with self._lock:
            workers = list(self._workers.values())
        for worker in workers:
            worker.interrupt()

        for site in await self.storage.find_sites_by_status(SiteStatus.INDEXING):
            await self.storage.update_site_status(site.id, SiteStatus.FAILED, STOPPED_BY_USER)
            print(f"  -> Indexing of {site.url} stopped")
        return IndexResponse.ok()

    # ------------------ single page ------------------

    def _configured_site(self, origin: str) -> SiteConfig:
        for site in self.config.sites:
            try:
                if normalize_site_url(site.url) == origin:
                    return site
            except InvalidUrlError:
                continue
        raise OutOfScopeError("This page is outside the sites listed in the configuration")

    async def index_single_page(self, url: str) -> IndexResponse:
        print(f"Indexing single page {url}")
        try:
            origin, path = parse_page_url(url)
            site_cfg = self._configured_site(origin)
        except UserInputError as e:
            return IndexResponse.from_error(e)

        site = await self.storage.find_site_by_url(origin)
        if site is None:
            site = await self.storage.create_site(origin, site_cfg.name, SiteStatus.INDEXING)
            print(f"  -> New site row for {origin}")

        try:
            existing = await self.storage.find_page(site.id, path)
            if existing is not None:
                print(f"  -> Removing previous version of {path}")
                await self.indexer.remove_page_index(existing)
                await self.storage.delete_page(existing.id)

            result = await self.page_fetcher.fetch(url)
            page = await self.storage.upsert_page(site.id, path, result.status_code, result.content)
            await self.indexer.persist_page_index(page, result.content)
        except (FetchError, ConsistencyError) as e:
            print(f"  -> Failed to index {url}: {e}")
            await self.storage.update_site_status(site.id, SiteStatus.FAILED, str(e))
            return IndexResponse.from_error(e)
        except Exception as e:
            print(f"  -> Error indexing {url}: {e!r}")
            await self.storage.update_site_status(site.id, SiteStatus.FAILED, f"Indexing error: {e}")
            return IndexResponse.from_error(e)

        await self.storage.update_site_status(site.id, SiteStatus.INDEXED)
        return IndexResponse.ok()

    @property
    def workers(self) -> List[SiteWorker]:
        with self._lock:
            return list(self._workers.values())
