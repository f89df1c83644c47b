from __future__ import annotations
import asyncio
import threading
from dataclasses import dataclass, field
from typing import List, Sequence, Set

from .config import CrawlConfig
from .errors import CrawlCancelledError
from .fetch import PageFetcher
from .indexer import IndexBuilder
from .models import Site
from .parse import is_crawlable_link, normalize_path, strip_query
from .storage import Storage

STOPPED_BY_USER = "stopped by user"


@dataclass
class CrawlContext:
    """Everything a crawl tree for one site shares.

    `semaphore` bounds how many tasks of the site fetch at the same time;
    it must be created on the event loop that runs the tree. `claimed_paths`
    holds every path a task has taken ownership of storing and indexing.
    """
    site: Site
    storage: Storage
    fetcher: PageFetcher
    indexer: IndexBuilder
    config: CrawlConfig
    cancel_event: threading.Event
    semaphore: asyncio.Semaphore
    claimed_paths: Set[str] = field(default_factory=set)

    def claim(self, path: str) -> bool:
        """Take ownership of `path`; False if another task already holds it."""
        if path in self.claimed_paths:
            return False
        self.claimed_paths.add(path)
        return True

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CrawlCancelledError(STOPPED_BY_USER)


async def fork_join(tasks: Sequence["RecursiveCrawlTask"]) -> None:
    """Run child tasks concurrently and wait for all of them.

    The first failure cancels the remaining siblings and propagates.
    """
    if not tasks:
        return
    running = [asyncio.ensure_future(t.run()) for t in tasks]
    try:
        await asyncio.gather(*running)
    except BaseException:
        for r in running:
            if not r.done():
                r.cancel()
        await asyncio.gather(*running, return_exceptions=True)
        raise


class RecursiveCrawlTask:
    """Fetch one URL of a site, store and index it, then crawl its links."""

    def __init__(self, url: str, ctx: CrawlContext):
        self.url = url
        self.ctx = ctx

    async def run(self) -> None:
        ctx = self.ctx
        ctx.check_cancelled()

        async with ctx.semaphore:
            ctx.check_cancelled()
            await asyncio.sleep(ctx.config.politeness_delay)
            print(f"Fetching {self.url}")
            result = await ctx.fetcher.fetch(self.url)

        path = normalize_path(self.url)
        # No await between the check and the claim: all tasks of a site share one loop
        if not ctx.claim(path):
            return
        if await ctx.storage.find_page(ctx.site.id, path) is not None:
            return

        page = await ctx.storage.upsert_page(ctx.site.id, path, result.status_code, result.content)
        await ctx.storage.touch_site(ctx.site.id)
        print(f"  -> Stored page site_id={ctx.site.id} path='{path}' (HTTP {result.status_code})")
        await ctx.indexer.persist_page_index(page, result.content)

        children = self._children(result.links)
        if children:
            print(f"  -> {len(children)} links to follow from {self.url}")
        await fork_join(children)

    def _children(self, links: List[str]) -> List["RecursiveCrawlTask"]:
        children = []
        seen = set()
        for link in links:
            self.ctx.check_cancelled()
            if not is_crawlable_link(link, self.ctx.site.url, self.ctx.config.blocked_extensions):
                continue
            link = strip_query(link)
            if link in seen:
                continue
            seen.add(link)
            children.append(RecursiveCrawlTask(link, self.ctx))
        return children
