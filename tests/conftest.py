import pytest
import asyncio
import os
import sys

import httpx

# Add src to python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from src.sitesearch.config import AppConfig, CrawlConfig, HttpConfig, SearchConfig, SiteConfig
from src.sitesearch.database import DatabaseConfig
from src.sitesearch.fetch import PageFetcher
from src.sitesearch.indexer import IndexBuilder
from src.sitesearch.lemmatizer import Lemmatizer
from src.sitesearch.models import SiteStatus
from src.sitesearch.storage import Storage


class FakeAnalyzer:
    """Identity analyzer with a tiny stop list and a few irregular forms."""
    STOP = {"and", "or", "but", "the", "in", "on", "и", "на", "для"}
    FORMS = {"cats": "cat", "dogs": "dog", "mice": "mouse", "кошки": "кошка"}

    def analyze(self, word):
        if word == "boom":
            raise ValueError("analyzer failure")
        if word in self.STOP:
            return None
        return self.FORMS.get(word, word)


def site_transport(pages, requested=None, failing=()):
    """MockTransport serving `pages` by path; paths in `failing` raise a connection error."""
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path or "/"
        if requested is not None:
            requested.append(path)
        if path in failing:
            raise httpx.ConnectError("connection refused", request=request)
        if path in pages:
            return httpx.Response(200, text=pages[path], headers={"content-type": "text/html"})
        return httpx.Response(404, text="not found")
    return httpx.MockTransport(handler)


@pytest.fixture
def http_config():
    return HttpConfig(
        user_agent="TestBot/1.0",
        timeout=5,
        single_page_timeout=5,
        max_attempts=3,
        retry_delay=0,
        enable_http2=False,
    )


@pytest.fixture
def app_config(http_config):
    return AppConfig(
        sites=[SiteConfig(url="https://www.example.com/", name="Example")],
        http=http_config,
        crawl=CrawlConfig(politeness_delay=0, max_concurrency=4, index_batch_size=5000),
        search=SearchConfig(),
    )


@pytest.fixture
def lemmatizer():
    return Lemmatizer(russian=FakeAnalyzer(), english=FakeAnalyzer())


@pytest.fixture
def storage(tmp_path):
    s = Storage(DatabaseConfig(backend="sqlite", sqlite_path=str(tmp_path / "index.db")))
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(s.init_schema())
    finally:
        loop.close()
    return s


@pytest.fixture
def indexer(storage, lemmatizer):
    return IndexBuilder(storage, lemmatizer)


@pytest.fixture
def make_fetcher(http_config):
    def _make(pages, requested=None, failing=()):
        return PageFetcher(http_config, transport=site_transport(pages, requested, failing))
    return _make


async def seed_page(storage, indexer, site, path, content):
    page = await storage.upsert_page(site.id, path, 200, content)
    await indexer.persist_page_index(page, content)
    return page


async def make_site(storage, url="https://example.com", name="Example", status=SiteStatus.INDEXED):
    return await storage.create_site(url, name, status)
