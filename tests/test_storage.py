import pytest
from src.sitesearch.models import SiteStatus
from conftest import make_site, seed_page


@pytest.mark.asyncio
async def test_upsert_page_is_idempotent(storage):
    site = await make_site(storage)
    first = await storage.upsert_page(site.id, "/a", 200, "one")
    second = await storage.upsert_page(site.id, "/a", 404, "two")
    assert first.id == second.id
    assert second.code == 404
    assert second.content == "two"
    assert await storage.count_pages(site.id) == 1


@pytest.mark.asyncio
async def test_same_path_on_two_sites(storage):
    a = await make_site(storage, "https://a.example")
    b = await make_site(storage, "https://b.example")
    pa = await storage.upsert_page(a.id, "/", 200, "x")
    pb = await storage.upsert_page(b.id, "/", 200, "y")
    assert pa.id != pb.id
    assert await storage.count_pages() == 2


@pytest.mark.asyncio
async def test_delete_site_cascades(storage, indexer):
    site = await make_site(storage)
    page = await seed_page(storage, indexer, site, "/", "cats and dogs")
    await storage.delete_site_by_url(site.url)

    assert await storage.find_site_by_url(site.url) is None
    assert await storage.find_page(site.id, "/") is None
    assert await storage.find_lemma(site.id, "cat") is None
    assert await storage.absolute_relevance([page.id]) == {}


@pytest.mark.asyncio
async def test_site_status_updates(storage):
    site = await make_site(storage, status=SiteStatus.INDEXING)
    assert await storage.exists_site_with_status(SiteStatus.INDEXING)

    await storage.update_site_status(site.id, SiteStatus.FAILED, "boom")
    failed = await storage.find_site_by_url(site.url)
    assert failed.status == SiteStatus.FAILED
    assert failed.last_error == "boom"
    assert failed.status_time >= site.status_time

    await storage.update_site_status(site.id, SiteStatus.INDEXED)
    indexed = await storage.find_site_by_url(site.url)
    assert indexed.status == SiteStatus.INDEXED
    assert indexed.last_error is None
    assert not await storage.exists_site_with_status(SiteStatus.INDEXING)
    assert [s.id for s in await storage.find_sites_by_status(SiteStatus.INDEXED)] == [site.id]


@pytest.mark.asyncio
async def test_lemma_frequency_counts_pages(storage, indexer):
    site = await make_site(storage)
    await seed_page(storage, indexer, site, "/1", "cat cat cat")
    await seed_page(storage, indexer, site, "/2", "cat dog")

    assert (await storage.find_lemma(site.id, "cat")).frequency == 2
    assert (await storage.find_lemma(site.id, "dog")).frequency == 1

    await storage.decrement_lemmas(site.id, ["cat"])
    assert (await storage.find_lemma(site.id, "cat")).frequency == 1


@pytest.mark.asyncio
async def test_lemma_shares(storage, indexer):
    site = await make_site(storage)
    await seed_page(storage, indexer, site, "/1", "cat dog")
    await seed_page(storage, indexer, site, "/2", "cat")
    await seed_page(storage, indexer, site, "/3", "bird")
    await seed_page(storage, indexer, site, "/4", "fish")

    cat = await storage.find_lemma(site.id, "cat")
    assert await storage.lemma_page_share(cat.id) == pytest.approx(0.5)
    assert await storage.max_lemma_share(site.id) == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_max_lemma_share_empty_site(storage):
    site = await make_site(storage)
    assert await storage.max_lemma_share(site.id) == 0.0


@pytest.mark.asyncio
async def test_find_lemmas_and_pages(storage, indexer):
    site = await make_site(storage)
    p1 = await seed_page(storage, indexer, site, "/1", "cat dog")
    p2 = await seed_page(storage, indexer, site, "/2", "dog")

    found = await storage.find_lemmas(site.id, ["dog", "cat", "unicorn"])
    assert sorted(l.lemma for l in found) == ["cat", "dog"]

    dog = await storage.find_lemma(site.id, "dog")
    assert await storage.page_ids_for_lemma(dog.id) == {p1.id, p2.id}
    pages = await storage.get_pages([p1.id, p2.id])
    assert pages[p2.id].path == "/2"
