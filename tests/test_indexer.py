import pytest
from src.sitesearch.indexer import IndexBuilder
from conftest import make_site, seed_page


@pytest.mark.asyncio
async def test_rank_is_occurrence_count(storage, indexer):
    site = await make_site(storage)
    page = await seed_page(storage, indexer, site, "/", "<p>Cats and a cat chase the dog</p>")

    assert (await storage.find_lemma(site.id, "cat")).frequency == 1
    # cat x2, chase x1, dog x1
    assert await storage.absolute_relevance([page.id]) == {page.id: pytest.approx(4.0)}


@pytest.mark.asyncio
async def test_markup_is_not_indexed(storage, indexer):
    site = await make_site(storage)
    await seed_page(storage, indexer, site, "/", "<html><script>var secret;</script><body>dog</body></html>")
    assert await storage.find_lemma(site.id, "secret") is None
    assert await storage.find_lemma(site.id, "body") is None
    assert await storage.find_lemma(site.id, "dog") is not None


@pytest.mark.asyncio
async def test_remove_restores_frequencies(storage, indexer):
    site = await make_site(storage)
    await seed_page(storage, indexer, site, "/1", "cat dog")
    page = await seed_page(storage, indexer, site, "/2", "cats mice")
    assert (await storage.find_lemma(site.id, "cat")).frequency == 2

    await indexer.remove_page_index(page)

    assert (await storage.find_lemma(site.id, "cat")).frequency == 1
    assert (await storage.find_lemma(site.id, "mouse")).frequency == 0
    assert (await storage.find_lemma(site.id, "dog")).frequency == 1
    assert await storage.absolute_relevance([page.id]) == {}


@pytest.mark.asyncio
async def test_batches_are_flushed(storage, lemmatizer):
    site = await make_site(storage)
    indexer = IndexBuilder(storage, lemmatizer, batch_size=2)
    sizes = []
    original = storage.save_lemma_batch

    async def spy(site_id, page_id, counts):
        sizes.append(len(counts))
        return await original(site_id, page_id, counts)

    storage.save_lemma_batch = spy
    page = await storage.upsert_page(site.id, "/", 200, "alpha beta gamma delta epsilon")
    written = await indexer.persist_page_index(page, page.content)

    assert written == 5
    assert sizes == [2, 2, 1]
    assert await storage.absolute_relevance([page.id]) == {page.id: pytest.approx(5.0)}


@pytest.mark.asyncio
async def test_empty_page_writes_nothing(storage, indexer):
    site = await make_site(storage)
    page = await storage.upsert_page(site.id, "/", 200, "and the or")
    assert await indexer.persist_page_index(page, page.content) == 0
