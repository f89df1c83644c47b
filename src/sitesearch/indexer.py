from __future__ import annotations
import asyncio
from typing import List, Tuple

from .lemmatizer import Lemmatizer
from .models import Page
from .parse import extract_text
from .storage import Storage


class IndexBuilder:
    """Turns page content into lemma frequencies and index rows."""

    def __init__(self, storage: Storage, lemmatizer: Lemmatizer, batch_size: int = 5000):
        self.storage = storage
        self.lemmatizer = lemmatizer
        self.batch_size = batch_size

    async def _lemmatize(self, func, content: str):
        # Lemmatization is CPU-bound; keep the event loop free for fetches
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, extract_text, content)
        return await loop.run_in_executor(None, func, text)

    async def persist_page_index(self, page: Page, content: str) -> int:
        """Add one to each distinct lemma's frequency and write rank rows for the page.

        Writes go out in batches of `batch_size` index rows. Returns the number
        of rows written.
        """
        counts = await self._lemmatize(self.lemmatizer.collect_lemma_counts, content)
        written = 0
        batch: List[Tuple[str, int]] = []
        for lemma, count in counts.items():
            batch.append((lemma, count))
            if len(batch) >= self.batch_size:
                written += await self.storage.save_lemma_batch(page.site_id, page.id, batch)
                batch = []
        if batch:
            written += await self.storage.save_lemma_batch(page.site_id, page.id, batch)
        print(f"  -> Indexed {written} lemmas for page id={page.id} path='{page.path}'")
        return written

    async def remove_page_index(self, page: Page) -> None:
        """Undo persist_page_index for a stored page.

        The lemma set is recovered by lemmatizing the stored content again,
        not from the index rows.
        """
        lemmas = await self._lemmatize(self.lemmatizer.lemma_set, page.content)
        await self.storage.decrement_lemmas(page.site_id, lemmas)
        await self.storage.delete_index_entries(page.id)
