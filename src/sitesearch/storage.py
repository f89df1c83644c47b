"""
Storage operations for sites, pages, lemmas and the search index.

Every method opens its own connection through the database abstraction
layer, so a single Storage instance can be shared by crawl workers that run
their own event loops on separate threads.
"""

from __future__ import annotations
import time
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .database import DatabaseConfig, DatabaseFactory
from .errors import ConsistencyError
from .models import IndexEntry, Lemma, Page, Site, SiteStatus
from .schema import get_schema_statements

# Chunk size for IN (...) lists
CHUNK_SIZE = 500

SITE_COLUMNS = "id, url, name, status, status_time, last_error"
PAGE_COLUMNS = "id, site_id, path, code, content"
LEMMA_COLUMNS = "id, site_id, lemma, frequency"


def _chunks(items: Sequence, size: int = CHUNK_SIZE) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


class Storage:
    def __init__(self, config: DatabaseConfig):
        self.config = config

    def _connect(self):
        return DatabaseFactory.create_connection(self.config)

    async def init_schema(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        async with self._connect() as conn:
            for statement in get_schema_statements(self.config.backend):
                await conn.executescript(statement)
            await conn.commit()

    # ------------------ sites ------------------

    async def delete_site_by_url(self, url: str) -> None:
        """Drop every site row for `url`; pages, lemmas and index rows cascade."""
        async with self._connect() as conn:
            await conn.execute("DELETE FROM sites WHERE url = ?", url)
            await conn.commit()

    async def create_site(self, url: str, name: str, status: SiteStatus) -> Site:
        async with self._connect() as conn:
            row = await conn.fetchone(
                f"INSERT INTO sites (url, name, status, status_time) VALUES (?, ?, ?, ?) RETURNING {SITE_COLUMNS}",
                url, name, status.value, int(time.time()),
            )
            await conn.commit()
        if row is None:
            raise ConsistencyError(f"Site not found after insert: {url}")
        return Site.from_row(row)

    async def find_site_by_url(self, url: str) -> Optional[Site]:
        async with self._connect() as conn:
            row = await conn.fetchone(
                f"SELECT {SITE_COLUMNS} FROM sites WHERE url = ? ORDER BY id DESC LIMIT 1", url
            )
        return Site.from_row(row) if row else None

    async def find_sites_by_status(self, status: SiteStatus) -> List[Site]:
        async with self._connect() as conn:
            rows = await conn.fetchall(
                f"SELECT {SITE_COLUMNS} FROM sites WHERE status = ? ORDER BY id", status.value
            )
        return [Site.from_row(r) for r in rows]

    async def exists_site_with_status(self, status: SiteStatus) -> bool:
        async with self._connect() as conn:
            row = await conn.fetchone("SELECT 1 FROM sites WHERE status = ? LIMIT 1", status.value)
        return row is not None

    async def count_sites(self) -> int:
        async with self._connect() as conn:
            row = await conn.fetchone("SELECT COUNT(*) FROM sites")
        return int(row[0]) if row else 0

    async def update_site_status(self, site_id: int, status: SiteStatus, last_error: Optional[str] = None) -> None:
        async with self._connect() as conn:
            await conn.execute(
                "UPDATE sites SET status = ?, status_time = ?, last_error = ? WHERE id = ?",
                status.value, int(time.time()), last_error, site_id,
            )
            await conn.commit()

    async def touch_site(self, site_id: int) -> None:
        """Refresh status_time without changing the status."""
        async with self._connect() as conn:
            await conn.execute("UPDATE sites SET status_time = ? WHERE id = ?", int(time.time()), site_id)
            await conn.commit()

    # ------------------ pages ------------------

    async def find_page(self, site_id: int, path: str) -> Optional[Page]:
        async with self._connect() as conn:
            row = await conn.fetchone(
                f"SELECT {PAGE_COLUMNS} FROM pages WHERE site_id = ? AND path = ?", site_id, path
            )
        return Page.from_row(row) if row else None

    async def upsert_page(self, site_id: int, path: str, code: int, content: str) -> Page:
        query = f"""
        INSERT INTO pages (site_id, path, code, content)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (site_id, path) DO UPDATE SET
            code = excluded.code,
            content = excluded.content
        RETURNING {PAGE_COLUMNS}
        """
        async with self._connect() as conn:
            row = await conn.fetchone(query, site_id, path, code, content)
            await conn.commit()
        if row is None:
            raise ConsistencyError(f"Page not found after upsert: site_id={site_id}, path={path}")
        return Page.from_row(row)

    async def delete_page(self, page_id: int) -> None:
        async with self._connect() as conn:
            await conn.execute("DELETE FROM pages WHERE id = ?", page_id)
            await conn.commit()

    async def get_pages(self, page_ids: Iterable[int]) -> Dict[int, Page]:
        ids = list(page_ids)
        pages: Dict[int, Page] = {}
        if not ids:
            return pages
        async with self._connect() as conn:
            for chunk in _chunks(ids):
                rows = await conn.fetchall(
                    f"SELECT {PAGE_COLUMNS} FROM pages WHERE id IN ({_placeholders(len(chunk))})", *chunk
                )
                for row in rows:
                    page = Page.from_row(row)
                    pages[page.id] = page
        return pages

    async def count_pages(self, site_id: Optional[int] = None) -> int:
        async with self._connect() as conn:
            if site_id is None:
                row = await conn.fetchone("SELECT COUNT(*) FROM pages")
            else:
                row = await conn.fetchone("SELECT COUNT(*) FROM pages WHERE site_id = ?", site_id)
        return int(row[0]) if row else 0

    # ------------------ lemmas & index ------------------

    async def save_lemma_batch(self, site_id: int, page_id: int, counts: Sequence[Tuple[str, int]]) -> int:
        """Upsert lemmas (+1 frequency each) and insert their index rows in one transaction.

        Returns the number of index rows written.
        """
        if not counts:
            return 0
        upsert = """
        INSERT INTO lemmas (site_id, lemma, frequency)
        VALUES (?, ?, 1)
        ON CONFLICT (site_id, lemma) DO UPDATE SET frequency = lemmas.frequency + 1
        RETURNING id
        """
        entries: List[IndexEntry] = []
        async with self._connect() as conn:
            await conn.begin()
            for lemma, count in counts:
                row = await conn.fetchone(upsert, site_id, lemma)
                if row is None:
                    raise ConsistencyError(f"Lemma not found after upsert: {lemma}")
                entries.append(IndexEntry(page_id=page_id, lemma_id=row[0], rank=float(count)))
            await conn.executemany(
                "INSERT INTO search_index (page_id, lemma_id, lemma_rank) VALUES (?, ?, ?)",
                [(e.page_id, e.lemma_id, e.rank) for e in entries],
            )
            await conn.commit()
        return len(entries)

    async def decrement_lemmas(self, site_id: int, lemmas: Iterable[str]) -> None:
        params = [(site_id, lemma) for lemma in lemmas]
        if not params:
            return
        async with self._connect() as conn:
            await conn.begin()
            await conn.executemany(
                "UPDATE lemmas SET frequency = frequency - 1 WHERE site_id = ? AND lemma = ?", params
            )
            await conn.commit()

    async def delete_index_entries(self, page_id: int) -> None:
        async with self._connect() as conn:
            await conn.execute("DELETE FROM search_index WHERE page_id = ?", page_id)
            await conn.commit()

    async def find_lemma(self, site_id: int, lemma: str) -> Optional[Lemma]:
        async with self._connect() as conn:
            row = await conn.fetchone(
                f"SELECT {LEMMA_COLUMNS} FROM lemmas WHERE site_id = ? AND lemma = ?", site_id, lemma
            )
        return Lemma.from_row(row) if row else None

    async def find_lemmas(self, site_id: int, lemmas: Iterable[str]) -> List[Lemma]:
        texts = sorted(set(lemmas))
        found: List[Lemma] = []
        if not texts:
            return found
        async with self._connect() as conn:
            for chunk in _chunks(texts):
                rows = await conn.fetchall(
                    f"SELECT {LEMMA_COLUMNS} FROM lemmas WHERE site_id = ? AND lemma IN ({_placeholders(len(chunk))})",
                    site_id, *chunk,
                )
                found.extend(Lemma.from_row(r) for r in rows)
        return found

    async def page_ids_for_lemma(self, lemma_id: int) -> Set[int]:
        async with self._connect() as conn:
            rows = await conn.fetchall("SELECT DISTINCT page_id FROM search_index WHERE lemma_id = ?", lemma_id)
        return {r[0] for r in rows}

    async def lemma_page_share(self, lemma_id: int) -> float:
        """Distinct pages containing the lemma divided by all pages in the index."""
        async with self._connect() as conn:
            hit = await conn.fetchone(
                "SELECT COUNT(DISTINCT page_id) FROM search_index WHERE lemma_id = ?", lemma_id
            )
            total = await conn.fetchone("SELECT COUNT(*) FROM pages")
        if not total or not total[0]:
            return 0.0
        return float(hit[0]) / float(total[0])

    async def max_lemma_share(self, site_id: int) -> float:
        """Highest lemma frequency on a site divided by the site's page count."""
        async with self._connect() as conn:
            top = await conn.fetchone("SELECT MAX(frequency) FROM lemmas WHERE site_id = ?", site_id)
            pages = await conn.fetchone("SELECT COUNT(*) FROM pages WHERE site_id = ?", site_id)
        if not top or top[0] is None or not pages or not pages[0]:
            return 0.0
        return float(top[0]) / float(pages[0])

    async def absolute_relevance(self, page_ids: Iterable[int]) -> Dict[int, float]:
        """Sum of lemma_rank over all index rows of each page."""
        ids = list(page_ids)
        relevance: Dict[int, float] = {}
        if not ids:
            return relevance
        async with self._connect() as conn:
            for chunk in _chunks(ids):
                rows = await conn.fetchall(
                    f"SELECT page_id, SUM(lemma_rank) FROM search_index WHERE page_id IN ({_placeholders(len(chunk))}) GROUP BY page_id",
                    *chunk,
                )
                for page_id, total in rows:
                    relevance[page_id] = float(total or 0.0)
        return relevance
