"""
Ranked full-text search over the lemma index.

Per site: query lemmas are resolved against the site's lemma table, lemmas
that occur on too large a share of pages are dropped (unless that would
drop all of them), the remaining lemmas are intersected rarest-first, and
the matching pages are ranked by the sum of all their index ranks,
normalized by the best page in the result set.
"""
from __future__ import annotations
import asyncio
import re
from collections import Counter
from typing import Iterable, List, Optional, Set, Tuple

from .config import AppConfig
from .errors import EmptyQueryError, InvalidUrlError
from .lemmatizer import Lemmatizer
from .models import Lemma, SearchItem, SearchResponse, Site
from .parse import extract_text, extract_title, normalize_site_url
from .storage import Storage

WINDOW_CHARS = r"[\w\s*(),/'\-]"


class SearchEngine:
    def __init__(self, config: AppConfig, storage: Storage, lemmatizer: Lemmatizer):
        self.config = config
        self.storage = storage
        self.lemmatizer = lemmatizer

    async def search(self, query: str, site: Optional[str] = None,
                     offset: int = 0, limit: Optional[int] = None) -> SearchResponse:
        if query is None or not query.strip():
            return SearchResponse.from_error(EmptyQueryError("Empty search query"))

        offset = max(0, offset or 0)
        if not limit or limit <= 0:
            limit = self.config.search.default_limit

        if site:
            site_urls = [site]
        else:
            site_urls = [s.url for s in self.config.sites]

        total = 0
        data: List[SearchItem] = []
        for site_url in site_urls:
            try:
                normalized = normalize_site_url(site_url)
            except InvalidUrlError as e:
                if site:
                    return SearchResponse.from_error(e)
                continue
            count, items = await self._search_site(query, normalized, offset, limit)
            total += count
            data.extend(items)

        print(f"Search '{query}': returning {len(data)} of {total} results")
        return SearchResponse(result=True, count=total, data=data)

    async def _search_site(self, query: str, site_url: str, offset: int, limit: int) -> Tuple[int, List[SearchItem]]:
        site = await self.storage.find_site_by_url(site_url)
        if site is None:
            print(f"  -> Site {site_url} is not indexed")
            return 0, []

        lemmas = await self.query_lemmas(query, site)
        if not lemmas:
            return 0, []

        page_ids = await self._intersect_pages(lemmas)
        if not page_ids:
            return 0, []

        relevance = await self.storage.absolute_relevance(page_ids)
        max_relevance = max(relevance.values(), default=1.0) or 1.0
        ranked = sorted(page_ids, key=lambda pid: (-relevance.get(pid, 0.0), pid))
        window = ranked[offset:offset + limit]

        pages = await self.storage.get_pages(window)
        lemma_texts = [l.lemma for l in lemmas]
        items = []
        loop = asyncio.get_running_loop()
        for page_id in window:
            page = pages.get(page_id)
            if page is None:
                continue
            snippet = await loop.run_in_executor(None, self.build_snippet, page.content, lemma_texts)
            items.append(SearchItem(
                site=site.url,
                site_name=site.name,
                uri=page.path,
                title=extract_title(page.content),
                snippet=snippet,
                relevance=relevance.get(page_id, 0.0) / max_relevance,
            ))
        return len(ranked), items

    async def query_lemmas(self, query: str, site: Site) -> List[Lemma]:
        """Query lemmas known on the site, minus over-common ones, rarest first."""
        candidates = await self.storage.find_lemmas(site.id, self.lemmatizer.lemma_set(query))
        if not candidates:
            return []

        ceiling = await self.storage.max_lemma_share(site.id) * self.config.search.commonness_factor
        kept = []
        for lemma in candidates:
            if await self.storage.lemma_page_share(lemma.id) < ceiling:
                kept.append(lemma)
        # Filtering alone must never empty the result
        selected = kept or candidates
        return sorted(selected, key=lambda l: (l.frequency, l.lemma))

    async def _intersect_pages(self, lemmas: Iterable[Lemma]) -> Set[int]:
        pages: Optional[Set[int]] = None
        for lemma in lemmas:
            ids = await self.storage.page_ids_for_lemma(lemma.id)
            pages = ids if pages is None else pages & ids
            if not pages:
                return set()
        return pages or set()

    def build_snippet(self, content: str, lemmas: List[str]) -> str:
        cfg = self.config.search
        text = extract_text(content)
        occurrences = self.lemmatizer.lemma_occurrences(text)
        windows: Counter = Counter()

        for lemma in lemmas:
            forms = dict.fromkeys(word for word, normal in occurrences if normal == lemma)
            for form in forms:
                word = rf"(?<![\w'\-]){re.escape(form)}(?![\w'\-])"
                pattern = re.compile(
                    rf"{WINDOW_CHARS}{{0,{cfg.snippet_context}}}{word}{WINDOW_CHARS}{{0,{cfg.snippet_context}}}",
                    re.IGNORECASE,
                )
                for match in pattern.finditer(text):
                    highlighted = re.sub(word, lambda m: f"<b>{m.group(0)}</b>", match.group(0).strip(),
                                         flags=re.IGNORECASE)
                    windows[highlighted] += 1

        if not windows:
            return content[:cfg.snippet_fallback_length]

        # max() keeps the first-seen window on ties
        best = max(windows, key=windows.get)
        if len(best) <= cfg.snippet_max_length:
            return best
        return _truncate_highlighted(best, cfg.snippet_max_length) + "..."


def _truncate_highlighted(snippet: str, length: int) -> str:
    cut = snippet[:length]
    # Do not leave half a tag or an open <b>
    if cut.rfind("<") > cut.rfind(">"):
        cut = cut[:cut.rfind("<")]
    if cut.count("<b>") > cut.count("</b>"):
        cut += "</b>"
    return cut
