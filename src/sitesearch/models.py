from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class SiteStatus(Enum):
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


@dataclass
class Site:
    id: int
    url: str
    name: str
    status: SiteStatus
    status_time: int
    last_error: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Site":
        return cls(
            id=row[0],
            url=row[1],
            name=row[2],
            status=SiteStatus(row[3]),
            status_time=row[4],
            last_error=row[5],
        )


@dataclass
class Page:
    id: int
    site_id: int
    path: str
    code: int
    content: str

    @classmethod
    def from_row(cls, row) -> "Page":
        return cls(id=row[0], site_id=row[1], path=row[2], code=row[3], content=row[4])


@dataclass
class Lemma:
    id: int
    site_id: int
    lemma: str
    frequency: int

    @classmethod
    def from_row(cls, row) -> "Lemma":
        return cls(id=row[0], site_id=row[1], lemma=row[2], frequency=row[3])


@dataclass
class IndexEntry:
    page_id: int
    lemma_id: int
    rank: float


@dataclass
class FetchResult:
    """Outcome of a successful fetch: status, raw body, parsed document and outbound links."""
    url: str
    status_code: int
    content: str
    document: Any
    links: List[str] = field(default_factory=list)


@dataclass
class SearchItem:
    site: str
    site_name: str
    uri: str
    title: str
    snippet: str
    relevance: float


@dataclass
class SearchResponse:
    result: bool
    count: int = 0
    data: List[SearchItem] = field(default_factory=list)
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def from_error(cls, exc) -> "SearchResponse":
        return cls(result=False, error=str(exc), code=getattr(exc, "code", "error"))


@dataclass
class IndexResponse:
    result: bool
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def ok(cls) -> "IndexResponse":
        return cls(result=True)

    @classmethod
    def from_error(cls, exc) -> "IndexResponse":
        return cls(result=False, error=str(exc), code=getattr(exc, "code", "error"))
