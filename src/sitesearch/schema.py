"""
Schema definitions for the search index database.

SQLite and PostgreSQL variants of the same four tables: sites, pages,
lemmas and search_index (the sparse page x lemma rank matrix).
"""

from typing import List


SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS sites (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  url TEXT NOT NULL,
  name TEXT NOT NULL,
  status TEXT NOT NULL CHECK (status IN ('INDEXING','INDEXED','FAILED')),
  status_time INTEGER NOT NULL,
  last_error TEXT
);
CREATE INDEX IF NOT EXISTS idx_sites_url ON sites(url);
CREATE INDEX IF NOT EXISTS idx_sites_status ON sites(status);

CREATE TABLE IF NOT EXISTS pages (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  site_id INTEGER NOT NULL,
  path TEXT NOT NULL,
  code INTEGER NOT NULL,
  content TEXT NOT NULL,
  FOREIGN KEY (site_id) REFERENCES sites (id) ON DELETE CASCADE,
  UNIQUE(site_id, path)
);

CREATE TABLE IF NOT EXISTS lemmas (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  site_id INTEGER NOT NULL,
  lemma TEXT NOT NULL,
  frequency INTEGER NOT NULL,
  FOREIGN KEY (site_id) REFERENCES sites (id) ON DELETE CASCADE,
  UNIQUE(site_id, lemma)
);

CREATE TABLE IF NOT EXISTS search_index (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  page_id INTEGER NOT NULL,
  lemma_id INTEGER NOT NULL,
  lemma_rank REAL NOT NULL,
  FOREIGN KEY (page_id) REFERENCES pages (id) ON DELETE CASCADE,
  FOREIGN KEY (lemma_id) REFERENCES lemmas (id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_search_index_page_id ON search_index(page_id);
CREATE INDEX IF NOT EXISTS idx_search_index_lemma_id ON search_index(lemma_id);
"""


POSTGRES_SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS sites (
        id SERIAL PRIMARY KEY,
        url TEXT NOT NULL,
        name TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('INDEXING','INDEXED','FAILED')),
        status_time BIGINT NOT NULL,
        last_error TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sites_url ON sites(url)",
    "CREATE INDEX IF NOT EXISTS idx_sites_status ON sites(status)",
    """
    CREATE TABLE IF NOT EXISTS pages (
        id SERIAL PRIMARY KEY,
        site_id INTEGER NOT NULL REFERENCES sites (id) ON DELETE CASCADE,
        path TEXT NOT NULL,
        code INTEGER NOT NULL,
        content TEXT NOT NULL,
        UNIQUE(site_id, path)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS lemmas (
        id SERIAL PRIMARY KEY,
        site_id INTEGER NOT NULL REFERENCES sites (id) ON DELETE CASCADE,
        lemma TEXT NOT NULL,
        frequency INTEGER NOT NULL,
        UNIQUE(site_id, lemma)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS search_index (
        id SERIAL PRIMARY KEY,
        page_id INTEGER NOT NULL REFERENCES pages (id) ON DELETE CASCADE,
        lemma_id INTEGER NOT NULL REFERENCES lemmas (id) ON DELETE CASCADE,
        lemma_rank REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_search_index_page_id ON search_index(page_id)",
    "CREATE INDEX IF NOT EXISTS idx_search_index_lemma_id ON search_index(lemma_id)",
]


def get_schema_statements(backend: str) -> List[str]:
    """Return the DDL to run for a backend, one script per entry."""
    if backend == "postgresql":
        return POSTGRES_SCHEMA_STATEMENTS
    return [SQLITE_SCHEMA]
