from __future__ import annotations
import json
import os
from dataclasses import dataclass, field

DATA_DIR = os.getenv("SITESEARCH_DATA", os.path.abspath("./data"))

def _get_env_var(name: str, default: str = None):
    """Get a SITESEARCH_* environment variable.

    Args:
        name: Variable name without the SITESEARCH_ prefix (e.g., DB_BACKEND)
        default: Default value if the variable is not set

    Returns:
        Environment variable value or default
    """
    value = os.getenv(f"SITESEARCH_{name}")
    if value is not None:
        return value
    return default

BLOCKED_EXTENSIONS = (
    ".pdf", ".doc", ".docx", ".jpg", ".jpeg", ".png",
    ".zip", ".rar", ".exe", ".tar", ".gz",
)

@dataclass
class SiteConfig:
    """A site from the configured crawl list."""
    url: str
    name: str

@dataclass
class HttpConfig:
    user_agent: str = _get_env_var("UA", "SiteSearchBot/1.0 (+https://example.com/bot-info)")
    referrer: str = _get_env_var("REFERRER", "https://www.google.com")
    timeout: float = float(_get_env_var("TIMEOUT", "10"))
    single_page_timeout: float = float(_get_env_var("SINGLE_PAGE_TIMEOUT", "30"))
    # Retry configuration
    max_attempts: int = int(_get_env_var("MAX_ATTEMPTS", "3"))
    retry_delay: float = float(_get_env_var("RETRY_DELAY", "2.0"))
    # HTTP/2 and compression configuration
    enable_http2: bool = _get_env_var("HTTP2", "1") == "1"
    enable_brotli: bool = _get_env_var("BROTLI", "1") == "1"

@dataclass
class CrawlConfig:
    politeness_delay: float = float(_get_env_var("DELAY", "2.0"))
    max_concurrency: int = int(_get_env_var("CONCURRENCY", "5"))
    index_batch_size: int = int(_get_env_var("INDEX_BATCH_SIZE", "5000"))
    blocked_extensions: tuple = BLOCKED_EXTENSIONS

@dataclass
class SearchConfig:
    commonness_factor: float = float(_get_env_var("COMMONNESS_FACTOR", "0.75"))
    snippet_max_length: int = 300
    snippet_fallback_length: int = 200
    snippet_context: int = int(_get_env_var("SNIPPET_CONTEXT", "80"))
    default_limit: int = 20

@dataclass
class AppConfig:
    """Everything the core services need, wired once at startup."""
    sites: list[SiteConfig] = field(default_factory=list)
    http: HttpConfig = field(default_factory=HttpConfig)
    crawl: CrawlConfig = field(default_factory=CrawlConfig)
    search: SearchConfig = field(default_factory=SearchConfig)


def _parse_sites_env(raw: str) -> list[SiteConfig]:
    sites = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        url, _, name = item.partition("=")
        sites.append(SiteConfig(url=url.strip(), name=(name or url).strip()))
    return sites


def load_sites(path: str = None) -> list[SiteConfig]:
    """Load the configured site list.

    Reads a JSON list of {"url": ..., "name": ...} objects from `path` (or
    SITESEARCH_SITES_FILE). Falls back to SITESEARCH_SITES in the form
    "https://a.ru=Name A,https://b.ru=Name B".
    """
    path = path or _get_env_var("SITES_FILE")
    if path:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [SiteConfig(url=item["url"], name=item.get("name") or item["url"]) for item in data]
    return _parse_sites_env(_get_env_var("SITES", ""))


def get_database_config(db_path: str = None) -> 'DatabaseConfig':
    """Get database configuration based on environment variables.

    Reads environment variables directly to support runtime changes (e.g., from command-line args).
    """
    from .database import DatabaseConfig

    backend = _get_env_var("DB_BACKEND", "sqlite")

    if backend == "postgresql":
        return DatabaseConfig(
            backend="postgresql",
            postgres_host=_get_env_var("POSTGRES_HOST", "localhost"),
            postgres_port=int(_get_env_var("POSTGRES_PORT", "5432")),
            postgres_database=_get_env_var("POSTGRES_DB", "sitesearch"),
            postgres_user=_get_env_var("POSTGRES_USER", "sitesearch"),
            postgres_password=_get_env_var("POSTGRES_PASSWORD", ""),
        )

    if not db_path:
        db_path = _get_env_var("DB_PATH")
    if not db_path:
        os.makedirs(DATA_DIR, exist_ok=True)
        db_path = os.path.join(DATA_DIR, "sitesearch.db")
    return DatabaseConfig(backend="sqlite", sqlite_path=db_path)
