from __future__ import annotations
from urllib.parse import urljoin, urlsplit, urlunsplit
from typing import Iterable, Tuple
from bs4 import BeautifulSoup
import idna
from functools import lru_cache

from .errors import InvalidUrlError

DEFAULT_PORTS = {"http": 80, "https": 443}

# ------------------ URL helpers ------------------

def _normalize_host(hostname: str) -> str:
    host = hostname.lower()
    try:
        # Convert domain to punycode for international domains
        host = idna.encode(host).decode("ascii")
    except (idna.IDNAError, UnicodeError):
        pass
    if host.startswith("www."):
        host = host[4:]
    return host

@lru_cache(maxsize=10000)
def normalize_site_url(url: str) -> str:
    """
    Reduce a URL to its site origin:
    - scheme and host lowercased, host punycoded
    - leading `www.` dropped
    - default ports stripped
    - no path, query, fragment or trailing slash

    normalize_site_url(normalize_site_url(u)) == normalize_site_url(u)
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        raise InvalidUrlError(f"Invalid URL: {url}")
    if not parts.scheme or not parts.hostname:
        raise InvalidUrlError(f"Invalid URL: {url}")
    scheme = parts.scheme.lower()
    host = _normalize_host(parts.hostname)
    try:
        port = parts.port
    except ValueError:
        raise InvalidUrlError(f"Invalid URL: {url}")
    netloc = host
    if port and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{port}"
    return urlunsplit((scheme, netloc, "", "", ""))

def normalize_path(url: str) -> str:
    """URL path, `/` when empty, without a trailing slash unless it is the root."""
    path = urlsplit(url).path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path

def parse_page_url(url: str) -> Tuple[str, str]:
    """Split a page URL into (normalized site origin, normalized path)."""
    if not url or not url.strip():
        raise InvalidUrlError(f"Invalid URL: {url!r}")
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        raise InvalidUrlError(f"Invalid URL: {url}")
    if parts.scheme.lower() not in DEFAULT_PORTS:
        raise InvalidUrlError(f"Invalid URL: {url}")
    return normalize_site_url(url), normalize_path(url.strip())

def strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", parts.fragment))

def is_crawlable_link(url: str, site_url: str, blocked_extensions: Iterable[str]) -> bool:
    """A link is followed only inside the site, without a fragment and not to a blocked file type."""
    try:
        parts = urlsplit(url)
        if parts.fragment or "#" in url:
            return False
        if normalize_site_url(url) != site_url:
            return False
    except (InvalidUrlError, ValueError):
        return False
    path = parts.path.lower()
    return not any(path.endswith(ext) for ext in blocked_extensions)

# ------------------ extractors ------------------

def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")

def extract_links(soup: BeautifulSoup, base_url: str) -> list[str]:
    """Absolute hrefs of every `a[href]`, in document order."""
    links = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.lower().startswith(("javascript:", "mailto:", "tel:")):
            continue
        try:
            links.append(urljoin(base_url, href))
        except ValueError:
            continue
    return links

def extract_title(html: str) -> str:
    start = html.find("<title>")
    end = html.find("</title>")
    if start >= 0 and end > start:
        return html[start + len("<title>"):end].strip()
    return ""

def extract_text(html: str) -> str:
    """Visible text of a document; script and style bodies are dropped."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup.get_text(" ", strip=True)
