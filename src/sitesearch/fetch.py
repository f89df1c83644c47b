"""
HTTP page fetching with retries, built on httpx (HTTP/2, Brotli).
"""
from __future__ import annotations
import asyncio
import socket
from typing import Dict, Optional

import httpx

from .config import HttpConfig
from .errors import DnsError, NetworkError
from .models import FetchResult
from .parse import extract_links, parse_html

DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
)


def _get_compression_headers(enable_brotli: bool) -> Dict[str, str]:
    """Get headers for compression support."""
    return {
        "Accept-Encoding": "gzip, deflate, br" if enable_brotli else "gzip, deflate",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }


def is_dns_failure(exc: BaseException) -> bool:
    """Walk the exception chain looking for a name-resolution failure."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return True
        if any(marker in str(current).lower() for marker in DNS_ERROR_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


class PageFetcher:
    """Fetch a page, retrying transport failures.

    Up to `max_attempts` tries with `retry_delay` seconds between them. DNS
    failures are raised at once. HTTP error statuses and content types are
    not checked: whatever body comes back is the page content.
    """

    def __init__(self, cfg: HttpConfig, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.cfg = cfg
        self.timeout = timeout if timeout is not None else cfg.timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.cfg.user_agent,
            "Referer": self.cfg.referrer,
            **_get_compression_headers(self.cfg.enable_brotli),
        }

    def _client(self) -> httpx.AsyncClient:
        kwargs = dict(
            timeout=httpx.Timeout(self.timeout),
            headers=self._headers(),
            follow_redirects=True,
        )
        if self.transport is not None:
            kwargs["transport"] = self.transport
        else:
            kwargs["http2"] = self.cfg.enable_http2
        return httpx.AsyncClient(**kwargs)

    async def fetch(self, url: str) -> FetchResult:
        last_error: Optional[Exception] = None
        attempts = max(1, self.cfg.max_attempts)

        async with self._client() as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await client.get(url)
                except httpx.TransportError as e:
                    if is_dns_failure(e):
                        print(f"  -> DNS lookup failed for {url}: {e}")
                        raise DnsError(f"DNS lookup failed for {url}: {e}") from e
                    last_error = e
                    print(f"  -> Attempt {attempt}/{attempts} failed for {url}: {e!r}")
                    if attempt < attempts:
                        await asyncio.sleep(self.cfg.retry_delay)
                    continue
                except httpx.RequestError as e:
                    # Redirect loops, undecodable bodies: not retried
                    print(f"  -> Request to {url} failed: {e!r}")
                    raise NetworkError(f"Request to {url} failed: {e}") from e

                content = response.text
                document = parse_html(content)
                return FetchResult(
                    url=str(response.url),
                    status_code=response.status_code,
                    content=content,
                    document=document,
                    links=extract_links(document, str(response.url)),
                )

        raise NetworkError(f"Failed to connect to {url} after {attempts} attempts: {last_error!r}") from last_error
