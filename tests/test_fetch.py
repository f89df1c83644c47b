import pytest
import httpx
from src.sitesearch.errors import DnsError, NetworkError
from src.sitesearch.fetch import PageFetcher, is_dns_failure


def _fetcher(http_config, handler):
    return PageFetcher(http_config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_returns_status_content_and_links(http_config):
    seen = {}

    def handler(request):
        seen["ua"] = request.headers.get("user-agent")
        seen["referer"] = request.headers.get("referer")
        return httpx.Response(200, text='<html><a href="/next">n</a></html>')

    result = await _fetcher(http_config, handler).fetch("https://example.com/")
    assert result.status_code == 200
    assert "/next" in result.content
    assert result.links == ["https://example.com/next"]
    assert result.document.find("a")["href"] == "/next"
    assert seen["ua"] == "TestBot/1.0"
    assert seen["referer"] == http_config.referrer


@pytest.mark.asyncio
async def test_http_error_status_is_content(http_config):
    def handler(request):
        return httpx.Response(500, text="oops")

    result = await _fetcher(http_config, handler).fetch("https://example.com/x")
    assert result.status_code == 500
    assert result.content == "oops"


@pytest.mark.asyncio
async def test_retries_then_succeeds(http_config):
    calls = []

    def handler(request):
        calls.append(1)
        if len(calls) < 3:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, text="ok")

    result = await _fetcher(http_config, handler).fetch("https://example.com/")
    assert result.content == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_attempts(http_config):
    calls = []

    def handler(request):
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        await _fetcher(http_config, handler).fetch("https://example.com/")
    assert len(calls) == http_config.max_attempts


@pytest.mark.asyncio
async def test_dns_failure_not_retried(http_config):
    calls = []

    def handler(request):
        calls.append(1)
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

    with pytest.raises(DnsError):
        await _fetcher(http_config, handler).fetch("https://no-such-host.invalid/")
    assert len(calls) == 1


def test_is_dns_failure_follows_cause():
    import socket
    try:
        try:
            raise socket.gaierror(-2, "lookup")
        except socket.gaierror as inner:
            raise httpx.ConnectError("wrapped") from inner
    except httpx.ConnectError as e:
        assert is_dns_failure(e)
    assert not is_dns_failure(httpx.ConnectError("connection refused"))


@pytest.mark.asyncio
async def test_redirect_loop_is_network_error(http_config):
    def handler(request):
        return httpx.Response(302, headers={"location": str(request.url)})

    with pytest.raises(NetworkError):
        await _fetcher(http_config, handler).fetch("https://example.com/loop")
