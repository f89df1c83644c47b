import argparse, asyncio, signal, sys
from src.sitesearch.config import AppConfig, CrawlConfig, HttpConfig, load_sites, get_database_config
from src.sitesearch.lemmatizer import init_lemmatizer
from src.sitesearch.orchestrator import CrawlOrchestrator
from src.sitesearch.search import SearchEngine
from src.sitesearch.storage import Storage


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Crawl configured sites into a lemma index and search it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --sites sites.json crawl
  %(prog)s --sites sites.json index-page https://example.com/about
  %(prog)s --sites sites.json search "how to crawl" --limit 10
        """
    )
    p.add_argument("--sites", type=str, default=None,
                   help="JSON file with the site list: [{\"url\": ..., \"name\": ...}] (default: $SITESEARCH_SITES_FILE)")
    p.add_argument("--db", type=str, default=None,
                   help="SQLite database path (default: $SITESEARCH_DB_PATH or ./data/sitesearch.db)")
    p.add_argument("--delay", type=float, default=None,
                   help="Politeness delay before each fetch in seconds (default: 2.0)")
    p.add_argument("--concurrency", type=int, default=None,
                   help="Maximum concurrent fetches per site (default: 5)")
    p.add_argument("--timeout", type=float, default=None,
                   help="Per-attempt request timeout in seconds for crawling (default: 10)")
    p.add_argument("--no-http2", action="store_true",
                   help="Disable HTTP/2 support (use HTTP/1.1)")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("crawl", help="Re-index every configured site (Ctrl-C stops)")
    page = sub.add_parser("index-page", help="Re-index a single page of a configured site")
    page.add_argument("url")
    search = sub.add_parser("search", help="Search the index")
    search.add_argument("query")
    search.add_argument("--site", type=str, default=None, help="Restrict to one site URL")
    search.add_argument("--offset", type=int, default=0)
    search.add_argument("--limit", type=int, default=20)
    return p


def build_config(args) -> AppConfig:
    http_config = HttpConfig()
    crawl_config = CrawlConfig()
    if args.timeout is not None:
        http_config.timeout = args.timeout
    if args.no_http2:
        http_config.enable_http2 = False
    if args.delay is not None:
        crawl_config.politeness_delay = args.delay
    if args.concurrency is not None:
        crawl_config.max_concurrency = args.concurrency
    return AppConfig(sites=load_sites(args.sites), http=http_config, crawl=crawl_config)


def run_crawl(orchestrator: CrawlOrchestrator) -> int:
    response = orchestrator.start_full_crawl()
    if not response.result:
        print(f"Error: {response.error}")
        return 1

    def signal_handler(signum, frame):
        print(f"\nReceived signal {signum}. Stopping crawl...")
        asyncio.run(orchestrator.stop_crawl())

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    while orchestrator.is_running():
        orchestrator.wait(timeout=1.0)
    print("Crawl finished")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = build_config(args)
    if not config.sites:
        print("No sites configured. Use --sites or set SITESEARCH_SITES_FILE / SITESEARCH_SITES.")
        return 2

    storage = Storage(get_database_config(args.db))
    asyncio.run(storage.init_schema())
    lemmatizer = init_lemmatizer()

    if args.command == "crawl":
        return run_crawl(CrawlOrchestrator(config, storage, lemmatizer))

    if args.command == "index-page":
        orchestrator = CrawlOrchestrator(config, storage, lemmatizer)
        response = asyncio.run(orchestrator.index_single_page(args.url))
        print("OK" if response.result else f"Error: {response.error}")
        return 0 if response.result else 1

    engine = SearchEngine(config, storage, lemmatizer)
    response = asyncio.run(engine.search(args.query, args.site, args.offset, args.limit))
    if not response.result:
        print(f"Error: {response.error}")
        return 1
    print(f"Found {response.count} results")
    for item in response.data:
        print(f"[{item.relevance:.3f}] {item.site}{item.uri}  {item.title}")
        print(f"    {item.snippet}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
