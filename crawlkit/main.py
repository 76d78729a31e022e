"""
Main entry point for crawlkit.
"""

import argparse
import asyncio
import json
import sys
from typing import Any
from urllib.parse import urlsplit

from crawlkit.crawler.models import AcquisitionOptions
from crawlkit.crawler.orchestrator import AcquisitionOrchestrator, create_orchestrator
from crawlkit.crawler.semantic_crawl import SemanticCrawler
from crawlkit.crawler.semantic_models import CrawlTarget
from crawlkit.search.models import SearchEngine, SearchOptions
from crawlkit.search.orchestrator import SearchOrchestrator
from crawlkit.utils.config import ensure_directories, get_settings
from crawlkit.utils.errors import AcquisitionError
from crawlkit.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


async def run_fetch(
    orchestrator: AcquisitionOrchestrator, url: str, *, browser: bool, cache: bool
) -> None:
    options = AcquisitionOptions(prefer_browser=browser, use_cache=cache)
    response = await orchestrator.acquire(url, options)
    payload = response.to_dict()
    payload["result"].pop("html", None)
    _print_json(payload)


async def run_search(
    orchestrator: AcquisitionOrchestrator,
    query: str,
    *,
    engine: str | None,
    max_results: int | None,
) -> None:
    settings = get_settings()
    search = SearchOrchestrator(orchestrator, settings=settings)
    options = SearchOptions(
        engine=engine or settings.search.default_engine,
        max_results=max_results or settings.search.max_results,
    )
    response = await search.search(query, options)
    _print_json({"ok": True, **response.to_dict()})


async def run_crawl(
    orchestrator: AcquisitionOrchestrator,
    url: str,
    *,
    max_pages: int,
    max_depth: int,
) -> None:
    target = CrawlTarget(
        site=urlsplit(url).netloc,
        entry_points=[url],
        max_pages=max_pages,
        max_depth=max_depth,
    )
    result = await SemanticCrawler(orchestrator).crawl(target)
    _print_json({"ok": True, **result.to_dict()})


async def run_backends(orchestrator: AcquisitionOrchestrator) -> None:
    available = await orchestrator.get_available_backends()
    _print_json(
        {
            "ok": True,
            "registered": orchestrator.registry.list_backends(),
            "available": available,
        }
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crawlkit",
        description="crawlkit - page acquisition, web search and site crawling",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="Acquire one page")
    fetch.add_argument("url", help="Page URL")
    fetch.add_argument("--browser", action="store_true", help="Prefer a browser backend")
    fetch.add_argument("--no-cache", action="store_true", help="Bypass the result cache")

    search = subparsers.add_parser("search", help="Run a web search")
    search.add_argument("query", help="Search query")
    search.add_argument(
        "--engine",
        choices=[e.value for e in SearchEngine],
        default=None,
        help="Search engine (default from settings)",
    )
    search.add_argument("--max-results", type=int, default=None, help="Maximum results")

    crawl = subparsers.add_parser("crawl", help="Discover interactive UI tools on a site")
    crawl.add_argument("url", help="Entry point URL")
    crawl.add_argument("--max-pages", type=int, default=50, help="Pages to visit")
    crawl.add_argument("--max-depth", type=int, default=3, help="Link hops from the entry point")

    subparsers.add_parser("backends", help="List registered and available backends")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    ensure_directories()
    configure_logging(log_level=settings.general.log_level)

    async def async_main() -> int:
        orchestrator = create_orchestrator(settings)
        try:
            if args.command == "fetch":
                await run_fetch(
                    orchestrator, args.url, browser=args.browser, cache=not args.no_cache
                )
            elif args.command == "search":
                await run_search(
                    orchestrator,
                    args.query,
                    engine=args.engine,
                    max_results=args.max_results,
                )
            elif args.command == "crawl":
                await run_crawl(
                    orchestrator,
                    args.url,
                    max_pages=args.max_pages,
                    max_depth=args.max_depth,
                )
            elif args.command == "backends":
                await run_backends(orchestrator)
        except AcquisitionError as e:
            logger.error("Command failed", command=args.command, error_code=e.code.value)
            _print_json(e.to_dict())
            return 1
        finally:
            await orchestrator.close()
        return 0

    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
