#!/usr/bin/env python3
"""
Manual runner for the scraper.

Usage:
    cd backend
    python -m scraper.run_scraper [client_id]

Examples:
    python -m scraper.run_scraper harbor-homes                  # Full scrape
    python -m scraper.run_scraper --list                        # List all clients
    python -m scraper.run_scraper harbor-homes --listings-only  # Listings page only
    python -m scraper.run_scraper harbor-homes --detail URL     # One detail page
"""

import asyncio
import argparse
import logging
import json

from .base import ScrapeOptions
from .cache import ResultCache
from .client import ClientScraper
from .config import load_clients, get_client_config, get_client_summary
from .crawlers.browser import BrowserCrawler
from .exceptions import ScraperError
from .pages.detail import DetailPageExtractor
from .retry import RetryPolicy


def print_header(title: str):
    print(f"\n{'='*60}")
    print(title)
    print(f"{'='*60}\n")


def print_record(idx: int, record):
    print(f"{idx}. {record.title or '(no title)'}")
    print(f"   Link: {record.link}")
    print(f"   Price: {record.price or '-'}  Sale: {record.sale_price or '-'}")
    print(f"   City: {record.city or '-'}")
    print(f"   Image: {record.image_link or '-'}")
    print()


async def run_listings_only(config, options: ScrapeOptions, limit: int):
    """Scrape just the listings page (no detail pages)."""
    print_header(f"Testing LISTINGS ONLY for: {config.id}")
    print(f"Client: {config.name}")
    print(f"URL: {config.listings_url}")
    print()

    scraper = ClientScraper(config, options)
    async with scraper.crawler_factory() as crawler:
        records = await scraper.scrape_listings(crawler)

    print(f"Found {len(records)} listings\n")
    for i, record in enumerate(records[:limit], 1):
        print_record(i, record)
    if len(records) > limit:
        print(f"... and {len(records) - limit} more listings")


async def run_detail(config, options: ScrapeOptions, url: str):
    """Resolve the detail-phase fields for one URL."""
    print_header(f"Testing DETAIL page for: {config.id}")
    print(f"Detail page: {url}\n")

    extractor = DetailPageExtractor(
        config,
        RetryPolicy(max_attempts=options.max_attempts, base_delay=options.backoff_base),
        timeout=options.detail_timeout,
        wait_timeout=options.wait_timeout,
    )
    async with BrowserCrawler(
        headless=options.headless,
        block_resources=options.block_resources,
        navigation_timeout=options.navigation_timeout,
    ) as crawler:
        values = await extractor.extract(crawler, url)

    if extractor.last_error:
        print(f"ERROR: {extractor.last_error}")
    print("Extracted data:")
    print(json.dumps(values, indent=2))


async def run_full_scrape(config, options: ScrapeOptions, cache, limit: int):
    """Full scrape (listings + details) for one client."""
    print_header(f"Testing FULL SCRAPE for: {config.id}")
    print(f"Client: {config.name}")
    print(f"URL: {config.listings_url}")
    print()

    result = await ClientScraper(config, options, cache=cache).run()
    if not result.success:
        print(f"FAILED: {result.error}")
        return

    source = " (from cache)" if result.from_cache else ""
    print(f"Scraped {len(result.records)} listings{source}, {result.detail_errors} detail errors\n")
    for i, record in enumerate(result.records[:limit], 1):
        print_record(i, record)
    if len(result.records) > limit:
        print(f"... and {len(result.records) - limit} more listings")


def list_clients(clients):
    """List all configured clients."""
    print_header("Configured Clients")

    for client in get_client_summary(clients):
        status = "✅" if client['enabled'] else "⏳"
        print(f"{status} {client['id']:20} - {client['name']}")
        print(f"   URL: {client['url']}")
        if client['detail_fields']:
            print(f"   Detail fields: {', '.join(client['detail_fields'])}")
        print()


async def main():
    parser = argparse.ArgumentParser(description='Run the scraper for one client')
    parser.add_argument('client_id', nargs='?', help='Client id to scrape')
    parser.add_argument('--list', action='store_true', help='List all clients')
    parser.add_argument('--listings-only', action='store_true', help='Scrape the listings page only')
    parser.add_argument('--detail', type=str, help='Scrape a specific detail page URL')
    parser.add_argument('--limit', type=int, default=5, help='Limit listings printed')
    parser.add_argument('--no-cache', action='store_true', help='Ignore the result cache')
    parser.add_argument('--clients-file', type=str, help='Path to the clients JSON file')
    parser.add_argument('--cache-file', type=str, default='data/cache.json', help='Path to the cache file')
    parser.add_argument('--headful', action='store_true', help='Show the browser window')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    clients = load_clients(args.clients_file)

    if args.list:
        list_clients(clients)
        return

    if not args.client_id:
        parser.print_help()
        print("\nExample: python -m scraper.run_scraper harbor-homes")
        return

    config = get_client_config(args.client_id, clients)
    options = ScrapeOptions(headless=not args.headful, use_cache=not args.no_cache)

    try:
        if args.detail:
            await run_detail(config, options, args.detail)
        elif args.listings_only:
            await run_listings_only(config, options, args.limit)
        else:
            cache = None if args.no_cache else ResultCache(args.cache_file)
            await run_full_scrape(config, options, cache, args.limit)
    except ScraperError as e:
        print(f"ERROR: {e}")


if __name__ == '__main__':
    asyncio.run(main())
