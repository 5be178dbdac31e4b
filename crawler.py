"""
crawler.py
----------
Two-phase crawl over target.com:

  1. listing pages  -> <term>-page-<n>-search-data.csv   (title, url)
  2. product pages  -> <term>-page-<n>-product-data.csv  (title, price, ...)

Every page is one work item: rendered through the proxy, parsed,
validated and pushed through its own DataPipeline. Both phases run
under the same concurrency ceiling.
"""

import os
import re
from dataclasses import dataclass
from urllib.parse import quote

from cleaner import ProductRecord, SearchRecord, clean_search_results
from logger import get_logger
from parser import BASE_URL, parse_product_page, parse_search_page
from persistence import DataPipeline, collect_urls
from scheduler import run_concurrently, run_with_retries

log = get_logger(__name__)

RESULTS_PER_PAGE = 24

# left unescaped by JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "!'()*"


@dataclass
class CrawlStats:
    search_tasks:       int = 0
    product_tasks:      int = 0
    records_saved:      int = 0
    duplicates_dropped: int = 0

    def absorb(self, pipeline: DataPipeline) -> None:
        self.records_saved      += pipeline.saved_count
        self.duplicates_dropped += pipeline.duplicate_count


def build_search_url(keyword: str, page_number: int) -> str:
    return f"{BASE_URL}/s?searchTerm={quote(keyword, safe=_URI_COMPONENT_SAFE)}&Nao={page_number * RESULTS_PER_PAGE}"


def search_filename(keyword: str, page_number: int) -> str:
    slug = re.sub(r"\s+", "-", keyword).lower()
    return f"{slug}-page-{page_number}-search-data.csv"


def product_filename(search_file: str) -> str:
    return search_file.replace("search-data", "product-data")



async def scrape_search_page(renderer, pipeline: DataPipeline, url: str, retries: int, backoff: float = 0.0) -> int:

    async def attempt() -> int:
        async with renderer.session() as session:
            html = await session.fetch(url, wait_until="networkidle")
            records = clean_search_results(parse_search_page(html))
            for record in records:
                pipeline.add(record)
        log.info("Successfully scraped data from: %s (%d results)", url, len(records))
        return len(records)

    return await run_with_retries(attempt, url, retries, backoff)


async def scrape_product_page(renderer, pipeline: DataPipeline, url: str, retries: int, backoff: float = 0.0) -> ProductRecord:

    async def attempt() -> ProductRecord:
        async with renderer.session() as session:
            html = await session.fetch(url, wait_until="domcontentloaded")
            record = ProductRecord.from_raw(parse_product_page(html))
            pipeline.add(record)
        log.info("Successfully scraped and saved product data: %s", record.title)
        return record

    return await run_with_retries(attempt, url, retries, backoff)



async def run_search_phase(renderer, config: dict, stats: CrawlStats) -> list[str]:
    """Stage 1. Returns the search-data CSV paths in submission order."""
    output_dir = config["output_dir"]
    csv_paths  = []
    tasks      = []

    def make_task(keyword: str, page_number: int, csv_path: str):
        async def task() -> int:
            pipeline = DataPipeline(csv_path, SearchRecord.fieldnames(), config["batch_size"])
            try:
                with pipeline:
                    return await scrape_search_page(
                        renderer, pipeline, build_search_url(keyword, page_number),
                        config["retries"], config.get("retry_backoff", 0.0),
                    )
            finally:
                stats.absorb(pipeline)
        return task

    for keyword in config["keywords"]:
        for page_number in range(config["pages"]):
            csv_path = os.path.join(output_dir, search_filename(keyword, page_number))
            csv_paths.append(csv_path)
            tasks.append(make_task(keyword, page_number, csv_path))

    stats.search_tasks += len(tasks)
    log.info("Queued %d search pages (concurrency=%d)", len(tasks), config["concurrency"])
    await run_concurrently(tasks, config["concurrency"])
    return csv_paths


async def run_product_phase(renderer, config: dict, urls_by_file: dict[str, list[str]], stats: CrawlStats) -> None:
    """Stage 2. One work item, and one pipeline, per product URL."""
    tasks = []

    def make_task(url: str, csv_path: str):
        async def task() -> ProductRecord:
            pipeline = DataPipeline(csv_path, ProductRecord.fieldnames(), config["batch_size"])
            try:
                with pipeline:
                    return await scrape_product_page(
                        renderer, pipeline, url,
                        config["retries"], config.get("retry_backoff", 0.0),
                    )
            finally:
                stats.absorb(pipeline)
        return task

    for search_file, urls in urls_by_file.items():
        csv_path = product_filename(search_file)
        for url in urls:
            tasks.append(make_task(url, csv_path))

    stats.product_tasks += len(tasks)
    log.info("Queued %d product pages (concurrency=%d)", len(tasks), config["concurrency"])
    await run_concurrently(tasks, config["concurrency"])


async def crawl(renderer, config: dict, stats: CrawlStats | None = None) -> CrawlStats:
    stats = stats if stats is not None else CrawlStats()

    log.info("Started Scraping Search Data")
    search_files = await run_search_phase(renderer, config, stats)

    urls_by_file = collect_urls(search_files)

    log.info("Started Scraping Product Data")
    await run_product_phase(renderer, config, urls_by_file, stats)

    log.info("Scraping completed")
    return stats
