"""
scrape.py
---------
CLI entrypoint. Runs both crawl phases:
  search pages -> search-data CSVs -> product pages -> product-data CSVs

Usage:
    python scrape.py --help
    python scrape.py --keyword "apple pen" --pages 1
    python scrape.py -k "apple pen" -k "usb c cable" --pages 3 --concurrency 4
    python scrape.py --output-dir out/ --dry-run
"""

import asyncio
import sys
import uuid
from datetime import datetime, timezone

# Bootstrap logger before importing anything else
import logger as _logger_mod

RUN_ID = str(uuid.uuid4())[:8]
_logger_mod.setup_logger(RUN_ID)
log = _logger_mod.get_logger("scrape")

from config import SCRAPER_VERSION, build_config, load_api_key, parse_args
from crawler import CrawlStats, crawl
from fetcher import Renderer
from persistence import finish_run_metadata, start_run_metadata


def main(argv: list[str] | None = None) -> int:
    args   = parse_args(argv)
    config = build_config(args)

    if config["log_file"]:
        # same "target" logger, now also writing to the log file
        _logger_mod.setup_logger(RUN_ID, log_file=config["log_file"])

    log.info("=" * 60)
    log.info("target.com Product Scraper  v%s", SCRAPER_VERSION)
    log.info("run_id=%s  dry_run=%s  keywords=%s", RUN_ID, config["dry_run"], config["keywords"])
    log.info("pages=%d  concurrency=%d  retries=%d  location=%s",
             config["pages"], config["concurrency"], config["retries"], config["location"])
    log.info("output_dir=%s  metadata_db=%s", config["output_dir"], config["metadata_db"])
    log.info("=" * 60)

    api_key = load_api_key(config["config_file"])

    start_time = datetime.now(timezone.utc)
    start_run_metadata(config["metadata_db"], RUN_ID, config, config["dry_run"])

    stats         = CrawlStats()
    status        = "failed"
    error_summary = []

    async def run() -> None:
        async with Renderer(
            api_key,
            location=config["location"],
            user_agent=config["user_agent"],
            headless=config["headless"],
            wait_ms=config["wait_ms"],
        ) as renderer:
            await crawl(renderer, config, stats)

    try:
        asyncio.run(run())
        status = "completed"
    except KeyboardInterrupt:
        log.warning("Interrupted -- batches already flushed stay on disk")
        error_summary.append("interrupted")
        raise
    except Exception as exc:
        log.error("Fatal crawl error: %s", exc)
        error_summary.append(f"fatal: {exc}")
        raise
    finally:
        finish_run_metadata(
            db_path            = config["metadata_db"],
            run_id             = RUN_ID,
            start_time         = start_time,
            search_tasks       = stats.search_tasks,
            product_tasks      = stats.product_tasks,
            records_saved      = stats.records_saved,
            duplicates_dropped = stats.duplicates_dropped,
            status             = status,
            error_summary      = error_summary,
            dry_run            = config["dry_run"],
        )

    log.info("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
