import argparse
import json
import os

SCRAPER_VERSION = "1.0.0"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13.5; rv:109.0) "
    "Gecko/20100101 Firefox/117.0"
)


def _env_keywords() -> list[str] | None:
    raw = os.environ.get("KEYWORDS", "")
    keywords = [k.strip() for k in raw.split(",") if k.strip()]
    return keywords or None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scrape.py",
        description="target.com two-phase product scraper",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--keyword", "-k",
        dest="keywords",
        action="append",
        default=None,
        metavar="TERM",
        help="Search term to scrape (repeatable). Defaults to $KEYWORDS or 'apple pen'.",
    )
    parser.add_argument(
        "--pages",
        type=int,
        default=int(os.environ.get("MAX_PAGES", "1")),
        metavar="N",
        help="Listing pages to scrape per search term.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=int(os.environ.get("CONCURRENCY", "2")),
        metavar="N",
        help="Maximum number of pages rendered at the same time.",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=int(os.environ.get("RETRIES", "2")),
        metavar="N",
        help="Retries per page after the first failed attempt.",
    )
    parser.add_argument(
        "--retry-backoff",
        type=float,
        default=float(os.environ.get("RETRY_BACKOFF", "0")),
        metavar="SECONDS",
        help="Base delay between retries, doubled on every attempt (0 = retry at once).",
    )
    parser.add_argument(
        "--location",
        default=os.environ.get("LOCATION", "us"),
        metavar="CC",
        help="Country code passed to the proxy.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=int(os.environ.get("BATCH_SIZE", "50")),
        metavar="N",
        help="Records buffered per output file before they are appended to disk.",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("OUTPUT_DIR", "."),
        metavar="DIR",
        help="Directory receiving the search-data and product-data CSV files.",
    )
    parser.add_argument(
        "--config-file",
        default=os.environ.get("CONFIG_FILE", "config.json"),
        metavar="PATH",
        help="JSON file holding the proxy api_key.",
    )
    parser.add_argument(
        "--log-file",
        default=os.environ.get("LOG_FILE", "target-scraper.log"),
        metavar="PATH",
        help="Log file appended to alongside stdout (empty string disables it).",
    )
    parser.add_argument(
        "--metadata-db",
        default=os.environ.get("METADATA_DB", "runs_metadata.db"),
        metavar="PATH",
        help="SQLite DB file to store run-level metadata.",
    )
    parser.add_argument(
        "--user-agent",
        default=os.environ.get("USER_AGENT", DEFAULT_USER_AGENT),
        metavar="UA",
        help="User-Agent header sent by the browser.",
    )
    parser.add_argument(
        "--wait-ms",
        type=int,
        default=int(os.environ.get("PROXY_WAIT_MS", "5000")),
        metavar="MS",
        help="Milliseconds the proxy waits for the page to render.",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        default=False,
        help="Show the browser window instead of running headless.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Scrape and write CSV output but do NOT write run metadata.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"target-scraper {SCRAPER_VERSION}",
    )

    args = parser.parse_args(argv)
    if not args.keywords:
        args.keywords = _env_keywords() or ["apple pen"]
    return args


def build_config(args: argparse.Namespace) -> dict:
    """
    Merge parsed CLI args into a single config dict that gets logged
    and stored verbatim in run metadata.
    """
    return {
        "keywords":      list(args.keywords),
        "pages":         args.pages,
        "concurrency":   args.concurrency,
        "retries":       args.retries,
        "retry_backoff": args.retry_backoff,
        "location":      args.location,
        "batch_size":    args.batch_size,
        "output_dir":    args.output_dir,
        "config_file":   args.config_file,
        "log_file":      args.log_file,
        "metadata_db":   args.metadata_db,
        "user_agent":    args.user_agent,
        "wait_ms":       args.wait_ms,
        "headless":      not args.headed,
        "dry_run":       args.dry_run,
    }


def load_api_key(path: str) -> str:
    """$SCRAPEOPS_API_KEY wins over the ``api_key`` entry of *path*."""
    env_key = os.environ.get("SCRAPEOPS_API_KEY", "").strip()
    if env_key:
        return env_key

    if not os.path.exists(path):
        raise RuntimeError(
            f"No proxy API key: set SCRAPEOPS_API_KEY or create {path} "
            'containing {"api_key": "..."}'
        )

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    api_key = str(data.get("api_key", "")).strip()
    if not api_key:
        raise RuntimeError(f"{path} has no api_key entry")
    return api_key
