import csv
import json
import os
import sqlite3
from datetime import datetime, timezone

from config import SCRAPER_VERSION
from logger import get_logger

log = get_logger(__name__)



class DataPipeline:
    """
    Buffers validated records for one CSV file, drops records whose key
    was already seen by this pipeline, and appends them in batches of
    ``storage_queue_limit``. ``close()`` must run when the owning task
    ends or buffered records are lost.
    """

    def __init__(self, csv_path: str, fieldnames: list[str], storage_queue_limit: int = 50):
        if storage_queue_limit < 1:
            raise ValueError("storage_queue_limit must be >= 1")
        self.csv_path            = csv_path
        self.fieldnames          = list(fieldnames)
        self.storage_queue_limit = storage_queue_limit
        self.names_seen: set[str] = set()
        self.storage_queue: list = []
        self.saved_count     = 0
        self.duplicate_count = 0
        self.flush_count     = 0
        self.closed          = False

    def __enter__(self) -> "DataPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        # the task already failed; its error is the one to propagate
        try:
            self.close()
        except Exception as close_exc:
            log.error("Could not flush %d records to %s: %s",
                      len(self.storage_queue), self.csv_path, close_exc)

    def is_duplicate(self, key: str) -> bool:
        if key in self.names_seen:
            log.warning("Duplicate item found: %s. Item dropped.", key)
            self.duplicate_count += 1
            return True
        self.names_seen.add(key)
        return False

    def add(self, record) -> bool:
        """Returns True when the record was queued, False for a duplicate."""
        if self.is_duplicate(record.key):
            return False
        self.storage_queue.append(record)
        if len(self.storage_queue) >= self.storage_queue_limit:
            self.flush()
        return True

    def flush(self) -> int:
        batch, self.storage_queue = self.storage_queue, []
        if not batch:
            return 0

        try:
            directory = os.path.dirname(self.csv_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            write_header = not os.path.exists(self.csv_path)

            with open(self.csv_path, "a", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=self.fieldnames, extrasaction="ignore")
                if write_header:
                    writer.writeheader()
                writer.writerows(r.to_row() for r in batch)
        except OSError:
            self.storage_queue = batch + self.storage_queue
            raise

        self.saved_count += len(batch)
        self.flush_count += 1
        log.debug("Flushed %d records → %s", len(batch), self.csv_path)
        return len(batch)

    def close(self) -> None:
        if self.closed:
            return
        self.flush()
        self.closed = True



def read_urls(csv_path: str) -> list[str]:
    if not os.path.exists(csv_path):
        log.warning("No search data at %s, nothing was saved for that page", csv_path)
        return []
    with open(csv_path, "r", encoding="utf-8", newline="") as f:
        return [row["url"] for row in csv.DictReader(f) if row.get("url")]


def collect_urls(csv_paths: list[str]) -> dict[str, list[str]]:
    urls_by_file = {}
    for path in csv_paths:
        urls_by_file[path] = read_urls(path)
        log.info("Loaded %d product URLs from %s", len(urls_by_file[path]), path)
    return urls_by_file



_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS runs_metadata (
    run_id              TEXT PRIMARY KEY,
    start_time          TEXT NOT NULL,
    end_time            TEXT,
    duration_seconds    REAL,
    scraper_version     TEXT,
    config              TEXT,          -- JSON blob of config dict
    keywords            TEXT,          -- JSON list
    search_tasks        INTEGER,
    product_tasks       INTEGER,
    records_saved       INTEGER,
    duplicates_dropped  INTEGER,
    status              TEXT,
    error_summary       TEXT           -- JSON list of error messages
);
"""


def _get_conn(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.execute(_CREATE_TABLE)
    conn.commit()
    return conn


def start_run_metadata(
    db_path: str,
    run_id: str,
    config: dict,
    dry_run: bool = False,
) -> None:
    if dry_run:
        return
    try:
        conn = _get_conn(db_path)
        conn.execute(
            """INSERT OR REPLACE INTO runs_metadata
               (run_id, start_time, scraper_version, config, keywords, status)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                run_id,
                datetime.now(timezone.utc).isoformat(),
                SCRAPER_VERSION,
                json.dumps(config),
                json.dumps(config.get("keywords", [])),
                "running",
            ),
        )
        conn.commit()
        conn.close()
        log.debug("Run metadata row inserted for run_id=%s", run_id)
    except Exception as exc:
        log.warning("Could not write start metadata: %s", exc)


def finish_run_metadata(
    db_path: str,
    run_id: str,
    start_time: datetime,
    search_tasks: int,
    product_tasks: int,
    records_saved: int,
    duplicates_dropped: int,
    status: str,
    error_summary: list[str],
    dry_run: bool = False,
) -> None:
    end_time = datetime.now(timezone.utc)
    duration = (end_time - start_time).total_seconds()

    log.info(
        "Run %s | search_tasks=%d product_tasks=%d saved=%d duplicates=%d duration=%.1fs",
        status, search_tasks, product_tasks, records_saved, duplicates_dropped, duration,
    )

    if dry_run:
        return

    try:
        conn = _get_conn(db_path)
        conn.execute(
            """UPDATE runs_metadata SET
               end_time=?, duration_seconds=?, search_tasks=?, product_tasks=?,
               records_saved=?, duplicates_dropped=?, status=?, error_summary=?
               WHERE run_id=?""",
            (
                end_time.isoformat(),
                round(duration, 2),
                search_tasks,
                product_tasks,
                records_saved,
                duplicates_dropped,
                status,
                json.dumps(error_summary),
                run_id,
            ),
        )
        conn.commit()
        conn.close()
        log.info("Run metadata finalised in %s", db_path)
    except Exception as exc:
        log.error("Could not finalise run metadata: %s", exc)
