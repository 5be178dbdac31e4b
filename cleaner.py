import re
from dataclasses import asdict, dataclass, fields
from typing import Any

from logger import get_logger

log = get_logger(__name__)

_PRICE_RE  = re.compile(r"\d+(\.\d{1,2})?")
_FLOAT_RE  = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)")
_INT_RE    = re.compile(r"-?\d+")


def _validate_string(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _parse_price(value: Any) -> float:
    if not isinstance(value, str):
        return 0.0
    m = _PRICE_RE.search(value.replace(",", ""))
    return float(m.group(0)) if m else 0.0


def _parse_rating(value: Any) -> float:
    # "4.5 out of 5" reads as 4.5
    if not isinstance(value, str):
        return 0.0
    m = _FLOAT_RE.match(value)
    if not m:
        return 0.0
    rating = float(m.group(0))
    return rating if rating >= 0 else 0.0


def _parse_review_count(value: Any) -> int:
    # "(123" and "1,234" both come out of the ratings text
    if not isinstance(value, str):
        return 0
    m = _INT_RE.search(value.replace(",", ""))
    if not m:
        return 0
    count = int(m.group(0))
    return count if count >= 0 else 0


@dataclass
class SearchRecord:
    title: str
    url: str

    @classmethod
    def from_raw(cls, raw: dict | None) -> "SearchRecord":
        raw = raw or {}
        return cls(
            title=_validate_string(raw.get("title"), "No Title"),
            url=_validate_string(raw.get("url"), "No URL"),
        )

    @property
    def key(self) -> str:
        return self.title

    @classmethod
    def fieldnames(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def to_row(self) -> dict:
        return asdict(self)


@dataclass
class ProductRecord:
    title: str
    price: float
    rating: float
    review_count: int
    details: str

    @classmethod
    def from_raw(cls, raw: dict | None) -> "ProductRecord":
        raw = raw or {}
        return cls(
            title=_validate_string(raw.get("title"), "No Title"),
            price=_parse_price(raw.get("price")),
            rating=_parse_rating(raw.get("rating")),
            review_count=_parse_review_count(raw.get("review_count")),
            details=_validate_string(raw.get("details"), "No Details"),
        )

    @property
    def key(self) -> str:
        return self.title

    @classmethod
    def fieldnames(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def to_row(self) -> dict:
        return asdict(self)


def clean_search_results(raw_list: list[dict]) -> list[SearchRecord]:
    records = [SearchRecord.from_raw(raw) for raw in raw_list]
    fallbacks = sum(1 for r in records if r.title == "No Title" or r.url == "No URL")
    if fallbacks:
        log.debug("%d of %d search results needed fallback values", fallbacks, len(records))
    return records
