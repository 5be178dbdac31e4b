from bs4 import BeautifulSoup

from logger import get_logger

log = get_logger(__name__)

BASE_URL = "https://www.target.com"

_CARD_SELECTOR    = "div[data-test='@web/site-top-of-funnel/ProductCardWrapper']"
_TITLE_SELECTOR   = "h1[data-test='product-title']"
_RATING_SELECTOR  = "span[data-test='ratings']"
_PRICE_SELECTOR   = "span[data-test='product-price']"
_DETAILS_SELECTOR = "div[data-test='productDetailTabs-itemDetailsTab']"


def parse_search_card(card) -> dict | None:
    """
    Product cards link to /p/<slug>/-/A-<id>; the slug doubles as the title.
    Cards without a link are skipped.
    """
    link = card.select_one("a[href]")
    if link is None:
        return None
    href = link.get("href", "")
    segments = href.split("/")
    return {
        "title": segments[2] if len(segments) > 2 else None,
        "url":   f"{BASE_URL}{href}",
    }


def parse_search_page(html: str) -> list[dict]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for card in soup.select(_CARD_SELECTOR):
        try:
            item = parse_search_card(card)
        except Exception as exc:
            log.warning("Failed to parse product card: %s", exc)
            continue
        if item is not None:
            results.append(item)
    log.debug("Found %d product cards", len(results))
    return results


def _text_or(soup: BeautifulSoup, selector: str, default: str, sep: str = " ") -> str:
    node = soup.select_one(selector)
    if node is None:
        return default
    return node.get_text(sep, strip=True) or default


def parse_product_page(html: str) -> dict:
    soup = BeautifulSoup(html, "html.parser")

    rating       = "N/A"
    review_count = "0"
    holder = soup.select_one(_RATING_SELECTOR)
    if holder is not None:
        # e.g. "4.6 out of 5 stars with 123 reviews"
        tokens = holder.get_text(" ", strip=True).split(" ")
        rating = tokens[0]
        review_count = tokens[-2] if len(tokens) >= 2 else None

    return {
        "title":        _text_or(soup, _TITLE_SELECTOR, "N/A"),
        "price":        _text_or(soup, _PRICE_SELECTOR, "N/A"),
        "rating":       rating,
        "review_count": review_count,
        "details":      _text_or(soup, _DETAILS_SELECTOR, "N/A", sep="\n"),
    }
