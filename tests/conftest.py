import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logger as _logger_mod

_logger_mod.setup_logger("test-run")



def make_search_html(hrefs):
    cards = "\n".join(
        f"""
<div data-test="@web/site-top-of-funnel/ProductCardWrapper">
  <div class="styles__ProductCardImage"><img src="x.jpg"/></div>
  <a href="{href}">Product</a>
</div>"""
        for href in hrefs
    )
    return f"<html><body><div id='search-results'>{cards}</div></body></html>"


def make_product_html(title, price="$19.99", ratings="4.6 out of 5 stars with 123 reviews",
                      details="Dimensions: 6 inches\nWeight: 0.3 pounds"):
    parts = ["<html><body>"]
    if title is not None:
        parts.append(f"<h1 data-test='product-title'>{title}</h1>")
    if ratings is not None:
        parts.append(f"<span data-test='ratings'>{ratings}</span>")
    if price is not None:
        parts.append(f"<span data-test='product-price'>{price}</span>")
    if details is not None:
        lines = "".join(f"<div>{line}</div>" for line in details.split("\n"))
        parts.append(f"<div data-test='productDetailTabs-itemDetailsTab'>{lines}</div>")
    parts.append("</body></html>")
    return "\n".join(parts)


SAMPLE_SEARCH_HTML = make_search_html([
    "/p/apple-pencil-2nd-generation/-/A-54191101",
    "/p/apple-pencil-usb-c/-/A-89495112",
    "/p/apple-pencil-2nd-generation/-/A-54191101",
])

SAMPLE_PRODUCT_HTML = make_product_html("Apple Pencil (2nd Generation)", price="$89.99 sale")

SAMPLE_PRODUCT_HTML_EMPTY = "<html><body><p>Page unavailable</p></body></html>"


@pytest.fixture
def search_html():
    return SAMPLE_SEARCH_HTML


@pytest.fixture
def product_html():
    return SAMPLE_PRODUCT_HTML


@pytest.fixture
def empty_product_html():
    return SAMPLE_PRODUCT_HTML_EMPTY


@pytest.fixture
def raw_product():
    """Raw extraction output ready for ProductRecord.from_raw."""
    return {
        "title":        "  Apple Pencil (2nd Generation)  ",
        "price":        "$19.99 now",
        "rating":       "4.6",
        "review_count": "123",
        "details":      "Dimensions: 6 inches",
    }


@pytest.fixture
def base_config(tmp_path):
    return {
        "keywords":      ["apple pen"],
        "pages":         1,
        "concurrency":   2,
        "retries":       2,
        "retry_backoff": 0.0,
        "location":      "us",
        "batch_size":    50,
        "output_dir":    str(tmp_path),
        "config_file":   "config.json",
        "log_file":      "",
        "metadata_db":   str(tmp_path / "runs_metadata.db"),
        "user_agent":    "TestAgent/1.0",
        "wait_ms":       5000,
        "headless":      True,
        "dry_run":       False,
    }
