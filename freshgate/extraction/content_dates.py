"""Publication-date scraping from article HTML.

Order of attempts:
  1. Structured meta tags (``article:published_time``, ``pubdate`` ...)
  2. ``<time datetime=...>`` elements
  3. Source-specific containers (FT, Bloomberg, MarketWatch, Maeil, Investing.com)
  4. Common date-class containers (``.date``, ``.publish-date`` ...)
  5. Regex patterns over the visible text

Every candidate is checked against the plausible range before it is accepted.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

import lxml.html
from lxml import etree

from freshgate.core.patterns import (
    extract_date_from_text,
    is_reasonable_date,
    parse_datetime_string,
)

_META_XPATHS = [
    "//meta[@property='article:published_time']",
    "//meta[@name='pubdate']",
    "//meta[@name='publishdate']",
    "//meta[@name='date']",
    "//meta[@itemprop='datePublished']",
    "//meta[@property='og:updated_time']",
]

_TIME_XPATH = "//time[@datetime]"


def _class_xpath(name: str, tag: str = "*") -> str:
    return f"//{tag}[contains(concat(' ', normalize-space(@class), ' '), ' {name} ')]"


_COMMON_CLASS_XPATHS = [
    _class_xpath(name)
    for name in ("date", "publish-date", "published", "timestamp", "article-date", "post-date", "entry-date")
]

# Keyed by a substring of the source id or the article host.
_SOURCE_XPATHS: Dict[str, List[str]] = {
    "ft": [_class_xpath("o-date"), _class_xpath("article__timestamp"), "//time[@data-o-date-format]"],
    "bloomberg": ["//*[@data-module='ArticleTimestamp']", _class_xpath("timestamp"), "//time"],
    "marketwatch": [_class_xpath("timestamp"), _class_xpath("article__timestamp"), _class_xpath("timestamp", "time")],
    "maeil": [_class_xpath("art_date"), _class_xpath("date"), "//time"],
    "mk.co.kr": [_class_xpath("art_date"), _class_xpath("date"), "//time"],
    "investing": ["//*[@data-date]", _class_xpath("articleHeader") + "//span", _class_xpath("date"), "//time"],
}


def _source_key(source_id: str, url: str) -> Optional[str]:
    source = (source_id or "").lower()
    host = url.lower().split("/")[2] if url.count("/") >= 2 else ""
    for key in _SOURCE_XPATHS:
        if key == "ft":
            if source == "ft" or source.startswith("ft_") or "financial_times" in source or host == "ft.com" or host.endswith(".ft.com"):
                return key
            continue
        if key in source or key in host:
            return key
    return None


def _parse_document(html: str):
    try:
        return lxml.html.fromstring(html)
    except ValueError:
        # Unicode strings carrying an XML encoding declaration
        return lxml.html.fromstring(html.encode("utf-8"))


def _date_from_attribute(value: str, now: datetime) -> Optional[datetime]:
    value = value.strip()
    if value.isdigit():
        seconds = int(value)
        if seconds > 10_000_000_000:
            seconds //= 1000
        try:
            return datetime.fromtimestamp(seconds)
        except (OverflowError, OSError, ValueError):
            return None
    return parse_datetime_string(value, now)


def _date_from_element(element, now: datetime) -> Optional[datetime]:
    for attr in ("datetime", "content", "data-date"):
        raw = element.get(attr)
        if raw:
            value = _date_from_attribute(raw, now)
            if value is not None and is_reasonable_date(value, now):
                return value
    if element.tag == "meta":
        return None
    return extract_date_from_text(element.text_content(), now)


def _first_match(doc, xpaths: List[str], now: datetime) -> Optional[datetime]:
    for xpath in xpaths:
        for element in doc.xpath(xpath):
            value = _date_from_element(element, now)
            if value is not None:
                return value
    return None


def extract_published_date(
    html: str,
    source_id: str = "",
    url: str = "",
    now: Optional[datetime] = None,
) -> Optional[Tuple[datetime, str]]:
    """Find the publication date in an article page.

    Args:
        html: Raw page body.
        source_id: Source code, used to pick source-specific containers.
        url: Article URL, used the same way as ``source_id``.
        now: Reference time for range checks and relative phrases.

    Returns:
        ``(date, stage)`` where ``stage`` names the step that found it, or None.
    """
    if not html or not html.strip():
        return None
    now = now or datetime.now()
    try:
        doc = _parse_document(html)
    except (etree.ParserError, ValueError):
        return None

    for stage, xpaths in (("meta", _META_XPATHS), ("time_tag", [_TIME_XPATH])):
        value = _first_match(doc, xpaths, now)
        if value is not None:
            return value, stage

    key = _source_key(source_id, url)
    if key is not None:
        value = _first_match(doc, _SOURCE_XPATHS[key], now)
        if value is not None:
            return value, f"selector:{key}"

    value = _first_match(doc, _COMMON_CLASS_XPATHS, now)
    if value is not None:
        return value, "date_class"

    for node in doc.xpath("//script|//style|//noscript"):
        node.drop_tree()
    value = extract_date_from_text(doc.text_content(), now)
    if value is not None:
        return value, "text"
    return None
