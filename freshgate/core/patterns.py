"""Date pattern library: stateless regexes that turn URLs and text into dates.

URL patterns are ordered; the first pattern that matches and yields a real
calendar date wins. Text patterns follow the same rule and are grouped by
family (labelled, ISO-8601, Korean, English long-form, relative).

Date-only matches are pinned to 12:00 local time.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

# Plausible publication range for anything scraped out of a URL or page.
DATE_FLOOR = datetime(2020, 1, 1)
URL_MIN_YEAR = 2000
MAX_FUTURE_SKEW = timedelta(days=1)

# Unix epoch seconds for 2020-01-01, lower bound for epoch/hex URL suffixes.
MIN_EPOCH_SECONDS = 1577836800

MONTH_NAMES = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}


@dataclass(frozen=True)
class UrlDatePattern:
    """A URL regex plus how to read its captured groups.

    ``kind`` is ``"ymd"`` (named groups year/month/day), ``"epoch"`` (decimal
    seconds or milliseconds in group ``ts``) or ``"hex_epoch"`` (hexadecimal
    seconds in group ``ts``).
    """
    name: str
    regex: re.Pattern
    kind: str = "ymd"


def _p(name: str, pattern: str, kind: str = "ymd") -> UrlDatePattern:
    return UrlDatePattern(name=name, regex=re.compile(pattern), kind=kind)


# ── URL pattern families ──────────────────────────────────────────────────────

BLOOMBERG_ARTICLE = _p("bloomberg_articles", r"/articles/(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})(?:/|$)")
MAEIL_IDXNO = _p("maeil_idxno", r"idxno=(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})\d+")
MARKETWATCH_STORY = _p("marketwatch_story", r"/story/[^?#]*-(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})-")
FT_CONTENT_EPOCH = _p("ft_content_epoch", r"/content/[a-f0-9-]+-(?P<ts>\d{10})(?:\D|$)", kind="epoch")
HEX_EPOCH_SUFFIX = _p("hex_epoch_suffix", r"-(?P<ts>[a-f0-9]{8})(?:[?#].*)?$", kind="hex_epoch")

SLASH_YMD = _p("slash_ymd", r"/(?P<year>\d{4})/(?P<month>\d{1,2})/(?P<day>\d{1,2})/")
DASH_YMD = _p("dash_ymd", r"/(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})/")
DOT_YMD = _p("dot_ymd", r"/(?P<year>\d{4})\.(?P<month>\d{1,2})\.(?P<day>\d{1,2})/")
COMPACT_YMD = _p("compact_ymd", r"/(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})/")
QUERY_DATE = _p("query_date", r"[?&](?:date|published|pubdate)=(?P<year>\d{4})[-.]?(?P<month>\d{1,2})[-.]?(?P<day>\d{1,2})")

GENERIC_URL_PATTERNS: Sequence[UrlDatePattern] = (
    SLASH_YMD,
    DASH_YMD,
    DOT_YMD,
    COMPACT_YMD,
    QUERY_DATE,
    FT_CONTENT_EPOCH,
    BLOOMBERG_ARTICLE,
    MARKETWATCH_STORY,
    MAEIL_IDXNO,
)


def is_valid_calendar_date(year: int, month: int, day: int) -> bool:
    """Return True for a real calendar day within the accepted URL year range."""
    if year < URL_MIN_YEAR or year > 2100:
        return False
    try:
        datetime(year, month, day)
    except ValueError:
        return False
    return True


def is_reasonable_date(value: datetime, now: Optional[datetime] = None) -> bool:
    """Return True when value is after DATE_FLOOR and at most one day ahead of now."""
    now = now or datetime.now()
    return DATE_FLOOR < value < now + MAX_FUTURE_SKEW


def _from_epoch(seconds: int, now: Optional[datetime]) -> Optional[datetime]:
    now = now or datetime.now()
    upper = (now + MAX_FUTURE_SKEW).timestamp()
    if MIN_EPOCH_SECONDS <= seconds <= upper:
        return datetime.fromtimestamp(seconds)
    # Millisecond timestamps
    if MIN_EPOCH_SECONDS * 1000 <= seconds <= upper * 1000:
        return datetime.fromtimestamp(seconds // 1000)
    return None


def _read_match(pattern: UrlDatePattern, match: re.Match, now: Optional[datetime]) -> Optional[datetime]:
    if pattern.kind == "epoch":
        return _from_epoch(int(match.group("ts")), now)
    if pattern.kind == "hex_epoch":
        return _from_epoch(int(match.group("ts"), 16), now)
    year, month, day = (int(match.group(g)) for g in ("year", "month", "day"))
    if not is_valid_calendar_date(year, month, day):
        return None
    return datetime(year, month, day, 12, 0)


def extract_date_from_url(
    url: str,
    patterns: Iterable[UrlDatePattern] = GENERIC_URL_PATTERNS,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Return the first date any of ``patterns`` finds in ``url``, else None.

    Args:
        url: Raw article URL. Matching is case-insensitive.
        patterns: Ordered pattern set; first usable match wins.
        now: Reference time for epoch plausibility checks.

    Returns:
        Extracted datetime, or ``None`` when no pattern yields a usable date.
    """
    if not url or not url.strip():
        return None
    normalized = url.strip().lower()
    for pattern in patterns:
        match = pattern.regex.search(normalized)
        if not match:
            continue
        try:
            value = _read_match(pattern, match, now)
        except (ValueError, OverflowError, OSError):
            continue
        if value is not None:
            return value
    return None


# ── Text pattern families ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class TextDatePattern:
    """A regex over visible text and the function that turns a match into a datetime."""
    name: str
    regex: re.Pattern
    parse: Callable[[re.Match, datetime], Optional[datetime]]


def _ymd(year: str, month: str, day: str, hour: int = 12, minute: int = 0) -> Optional[datetime]:
    try:
        return datetime(int(year), int(month), int(day), hour, minute)
    except ValueError:
        return None


def _parse_groups_ymd(match: re.Match, now: datetime) -> Optional[datetime]:
    return _ymd(match.group("year"), match.group("month"), match.group("day"))


def _parse_month_name(match: re.Match, now: datetime) -> Optional[datetime]:
    month = MONTH_NAMES.get(match.group("month_name").lower().rstrip("."))
    if month is None:
        return None
    return _ymd(match.group("year"), str(month), match.group("day"))


def _parse_us_numeric(match: re.Match, now: datetime) -> Optional[datetime]:
    return _ymd(match.group("year"), match.group("month"), match.group("day"))


def _parse_iso(match: re.Match, now: datetime) -> Optional[datetime]:
    return parse_datetime_string(match.group(0), now)


def _parse_relative(match: re.Match, now: datetime) -> Optional[datetime]:
    amount = int(match.group("amount"))
    unit = match.group("unit").lower()
    if unit.startswith("min"):
        return now - timedelta(minutes=amount)
    if unit.startswith("hour"):
        return now - timedelta(hours=amount)
    return now - timedelta(days=amount)


_LABEL_EN = r"(?:published|posted|updated|created)\s*(?:on|at)?\s*[:\-]?\s*"
_LABEL_KO = r"(?:작성일|발행일|등록일|입력|수정|업데이트)\s*[:\-]?\s*"
_MONTH_WORD = r"(?P<month_name>[A-Za-z]{3,9}\.?)"

TEXT_DATE_PATTERNS: Sequence[TextDatePattern] = (
    TextDatePattern(
        "labelled_korean",
        re.compile(_LABEL_KO + r"(?P<year>\d{4})\s*[년.\-/]\s*(?P<month>\d{1,2})\s*[월.\-/]\s*(?P<day>\d{1,2})\s*일?"),
        _parse_groups_ymd,
    ),
    TextDatePattern(
        "labelled_english_long",
        re.compile(_LABEL_EN + _MONTH_WORD + r"\s+(?P<day>\d{1,2}),?\s+(?P<year>\d{4})", re.IGNORECASE),
        _parse_month_name,
    ),
    TextDatePattern(
        "labelled_us_numeric",
        re.compile(_LABEL_EN + r"(?P<month>\d{1,2})[/-](?P<day>\d{1,2})[/-](?P<year>\d{4})", re.IGNORECASE),
        _parse_us_numeric,
    ),
    TextDatePattern(
        "labelled_iso_date",
        re.compile(_LABEL_EN + r"(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})", re.IGNORECASE),
        _parse_groups_ymd,
    ),
    TextDatePattern(
        "iso_datetime",
        re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2})?(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?"),
        _parse_iso,
    ),
    TextDatePattern(
        "korean_long",
        re.compile(r"(?P<year>\d{4})년\s*(?P<month>\d{1,2})월\s*(?P<day>\d{1,2})일"),
        _parse_groups_ymd,
    ),
    TextDatePattern(
        "dotted_ymd",
        re.compile(r"(?<!\d)(?P<year>\d{4})\.\s?(?P<month>\d{1,2})\.\s?(?P<day>\d{1,2})(?!\d)"),
        _parse_groups_ymd,
    ),
    TextDatePattern(
        "iso_date",
        re.compile(r"(?<!\d)(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})(?!\d)"),
        _parse_groups_ymd,
    ),
    TextDatePattern(
        "english_month_day_year",
        re.compile(r"\b" + _MONTH_WORD + r"\s+(?P<day>\d{1,2}),\s+(?P<year>\d{4})\b"),
        _parse_month_name,
    ),
    TextDatePattern(
        "english_day_month_year",
        re.compile(r"\b(?P<day>\d{1,2})\s+" + _MONTH_WORD + r"\s+(?P<year>\d{4})\b"),
        _parse_month_name,
    ),
    TextDatePattern(
        "slashed_ymd",
        re.compile(r"(?<!\d)(?P<year>\d{4})/(?P<month>\d{1,2})/(?P<day>\d{1,2})(?!\d)"),
        _parse_groups_ymd,
    ),
    TextDatePattern(
        "relative",
        re.compile(r"\b(?P<amount>\d{1,3})\s+(?P<unit>minutes?|mins?|hours?|days?)\s+ago\b", re.IGNORECASE),
        _parse_relative,
    ),
)


def extract_date_from_text(
    text: str,
    now: Optional[datetime] = None,
    patterns: Iterable[TextDatePattern] = TEXT_DATE_PATTERNS,
) -> Optional[datetime]:
    """Return the first plausible date found in free text, trying pattern families in order."""
    if not text or not text.strip():
        return None
    now = now or datetime.now()
    for pattern in patterns:
        for match in pattern.regex.finditer(text):
            value = pattern.parse(match, now)
            if value is not None and is_reasonable_date(value, now):
                return value
    return None


_ISO_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y.%m.%d %H:%M",
)


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_datetime_string(raw: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a machine-readable timestamp (meta tag content, ``datetime`` attribute).

    Tries ISO-8601 (with ``Z`` or offsets), a few common layouts, then falls
    back to the free-text patterns.
    """
    if not raw or not raw.strip():
        return None
    value = raw.strip()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if len(value) <= 10:
            parsed = parsed.replace(hour=12, minute=0)
        return to_local_naive(parsed)
    except ValueError:
        pass
    for fmt in _ISO_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    # Free-text fallback must not recurse back into the ISO pattern parser.
    text_patterns = [p for p in TEXT_DATE_PATTERNS if p.name != "iso_datetime"]
    return extract_date_from_text(value, now=now, patterns=text_patterns)
