from __future__ import annotations

import logging
import re
from datetime import date, datetime

from spendlens.core.logging import get_logger, log_event

logger = get_logger(__name__)

# Order matters: day-first numeric forms win over month-first ones, so
# "03/04/2025" is 3 April. Month-first only matches when day-first is impossible.
_FOUR_DIGIT_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m.%d.%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)

_ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")
_COMPACT_ISO_RE = re.compile(r"^\d{8}$")
_TWO_DIGIT_NUMERIC_RE = re.compile(r"^(\d{1,2})([./-])(\d{1,2})\2(\d{2})$")
_TWO_DIGIT_NAMED_RE = re.compile(r"^(\d{1,2})[\s-]?([A-Za-z]{3,9})[\s-]?(\d{2})$")

_MONTHS: dict[str, int] = {
    name: idx
    for idx, names in enumerate(
        (
            ("jan", "january"),
            ("feb", "february"),
            ("mar", "march"),
            ("apr", "april"),
            ("may",),
            ("jun", "june"),
            ("jul", "july"),
            ("aug", "august"),
            ("sep", "sept", "september"),
            ("oct", "october"),
            ("nov", "november"),
            ("dec", "december"),
        ),
        start=1,
    )
    for name in names
}


def expand_two_digit_year(yy: int, reference: date) -> int:
    year = 2000 + yy
    if year > reference.year + 10:
        year -= 100
    return year


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_iso_datetime(value: str) -> date | None:
    if not _ISO_DATETIME_RE.match(value):
        return None
    try:
        return datetime.fromisoformat(value.replace("z", "Z")).date()
    except ValueError:
        return None


def _parse_two_digit(value: str, reference: date) -> date | None:
    m = _TWO_DIGIT_NUMERIC_RE.match(value)
    if m:
        first, second = int(m.group(1)), int(m.group(3))
        year = expand_two_digit_year(int(m.group(4)), reference)
        return _safe_date(year, second, first) or _safe_date(year, first, second)

    m = _TWO_DIGIT_NAMED_RE.match(value)
    if m:
        month = _MONTHS.get(m.group(2).lower())
        if month is None:
            return None
        year = expand_two_digit_year(int(m.group(3)), reference)
        return _safe_date(year, month, int(m.group(1)))
    return None


def parse_date_string(value: str | None, reference: date) -> date | None:
    """Match `value` against the known receipt date shapes; None when nothing fits."""
    s = re.sub(r"\s+", " ", (value or "").strip())
    if not s:
        return None

    parsed = _parse_iso_datetime(s)
    if parsed:
        return parsed

    for fmt in _FOUR_DIGIT_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue

    if _COMPACT_ISO_RE.match(s):
        return _safe_date(int(s[:4]), int(s[4:6]), int(s[6:]))

    return _parse_two_digit(s, reference)


def correct_implausible_year(value: date, reference: date) -> date:
    if value.year >= reference.year - 1:
        return value
    corrected = _safe_date(reference.year, value.month, value.day) or date(
        reference.year, value.month, 28
    )
    log_event(
        logger,
        "dates.year_corrected",
        level=logging.WARNING,
        original=value.isoformat(),
        corrected=corrected.isoformat(),
    )
    return corrected


def normalize_receipt_date(value: str | None, reference: date) -> date:
    """Never fails: an unreadable date becomes `reference`."""
    parsed = parse_date_string(value, reference)
    if parsed is None:
        log_event(logger, "dates.unparsed", level=logging.WARNING, value=(value or "")[:40])
        return reference
    return correct_implausible_year(parsed, reference)
