"""Text processing utilities — whitespace cleanup, slugs, posted-date parsing."""

import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

# "3 days ago", "1 hour ago", "hace 5 días", "hace 2 semanas"
_RELATIVE_PATTERNS = [
    (re.compile(r"(\d+)\s*(?:hours?|horas?)\b", re.I), "hours"),
    (re.compile(r"(\d+)\s*(?:days?|d[ií]as?)\b", re.I), "days"),
    (re.compile(r"(\d+)\s*(?:weeks?|semanas?)\b", re.I), "weeks"),
    (re.compile(r"(\d+)\s*(?:months?|mes(?:es)?)\b", re.I), "months"),
]


def clean_text(text: str | None) -> str:
    """Collapse whitespace and newlines to single spaces and trim."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def slugify(text: str | None) -> str:
    """Lowercase and replace whitespace runs with a hyphen."""
    if not text:
        return ""
    return re.sub(r"\s+", "-", text.strip().lower())


def parse_relative_date(text: str | None, now: datetime | None = None) -> datetime | None:
    """Parse "X hours/days/weeks/months ago" (or Spanish "hace X ...").

    Returns None when the text has no recognizable relative offset, or when
    the offset reaches past the representable date range.
    """
    if not text:
        return None
    now = now or datetime.now(timezone.utc)

    for pattern, unit in _RELATIVE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        amount = int(match.group(1))
        try:
            if unit == "months":
                return now - relativedelta(months=amount)
            return now - timedelta(**{unit: amount})
        except (OverflowError, ValueError):
            return None

    return None


def parse_posted_date(text: str | None, now: datetime | None = None) -> datetime:
    """Best-effort posted date: relative text, then absolute date, else now."""
    now = now or datetime.now(timezone.utc)
    if not text:
        return now

    relative = parse_relative_date(text, now)
    if relative is not None:
        return relative

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return now
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def strip_phrases(text: str, phrases: list[str]) -> str:
    """Remove boilerplate phrases (case-insensitive) and trim."""
    for phrase in phrases:
        text = re.sub(re.escape(phrase), "", text, flags=re.I)
    return text.strip()
