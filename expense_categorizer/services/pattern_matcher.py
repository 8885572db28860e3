"""Pattern matching and pattern value validation.

A pattern is anything exposing `pattern_type` and `pattern_value` (ORM row,
cached snapshot, or an ad-hoc PatternRule). A candidate is whatever the caller
has at hand:
- a bare string ("STARBUCKS #12"), number (25.00) or datetime
- a mapping with merchant_name / description / amount / transaction_date keys
- any object exposing those attributes (e.g. an expense row)

Candidates are adapted into a TransactionView; absent fields simply fail the
pattern types that need them. Matching never raises.

Pattern value grammar:
- merchant / keyword / description: free text (case-insensitive substring)
- amount_range: "min-max", inclusive, e.g. "10.00-50.00" or "-100--50"
- regex: case-insensitive regular expression
- time: morning/afternoon/evening/night/weekend/weekday or "HH:MM-HH:MM"
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any

from expense_categorizer.services.errors import PatternFormatError


class PatternType(str, Enum):
    """Closed set of pattern types."""

    MERCHANT = "merchant"
    KEYWORD = "keyword"
    DESCRIPTION = "description"
    AMOUNT_RANGE = "amount_range"
    REGEX = "regex"
    TIME = "time"


class TimeWindow(str, Enum):
    """Named time windows accepted by `time` patterns."""

    MORNING = "morning"  # 06:00-11:59
    AFTERNOON = "afternoon"  # 12:00-16:59
    EVENING = "evening"  # 17:00-20:59
    NIGHT = "night"  # 21:00-05:59
    WEEKEND = "weekend"
    WEEKDAY = "weekday"


TEXT_PATTERN_TYPES = frozenset({PatternType.MERCHANT, PatternType.KEYWORD, PatternType.DESCRIPTION})

MIN_TEXT_PATTERN_LENGTH = 2
MAX_TEXT_PATTERN_LENGTH = 255
MAX_REGEX_LENGTH = 100
MAX_AMOUNT_RANGE_WIDTH = Decimal("10000")

_GENERIC_WORDS = frozenset({"the", "a", "an", "of", "in", "on", "at", "to", "for", "and", "or"})

# The separator is the hyphen right after the first bound's digits; a hyphen
# that starts a bound is its sign ("-100--50" -> -100..-50).
_AMOUNT_RANGE_RE = re.compile(r"^(-?\d+(?:\.\d{1,2})?)-(-?\d+(?:\.\d{1,2})?)$")
_TIME_RANGE_RE = re.compile(r"^(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})$")
_NUMERIC_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")

# Nested quantifier shapes prone to catastrophic backtracking
_DANGEROUS_REGEX_SHAPES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\([^)]*[+*]\)[+*]"),  # (a+)+ or (a*)*
    re.compile(r"\[[^\]]*[+*]\][+*]"),  # [a+]+ or [a*]*
    re.compile(r"(\w+[+*])+[+*]"),  # a++ or a**
    re.compile(r"\(.+[+*].+\)[+*]"),  # complex nested quantifiers
    re.compile(r"\{(\d+,)?\d*\}\{"),  # consecutive counted quantifiers
)


@dataclass(frozen=True)
class PatternRule:
    """Ad-hoc pattern (not persisted), e.g. for testing a definition before saving it."""

    pattern_type: PatternType | str
    pattern_value: str
    active: bool = True


@dataclass(frozen=True)
class TransactionView:
    """Optional accessors the matcher dispatches on."""

    merchant_name: str | None = None
    description: str | None = None
    amount: Decimal | None = None
    transaction_date: datetime | None = None


# ============================================================
# Candidate adaptation
# ============================================================


def to_amount(value: Any) -> Decimal | None:
    """Coerce a numeric candidate value into a Decimal (None when not numeric)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        s = value.strip()
        if not _NUMERIC_RE.match(s):
            return None
        amount = Decimal(s)
    else:
        return None
    return amount if amount.is_finite() else None


def to_timestamp(value: Any) -> datetime | None:
    """Coerce a datetime/date/ISO-8601 string into a datetime (no timezone conversion)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            return None
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value)
    return s if s.strip() else None


def as_transaction(candidate: Any) -> TransactionView:
    """Adapt any supported candidate shape into a TransactionView."""
    if isinstance(candidate, TransactionView):
        return candidate
    if candidate is None:
        return TransactionView()
    if isinstance(candidate, str):
        text = _text(candidate)
        return TransactionView(
            merchant_name=text,
            description=text,
            amount=to_amount(candidate),
            transaction_date=to_timestamp(candidate),
        )
    if isinstance(candidate, (datetime, date)):
        return TransactionView(transaction_date=to_timestamp(candidate))
    if isinstance(candidate, (int, float, Decimal)) and not isinstance(candidate, bool):
        return TransactionView(amount=to_amount(candidate))
    if isinstance(candidate, Mapping):
        return TransactionView(
            merchant_name=_text(candidate.get("merchant_name")),
            description=_text(candidate.get("description")),
            amount=to_amount(candidate.get("amount")),
            transaction_date=to_timestamp(candidate.get("transaction_date")),
        )
    return TransactionView(
        merchant_name=_text(getattr(candidate, "merchant_name", None)),
        description=_text(getattr(candidate, "description", None)),
        amount=to_amount(getattr(candidate, "amount", None)),
        transaction_date=to_timestamp(getattr(candidate, "transaction_date", None)),
    )


# ============================================================
# Parsing helpers (cached: the same values are matched repeatedly)
# ============================================================


@lru_cache(maxsize=1024)
def parse_amount_range(value: str) -> tuple[Decimal, Decimal] | None:
    """Parse "min-max" into (min, max); None when malformed."""
    m = _AMOUNT_RANGE_RE.match(value.strip())
    if not m:
        return None
    return Decimal(m.group(1)), Decimal(m.group(2))


@lru_cache(maxsize=1024)
def parse_time_range(value: str) -> tuple[int, int] | None:
    """Parse "HH:MM-HH:MM" into (start_minute, end_minute) of day; None when malformed."""
    m = _TIME_RANGE_RE.match(value.strip())
    if not m:
        return None
    start_h, start_m, end_h, end_m = (int(g) for g in m.groups())
    if start_h > 23 or end_h > 23 or start_m > 59 or end_m > 59:
        return None
    return start_h * 60 + start_m, end_h * 60 + end_m


@lru_cache(maxsize=512)
def _compile_regex(value: str) -> re.Pattern[str] | None:
    try:
        return re.compile(value, re.IGNORECASE)
    except re.error:
        return None


# ============================================================
# Matching
# ============================================================


def _matches_text(pattern_value: str, text: str | None) -> bool:
    if not text:
        return False
    needle = pattern_value.strip().lower()
    if not needle:
        return False
    return needle in text.strip().lower()


def _matches_regex(pattern_value: str, view: TransactionView) -> bool:
    regex = _compile_regex(pattern_value)
    if regex is None:
        return False
    texts = [t for t in (view.merchant_name, view.description) if t]
    return any(regex.search(t) for t in texts)


def _matches_amount_range(pattern_value: str, amount: Decimal | None) -> bool:
    if amount is None:
        return False
    bounds = parse_amount_range(pattern_value)
    if bounds is None:
        return False
    low, high = bounds
    return low <= amount <= high


def _matches_time(pattern_value: str, ts: datetime | None) -> bool:
    if ts is None:
        return False

    value = pattern_value.strip().lower()
    hour = ts.hour
    if value == TimeWindow.MORNING.value:
        return 6 <= hour <= 11
    if value == TimeWindow.AFTERNOON.value:
        return 12 <= hour <= 16
    if value == TimeWindow.EVENING.value:
        return 17 <= hour <= 20
    if value == TimeWindow.NIGHT.value:
        return hour >= 21 or hour <= 5
    if value == TimeWindow.WEEKEND.value:
        return ts.weekday() >= 5
    if value == TimeWindow.WEEKDAY.value:
        return ts.weekday() < 5

    window = parse_time_range(value)
    if window is None:
        return False
    start, end = window
    current = hour * 60 + ts.minute
    if end < start:
        # Crosses midnight
        return current >= start or current <= end
    return start <= current <= end


def matches(pattern: Any, candidate: Any) -> bool:
    """Decide whether a pattern applies to a candidate.

    Args:
        pattern: Object with `pattern_type` and `pattern_value` (and optionally `active`).
        candidate: String, number, datetime, mapping, or transaction-like object.

    Returns:
        True on match. Inactive patterns, unknown types and missing evidence never match.
    """
    if getattr(pattern, "active", True) is False:
        return False
    try:
        pattern_type = PatternType(pattern.pattern_type)
    except ValueError:
        return False

    value = pattern.pattern_value
    if not value or not str(value).strip():
        return False
    value = str(value)

    view = as_transaction(candidate)
    if pattern_type in (PatternType.MERCHANT, PatternType.KEYWORD):
        return _matches_text(value, view.merchant_name)
    if pattern_type == PatternType.DESCRIPTION:
        return _matches_text(value, view.description)
    if pattern_type == PatternType.REGEX:
        return _matches_regex(value, view)
    if pattern_type == PatternType.AMOUNT_RANGE:
        return _matches_amount_range(value, view.amount)
    if pattern_type == PatternType.TIME:
        return _matches_time(value, view.transaction_date)
    return False


# ============================================================
# Validation
# ============================================================


def _validate_text(value: str) -> str:
    normalized = _WHITESPACE_RE.sub(" ", value.strip().lower())
    if _CONTROL_CHARS_RE.search(normalized):
        raise PatternFormatError("pattern_value", "contains invalid control characters")
    if len(normalized) < MIN_TEXT_PATTERN_LENGTH:
        raise PatternFormatError(
            "pattern_value", f"must be at least {MIN_TEXT_PATTERN_LENGTH} characters long"
        )
    if len(normalized) > MAX_TEXT_PATTERN_LENGTH:
        raise PatternFormatError(
            "pattern_value", f"must be no more than {MAX_TEXT_PATTERN_LENGTH} characters long"
        )
    if normalized in _GENERIC_WORDS:
        raise PatternFormatError("pattern_value", "is too generic to be useful for categorization")
    return normalized


def _validate_amount_range(value: str) -> str:
    bounds = parse_amount_range(value)
    if bounds is None:
        raise PatternFormatError(
            "pattern_value", "must be in format 'min-max' (e.g., '10.00-50.00' or '-100--50')"
        )
    low, high = bounds
    if low >= high:
        raise PatternFormatError("pattern_value", "minimum must be less than maximum")
    if high - low > MAX_AMOUNT_RANGE_WIDTH:
        raise PatternFormatError("pattern_value", "range is too broad (difference > 10,000)")
    return f"{low:.2f}-{high:.2f}"


def _validate_regex(value: str) -> str:
    value = value.strip()
    if len(value) > MAX_REGEX_LENGTH:
        raise PatternFormatError(
            "pattern_value", f"regex pattern is too long (max {MAX_REGEX_LENGTH} characters)"
        )
    if any(shape.search(value) for shape in _DANGEROUS_REGEX_SHAPES):
        raise PatternFormatError("pattern_value", "contains potentially dangerous regex pattern (nested quantifiers)")
    try:
        re.compile(value, re.IGNORECASE)
    except re.error as e:
        raise PatternFormatError("pattern_value", f"invalid regular expression: {e}") from e
    return value


def _validate_time(value: str) -> str:
    value = value.strip().lower()
    if value in {w.value for w in TimeWindow}:
        return value
    if not _TIME_RANGE_RE.match(value):
        names = ", ".join(w.value for w in TimeWindow)
        raise PatternFormatError(
            "pattern_value", f"must be one of: {names}, or a time range (e.g., '09:00-17:00')"
        )
    if parse_time_range(value) is None:
        raise PatternFormatError("pattern_value", "hours must be 0-23 and minutes 0-59")
    return value


def validate_pattern_value(pattern_type: PatternType | str, value: str | None) -> str:
    """Validate a pattern definition and return its normalized value.

    Raises:
        PatternFormatError: With the offending field and a human-readable reason.
    """
    try:
        ptype = PatternType(pattern_type)
    except ValueError:
        allowed = ", ".join(t.value for t in PatternType)
        raise PatternFormatError("pattern_type", f"must be one of: {allowed}") from None

    if value is None or not str(value).strip():
        raise PatternFormatError("pattern_value", "can't be blank")
    value = str(value)

    if ptype in TEXT_PATTERN_TYPES:
        return _validate_text(value)
    if ptype == PatternType.AMOUNT_RANGE:
        return _validate_amount_range(value)
    if ptype == PatternType.REGEX:
        return _validate_regex(value)
    return _validate_time(value)
