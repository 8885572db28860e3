"""Merchant name normalization.

Raw merchant strings arrive in many shapes ("STARBUCKS #1234", "Sq *Blue Bottle",
"UBER   *TRIP"). Everything that compares merchant names works on normalized text:

- normalize(): lowercase, drop anything that is not a letter/digit/whitespace,
  collapse whitespace. Idempotent.
- canonicalize_merchant_name(): normalize() plus removal of processor prefixes,
  store numbers and corporate suffixes. Used for canonical merchant names.
"""

import re

_NON_ALNUM_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")

# Card processor prefixes ("SQ *", "PAYPAL *", "TST*", "POS ")
_PROCESSOR_PREFIX_RE = re.compile(r"^(paypal\s*\*|sq\s*\*|square\s*\*|tst\*|pos\s+|ccd\s+)", re.IGNORECASE)
_STAR_RE = re.compile(r"\s*\*\s*")
_TRAILING_REFERENCE_RE = re.compile(r"\s+\d{4,}$")
_TRAILING_STORE_NUMBER_RE = re.compile(r"\s+#\d+$")
_STORE_LOCATION_RE = re.compile(r"\s+(store|location)\s*#?\d+", re.IGNORECASE)
_CORPORATE_SUFFIX_RE = re.compile(r"\s+(inc|llc|ltd|corp|co|company)\.?$", re.IGNORECASE)

_KNOWN_DISPLAY_NAMES: dict[str, str] = {
    "uber": "Uber",
    "lyft": "Lyft",
    "amazon": "Amazon",
    "walmart": "Walmart",
    "target": "Target",
    "starbucks": "Starbucks",
    "mcdonalds": "McDonald's",
    "netflix": "Netflix",
    "spotify": "Spotify",
}


def normalize(raw: str | None) -> str | None:
    """Normalize raw merchant text.

    Args:
        raw: Text as seen on a statement or notification.

    Returns:
        Lowercased text with punctuation removed and whitespace collapsed.
        None stays None and "" stays "".

    Example:
        >>> normalize("  STARBUCKS  Coffee #12! ")
        "starbucks coffee 12"
    """
    if raw is None:
        return None
    text = _NON_ALNUM_RE.sub("", raw.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def canonicalize_merchant_name(raw: str | None) -> str:
    """Reduce a raw merchant string to the name used for canonical merchants.

    Example:
        >>> canonicalize_merchant_name("SQ *BLUE BOTTLE COFFEE 84721")
        "blue bottle coffee"
    """
    if not raw or not raw.strip():
        return ""

    name = raw.strip()
    name = _PROCESSOR_PREFIX_RE.sub("", name)
    name = _STAR_RE.sub(" ", name).strip()
    name = _STORE_LOCATION_RE.sub("", name)
    name = _TRAILING_REFERENCE_RE.sub("", name)
    name = _TRAILING_STORE_NUMBER_RE.sub("", name)
    name = _CORPORATE_SUFFIX_RE.sub("", name)
    return normalize(name) or ""


def display_merchant_name(name: str | None) -> str:
    """Human-friendly merchant name for a normalized name."""
    if not name or not name.strip():
        return ""
    key = name.strip().lower()
    if key in _KNOWN_DISPLAY_NAMES:
        return _KNOWN_DISPLAY_NAMES[key]
    return " ".join(part.capitalize() for part in key.split())
