"""Error taxonomy for pattern and alias operations.

- Format errors: a pattern value that does not fit its declared type.
- Capability errors: the store cannot serve an optional query (fuzzy search).
- Invariant violations: counters or weights outside their bounds. These mean a
  caller bug and are never clamped.

Missing evidence (blank text, absent amount/timestamp) is not an error: matching
returns False and lookups return None.
"""


class CategorizationError(Exception):
    """Base class for categorization errors."""


class PatternFormatError(CategorizationError, ValueError):
    """Pattern definition rejected at validation time."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class DuplicatePatternError(CategorizationError):
    """A pattern with the same (category, type, value) already exists."""


class FuzzySearchUnavailable(CategorizationError):
    """The store has no similarity-ranked query (e.g. pg_trgm is not installed)."""


class InvariantViolation(CategorizationError, AssertionError):
    """Counter/weight/confidence invariant broken by a caller."""
