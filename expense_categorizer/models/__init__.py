"""SQLAlchemy ORM models.

Models represent database tables:
- categories: Spending categories
- categorization_patterns: Typed matching rules with usage counters
- pattern_feedbacks: Correctness feedback applied to patterns
- canonical_merchants: Authoritative merchants
- merchant_aliases: Raw merchant strings mapped to canonical merchants
"""

from expense_categorizer.models.category import Category
from expense_categorizer.models.categorization_pattern import CategorizationPattern
from expense_categorizer.models.canonical_merchant import CanonicalMerchant
from expense_categorizer.models.merchant_alias import MerchantAlias
from expense_categorizer.models.pattern_feedback import PatternFeedback

__all__ = ["Category", "CategorizationPattern", "CanonicalMerchant", "MerchantAlias", "PatternFeedback"]
