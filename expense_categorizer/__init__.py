"""Expense Categorizer API - rule-based transaction categorization and merchant alias resolution."""
