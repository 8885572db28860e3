"""Pydantic schemas for API request/response validation."""

from expense_categorizer.schemas.common import ErrorDetail, ErrorResponse, api_error
from expense_categorizer.schemas.transactions import TransactionIn

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "TransactionIn",
    "api_error",
]
