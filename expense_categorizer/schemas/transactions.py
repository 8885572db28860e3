"""Transaction payload shared by matching and categorization endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class TransactionIn(BaseModel):
    """Transaction-like value. Every field is optional; missing ones just don't match."""

    merchant_name: str | None = Field(alias="merchantName", default=None, max_length=500)
    description: str | None = Field(default=None, max_length=2000)
    amount: Decimal | None = None
    transaction_date: datetime | None = Field(alias="transactionDate", default=None)

    model_config = {"populate_by_name": True}
