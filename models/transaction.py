"""Pydantic models for transaction records and derived summaries"""
from enum import Enum
from datetime import date as calendar_date, datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

DEFAULT_CATEGORY = "Others"


class TransactionType(str, Enum):
    """Direction of a transaction. The amount itself is always a magnitude."""
    credit = "credit"  # inflow / income
    debit = "debit"    # outflow / expense


def utc_now() -> datetime:
    """Current time as a naive UTC datetime at BSON (millisecond) precision."""
    return to_storage_datetime(datetime.now(timezone.utc))


def to_storage_datetime(value: datetime) -> datetime:
    """Naive UTC, truncated to milliseconds, the way MongoDB hands dates back."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


class TransactionIn(BaseModel):
    """
    A transaction as submitted by a client, before the store assigns an id.
    """
    text: str = Field(..., min_length=1, description="Free-form label, e.g. 'Salary' or 'Burger King'.")
    amount: float = Field(..., ge=0, allow_inf_nan=False, description="Unsigned magnitude; direction comes from `type`.")
    type: TransactionType
    category: str = DEFAULT_CATEGORY
    date: Optional[datetime] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_CATEGORY
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _accept_calendar_dates(cls, value):
        # "2024-01-05" and date objects are stored at midnight
        if isinstance(value, str) and len(value.strip()) == 10:
            value = calendar_date.fromisoformat(value.strip())
        if isinstance(value, calendar_date) and not isinstance(value, datetime):
            return datetime.combine(value, datetime.min.time())
        return value

    @field_validator("date")
    @classmethod
    def _normalize_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_storage_datetime(value) if value is not None else None


class Transaction(TransactionIn):
    """
    A stored transaction record. Immutable once created.
    """
    id: str
    date: datetime


class CategoryTotal(BaseModel):
    name: str
    value: float


class DailyTotal(BaseModel):
    date: str  # display label, e.g. "Jan 5"
    amount: float
    raw_date: calendar_date


class TransactionSummary(BaseModel):
    """
    Totals and chart series derived from the full record list.
    """
    income: float = 0
    expense: float = 0
    balance: float = 0
    category_totals: List[CategoryTotal] = Field(default_factory=list)
    daily_totals: List[DailyTotal] = Field(default_factory=list)


class DeleteResult(BaseModel):
    message: str
    deleted_count: int
