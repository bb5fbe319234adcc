"""Summary and chart data derived from the full transaction list.

Everything here is a pure function of its input: no database access and no
hidden state, so callers can recompute on every refresh.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Union
from models.transaction import (
    CategoryTotal,
    DailyTotal,
    Transaction,
    TransactionSummary,
    TransactionType,
)

logger = logging.getLogger(__name__)

RecordLike = Union[Transaction, Mapping[str, Any]]


def _as_transaction(record: RecordLike) -> Transaction:
    if isinstance(record, Transaction):
        return record
    return Transaction.model_validate(record)


def _exact(amount: float) -> Decimal:
    # str() gives the shortest repr, so 0.1 becomes Decimal("0.1") rather than its binary expansion
    return Decimal(str(amount))


def day_label(day: date) -> str:
    """Short month and day, e.g. 'Jan 5'. The year is not part of the label."""
    return f"{day.strftime('%b')} {day.day}"


def summarize(records: Iterable[RecordLike]) -> TransactionSummary:
    """
    Computes income, expense, balance and the two expense breakdowns.

    - category_totals: debit records summed per category, in first-seen order.
    - daily_totals: debit records summed per calendar day, oldest day first. Days
      are keyed by full date so the same month/day in different years stays apart,
      even though their display labels match.

    Sums are exact decimal sums of the amounts, converted to float once, so the
    breakdowns read back as decimals add up to `expense` exactly.
    """
    transactions = [_as_transaction(r) for r in records]

    income = sum((_exact(t.amount) for t in transactions if t.type == TransactionType.credit), Decimal(0))
    expenses = [t for t in transactions if t.type == TransactionType.debit]
    expense = sum((_exact(t.amount) for t in expenses), Decimal(0))

    by_category: Dict[str, Decimal] = {}
    by_day: Dict[date, Decimal] = {}
    for t in expenses:
        amount = _exact(t.amount)
        by_category[t.category] = by_category.get(t.category, Decimal(0)) + amount
        day = t.date.date()
        by_day[day] = by_day.get(day, Decimal(0)) + amount

    summary = TransactionSummary(
        income=float(income),
        expense=float(expense),
        balance=float(income - expense),
        category_totals=[CategoryTotal(name=name, value=float(value)) for name, value in by_category.items()],
        daily_totals=[
            DailyTotal(date=day_label(day), amount=float(amount), raw_date=day)
            for day, amount in sorted(by_day.items())
        ],
    )
    logger.debug(f"Summarized {len(transactions)} transactions: income={income} expense={expense}")
    return summary


def recent_first(records: Iterable[RecordLike]) -> List[Transaction]:
    """History order for display: newest date first, ties keep store order."""
    transactions = [_as_transaction(r) for r in records]
    return sorted(transactions, key=lambda t: t.date, reverse=True)
