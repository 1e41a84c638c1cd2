"""Derived views over transaction and budget collections.

Everything here is a pure function of its inputs and is recomputed on every
call. Inputs only need ``type``/``category``/``amount``/``date`` attributes,
so ORM rows and the client-side cached records both work.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Protocol

from models import TransactionType
from periods import Period, current_month, month_period

ZERO = Decimal("0")


class TransactionLike(Protocol):
    type: TransactionType
    category: str
    amount: Decimal
    date: Optional[date]


class BudgetLike(Protocol):
    category: str
    amount: Decimal


@dataclass(frozen=True)
class BudgetProgress:
    category: str
    spent: Decimal
    limit: Decimal
    percentage: float
    is_over_budget: bool


def _amount(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def total_for_type(
    transactions: Iterable[TransactionLike], txn_type: TransactionType
) -> Decimal:
    return sum(
        (_amount(t.amount) for t in transactions if t.type == txn_type), ZERO
    )


def total_income(transactions: Iterable[TransactionLike]) -> Decimal:
    return total_for_type(transactions, TransactionType.income)


def total_expense(transactions: Iterable[TransactionLike]) -> Decimal:
    return total_for_type(transactions, TransactionType.expense)


def net_balance(transactions: Iterable[TransactionLike]) -> Decimal:
    items = list(transactions)
    return total_income(items) - total_expense(items)


def transactions_in_period(
    transactions: Iterable[TransactionLike], period: Period
) -> list[TransactionLike]:
    return [t for t in transactions if t.date is not None and period.contains(t.date)]


def transactions_by_month(
    transactions: Iterable[TransactionLike], year: int, month: int
) -> list[TransactionLike]:
    return transactions_in_period(transactions, month_period(year, month))


def transactions_by_category(
    transactions: Iterable[TransactionLike], category: str
) -> list[TransactionLike]:
    return [t for t in transactions if t.category == category]


def expense_by_category(
    transactions: Iterable[TransactionLike], period: Period
) -> dict[str, Decimal]:
    spent: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in transactions_in_period(transactions, period):
        if txn.type == TransactionType.expense:
            spent[txn.category] += _amount(txn.amount)
    return dict(spent)


def budget_progress(
    budget: Optional[BudgetLike],
    transactions: Iterable[TransactionLike],
    *,
    period: Optional[Period] = None,
    today: Optional[date] = None,
) -> Optional[BudgetProgress]:
    if budget is None:
        return None
    period = period or current_month(today)
    spent = expense_by_category(transactions, period).get(budget.category, ZERO)
    limit = _amount(budget.amount)
    percentage = float(spent / limit * 100) if limit else 0.0
    return BudgetProgress(
        category=budget.category,
        spent=spent,
        limit=limit,
        percentage=percentage,
        is_over_budget=percentage > 100,
    )


def all_budget_progress(
    budgets: Iterable[BudgetLike],
    transactions: Iterable[TransactionLike],
    *,
    period: Optional[Period] = None,
    today: Optional[date] = None,
) -> list[BudgetProgress]:
    items = list(transactions)
    period = period or current_month(today)
    result = []
    for budget in budgets:
        progress = budget_progress(budget, items, period=period)
        if progress is not None:
            result.append(progress)
    return result
