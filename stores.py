"""Client-side caches mirroring the server collections.

Each store keeps the last fetched collection in memory so views can read it
synchronously, patches the cache after every successful mutating call, and
records failures in ``error`` before re-raising them to the caller.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterator, Optional

import aggregation
from aggregation import BudgetProgress
from api_client import ApiClient, ApiError
from errors import FinanceError, ValidationError
from models import DEFAULT_CURRENCY, DEFAULT_THEME, Theme, TransactionType
from periods import utc_today
from schemas import BudgetOut, SettingsOut, TransactionIn, TransactionOut, UserOut

logger = logging.getLogger(__name__)

CATEGORIES: dict[TransactionType, list[str]] = {
    TransactionType.income: ["工资", "奖金", "投资", "其他收入"],
    TransactionType.expense: [
        "餐饮",
        "交通",
        "住房",
        "购物",
        "娱乐",
        "医疗",
        "教育",
        "其他支出",
    ],
}


class _Store:
    def __init__(self, api: ApiClient) -> None:
        self.api = api
        self.is_loading = False
        self.error: Optional[str] = None

    @contextmanager
    def _action(self, failure_message: str) -> Iterator[None]:
        self.is_loading = True
        self.error = None
        try:
            yield
        except (ApiError, FinanceError) as exc:
            self.error = exc.message or failure_message
            logger.error(f"{failure_message}: {exc.message}")
            raise
        finally:
            self.is_loading = False


class TransactionStore(_Store):
    def __init__(self, api: ApiClient) -> None:
        super().__init__(api)
        self.transactions: list[TransactionOut] = []
        self.categories = CATEGORIES

    @property
    def total_income(self) -> Decimal:
        return aggregation.total_income(self.transactions)

    @property
    def total_expense(self) -> Decimal:
        return aggregation.total_expense(self.transactions)

    @property
    def net_balance(self) -> Decimal:
        return aggregation.net_balance(self.transactions)

    def by_month(self, month: int, year: int) -> list[TransactionOut]:
        return aggregation.transactions_by_month(self.transactions, year, month)

    def by_category(self, category: str) -> list[TransactionOut]:
        return aggregation.transactions_by_category(self.transactions, category)

    def _check_category(self, data: TransactionIn) -> None:
        if data.type is None or data.category is None:
            return
        if data.category not in self.categories.get(data.type, []):
            raise ValidationError(
                f"Unknown {data.type.value} category: {data.category}"
            )

    def fetch(self) -> list[TransactionOut]:
        with self._action("Failed to fetch transactions"):
            rows = self.api.list_transactions()
            self.transactions = [TransactionOut.model_validate(r) for r in rows]
        return self.transactions

    def add(self, data: TransactionIn) -> TransactionOut:
        with self._action("Failed to add transaction"):
            self._check_category(data)
            payload = data.model_dump(exclude_none=True)
            payload.setdefault("date", utc_today())
            txn = TransactionOut.model_validate(self.api.create_transaction(payload))
            self.transactions.append(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> TransactionOut:
        with self._action("Failed to update transaction"):
            self._check_category(data)
            payload = data.model_dump(exclude_unset=True)
            txn = TransactionOut.model_validate(
                self.api.update_transaction(transaction_id, payload)
            )
            for index, existing in enumerate(self.transactions):
                if existing.id == transaction_id:
                    self.transactions[index] = txn
                    break
        return txn

    def delete(self, transaction_id: int) -> bool:
        with self._action("Failed to delete transaction"):
            self.api.delete_transaction(transaction_id)
            self.transactions = [
                t for t in self.transactions if t.id != transaction_id
            ]
        return True

    def reset(self) -> None:
        self.transactions = []
        self.is_loading = False
        self.error = None


class BudgetStore(_Store):
    def __init__(self, api: ApiClient, transactions: TransactionStore) -> None:
        super().__init__(api)
        self.transactions = transactions
        self.budgets: list[BudgetOut] = []

    def by_category(self, category: str) -> Optional[BudgetOut]:
        for budget in self.budgets:
            if budget.category == category:
                return budget
        return None

    def progress(
        self, category: str, today: Optional[date] = None
    ) -> Optional[BudgetProgress]:
        return aggregation.budget_progress(
            self.by_category(category), self.transactions.transactions, today=today
        )

    def all_progress(self, today: Optional[date] = None) -> list[BudgetProgress]:
        return aggregation.all_budget_progress(
            self.budgets, self.transactions.transactions, today=today
        )

    def fetch(self) -> list[BudgetOut]:
        with self._action("Failed to fetch budgets"):
            rows = self.api.list_budgets()
            self.budgets = [BudgetOut.model_validate(r) for r in rows]
        return self.budgets

    def set_budget(self, category: str, amount: Decimal) -> BudgetOut:
        """Create the category's budget, or replace its amount if cached."""
        with self._action("Failed to save budget"):
            payload = {"category": category, "amount": Decimal(str(amount))}
            if self.by_category(category) is not None:
                budget = BudgetOut.model_validate(
                    self.api.update_budget(category, {"amount": payload["amount"]})
                )
                self.budgets = [
                    budget if b.category == category else b for b in self.budgets
                ]
            else:
                budget = BudgetOut.model_validate(self.api.create_budget(payload))
                self.budgets.append(budget)
        return budget

    def delete(self, category: str) -> None:
        with self._action("Failed to delete budget"):
            self.api.delete_budget(category)
            self.budgets = [b for b in self.budgets if b.category != category]

    def reset(self) -> None:
        self.budgets = []
        self.is_loading = False
        self.error = None


@dataclass
class DisplaySettings:
    currency: str = DEFAULT_CURRENCY
    theme: Theme = DEFAULT_THEME
    user_name: str = "User"
    is_logged_in: bool = False
    id: Optional[int] = None


class SettingsStore(_Store):
    def __init__(self, api: ApiClient) -> None:
        super().__init__(api)
        self.settings = DisplaySettings(is_logged_in=api.has_token)

    @property
    def currency(self) -> str:
        return self.settings.currency

    @property
    def theme(self) -> Theme:
        return self.settings.theme

    def _apply(self, data: dict) -> None:
        row = SettingsOut.model_validate(data)
        self.settings.id = row.id
        self.settings.currency = row.currency
        self.settings.theme = row.theme

    def fetch(self) -> Optional[DisplaySettings]:
        if not self.api.has_token:
            return None
        with self._action("Failed to fetch settings"):
            self._apply(self.api.get_settings())
        return self.settings

    def update(
        self, currency: Optional[str] = None, theme: Optional[Theme] = None
    ) -> DisplaySettings:
        payload: dict[str, object] = {}
        if currency is not None:
            payload["currency"] = currency
        if theme is not None:
            payload["theme"] = Theme(theme)
        with self._action("Failed to update settings"):
            self._apply(self.api.update_settings(payload))
        return self.settings

    def set_currency(self, currency: str) -> DisplaySettings:
        return self.update(currency=currency)

    def set_theme(self, theme: Theme) -> DisplaySettings:
        return self.update(theme=theme)

    def login(self, user_name: str) -> None:
        self.settings.user_name = user_name
        self.settings.is_logged_in = True

    def logout(self) -> None:
        self.api.token_store.clear()
        self.settings.is_logged_in = False


class SessionStore(_Store):
    """Owns the login lifecycle and resets the other caches on logout."""

    def __init__(
        self,
        api: ApiClient,
        transactions: TransactionStore,
        budgets: BudgetStore,
        settings: SettingsStore,
    ) -> None:
        super().__init__(api)
        self.transactions = transactions
        self.budgets = budgets
        self.settings = settings
        self.user: Optional[UserOut] = None

    @property
    def is_authenticated(self) -> bool:
        return self.api.has_token

    def register(self, username: str, password: str, email: str) -> UserOut:
        with self._action("Registration failed"):
            body = self.api.register(username, password, email)
        return UserOut.model_validate(body["user"])

    def login(self, username: str, password: str) -> UserOut:
        with self._action("Login failed"):
            body = self.api.login(username, password)
            self.api.token_store.set(body["token"])
            self.user = UserOut.model_validate(body["user"])
            self.settings.login(self.user.username)
        return self.user

    def load_profile(self) -> UserOut:
        with self._action("Failed to load profile"):
            body = self.api.get_profile()
            self.user = UserOut.model_validate(body["user"])
        return self.user

    def logout(self) -> None:
        try:
            self.api.logout()
        except ApiError as exc:
            logger.warning(f"logout request failed: {exc.message}")
        self.clear()

    def clear(self) -> None:
        self.user = None
        self.transactions.reset()
        self.budgets.reset()
        self.settings.logout()


@dataclass
class Stores:
    api: ApiClient
    transactions: TransactionStore
    budgets: BudgetStore
    settings: SettingsStore
    session: SessionStore

    @classmethod
    def create(cls, api: ApiClient) -> "Stores":
        transactions = TransactionStore(api)
        budgets = BudgetStore(api, transactions)
        settings = SettingsStore(api)
        session = SessionStore(api, transactions, budgets, settings)
        # A 401/403 from any endpoint drops every cached collection.
        api.on_logout = session.clear
        return cls(
            api=api,
            transactions=transactions,
            budgets=budgets,
            settings=settings,
            session=session,
        )
