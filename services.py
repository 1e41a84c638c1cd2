from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregation import BudgetProgress, all_budget_progress
from errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    ServerError,
    ValidationError,
)
from models import (
    DEFAULT_CURRENCY,
    DEFAULT_THEME,
    Budget,
    Transaction,
    TransactionType,
    User,
    UserSettings,
)
from periods import Period, utc_today
from schemas import (
    BudgetAmountIn,
    BudgetIn,
    LoginIn,
    RegisterIn,
    SettingsIn,
    TransactionIn,
)
from security import (
    MAX_PASSWORD_BYTES,
    decode_token,
    hash_password,
    issue_token,
    password_too_long,
    verify_password,
)

logger = logging.getLogger(__name__)

INCORRECT_CREDENTIALS = "Incorrect username or password"


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    period: Optional[Period] = None


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: RegisterIn) -> User:
        if _blank(data.username) or _blank(data.password) or _blank(data.email):
            raise ValidationError("Username, password and email are required")
        if password_too_long(data.password):
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
            )
        username = data.username.strip()
        email = data.email.strip()

        existing = self.session.scalar(
            select(User.id).where(
                or_(User.username == username, User.email == email)
            )
        )
        if existing is not None:
            raise ConflictError("Username or email is already registered")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Username or email is already registered") from exc

        self.session.add(
            UserSettings(
                user_id=user.id, currency=DEFAULT_CURRENCY, theme=DEFAULT_THEME
            )
        )
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: id={user.id} username={user.username}")
        return user

    def login(self, data: LoginIn) -> tuple[str, User]:
        if _blank(data.username) or _blank(data.password):
            raise ValidationError("Username and password are required")

        user = self.session.scalar(
            select(User).where(User.username == data.username.strip())
        )
        if not user or not verify_password(data.password, user.password_hash):
            logger.info(f"login_failed: username={data.username.strip()}")
            raise AuthError(INCORRECT_CREDENTIALS)

        token = issue_token(user.id, user.username)
        logger.info(f"login_ok: id={user.id}")
        return token, user

    def get_profile(self, token: Optional[str]) -> User:
        identity = decode_token(token)
        user = self.session.get(User, identity.id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def logout(self) -> None:
        # Tokens are stateless; they lapse at their own expiry.
        return None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def _require_fields(data: TransactionIn) -> None:
        if data.type is None or _blank(data.category) or data.amount is None:
            raise ValidationError("Type, category and amount are required")

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.asc())
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category:
            stmt = stmt.where(Transaction.category == filters.category)
        if filters.period:
            stmt = stmt.where(
                Transaction.date.between(filters.period.start, filters.period.end)
            )
        return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def create(
        self, data: TransactionIn, *, today: Optional[date] = None
    ) -> Transaction:
        self._require_fields(data)
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            category=data.category.strip(),
            amount=data.amount,
            date=data.date or today or utc_today(),
            note=data.note or None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        self._require_fields(data)
        if "date" in data.model_fields_set and data.date is None:
            raise ValidationError("Date cannot be cleared")
        txn = self.get(transaction_id)

        txn.type = data.type
        txn.category = data.category.strip()
        txn.amount = data.amount
        # Optional fields left out of the body keep their stored value.
        if "date" in data.model_fields_set:
            txn.date = data.date
        if "note" in data.model_fields_set:
            txn.note = data.note or None

        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.category, Budget.id)
        )
        return list(self.session.scalars(stmt).all())

    def get_by_category(self, category: str) -> Budget:
        budget = self.session.scalar(
            select(Budget).where(
                Budget.user_id == self.user_id, Budget.category == category
            )
        )
        if not budget:
            raise NotFoundError("No budget found for this category")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        if _blank(data.category) or data.amount is None:
            raise ValidationError("Category and amount are required")

        budget = Budget(
            user_id=self.user_id, category=data.category.strip(), amount=data.amount
        )
        self.session.add(budget)
        # uq_budget_user_category makes the insert itself the existence check.
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("A budget for this category already exists") from exc
        self.session.refresh(budget)
        return budget

    def update_by_category(self, category: str, data: BudgetAmountIn) -> Budget:
        if data.amount is None:
            raise ValidationError("Amount is required")
        budget = self.get_by_category(category)
        budget.amount = data.amount
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete_by_category(self, category: str) -> None:
        result = self.session.execute(
            delete(Budget).where(
                Budget.user_id == self.user_id, Budget.category == category
            )
        )
        if not result.rowcount:
            self.session.rollback()
            raise NotFoundError("No budget found for this category")
        self.session.commit()

    def progress_for_month(self, period: Period) -> list[BudgetProgress]:
        transactions = TransactionService(self.session, self.user_id).list(
            TransactionFilters(type=TransactionType.expense, period=period)
        )
        return all_budget_progress(self.list(), transactions, period=period)


class SettingsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _current(self) -> Optional[UserSettings]:
        return self.session.scalar(
            select(UserSettings).where(UserSettings.user_id == self.user_id)
        )

    def _insert(self, currency: str, theme) -> Optional[UserSettings]:
        """Insert the user's row, or return None if one already exists."""
        row = UserSettings(user_id=self.user_id, currency=currency, theme=theme)
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(f"settings_insert_conflict: user_id={self.user_id}")
            return None
        self.session.refresh(row)
        return row

    def _reread(self) -> UserSettings:
        row = self._current()
        if row is None:
            raise ServerError("Settings could not be saved")
        return row

    def get(self) -> tuple[UserSettings, bool]:
        """Return the settings row and whether it was synthesized just now."""
        row = self._current()
        if row is not None:
            return row, False
        created = self._insert(DEFAULT_CURRENCY, DEFAULT_THEME)
        if created is None:
            return self._reread(), False
        return created, True

    def update(self, data: SettingsIn) -> UserSettings:
        row = self._current()
        if row is None:
            created = self._insert(
                data.currency or DEFAULT_CURRENCY, data.theme or DEFAULT_THEME
            )
            if created is not None:
                return created
            # Lost the insert race; apply the change to the winner's row.
            row = self._reread()

        changed = False
        if data.currency is not None:
            row.currency = data.currency
            changed = True
        if data.theme is not None:
            row.theme = data.theme
            changed = True
        if not changed:
            return row

        self.session.commit()
        self.session.refresh(row)
        return row
