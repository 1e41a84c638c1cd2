from datetime import date
from decimal import Decimal

import pytest

from errors import NotFoundError, ValidationError
from models import TransactionType, User
from periods import month_period, utc_today
from schemas import TransactionIn
from services import TransactionFilters, TransactionService


def make_user(session, username: str) -> User:
    user = User(username=username, email=f"{username}@x.com", password_hash="x")
    session.add(user)
    session.commit()
    return user


def expense(category: str, amount: str, on: date, note=None) -> TransactionIn:
    return TransactionIn(
        type=TransactionType.expense,
        category=category,
        amount=Decimal(amount),
        date=on,
        note=note,
    )


def test_create_defaults_date_to_today_and_note_to_null(session) -> None:
    alice = make_user(session, "alice")
    service = TransactionService(session, alice.id)

    txn = service.create(
        TransactionIn(type=TransactionType.expense, category="餐饮", amount=50)
    )
    assert txn.id is not None
    assert txn.date == utc_today()
    assert txn.note is None
    assert txn.amount == Decimal("50")

    pinned = service.create(
        TransactionIn(type=TransactionType.expense, category="餐饮", amount=5),
        today=date(2025, 1, 31),
    )
    assert pinned.date == date(2025, 1, 31)


@pytest.mark.parametrize(
    "payload",
    [
        {"category": "餐饮", "amount": 1},
        {"type": "expense", "amount": 1},
        {"type": "expense", "category": "餐饮"},
        {"type": "expense", "category": " ", "amount": 1},
    ],
)
def test_create_requires_type_category_and_amount(session, payload) -> None:
    alice = make_user(session, "alice")
    with pytest.raises(ValidationError):
        TransactionService(session, alice.id).create(TransactionIn(**payload))


def test_list_orders_by_date_desc_then_insertion(session) -> None:
    alice = make_user(session, "alice")
    service = TransactionService(session, alice.id)
    first = service.create(expense("餐饮", "10", date(2025, 1, 5)))
    older = service.create(expense("交通", "3", date(2025, 1, 1)))
    second = service.create(expense("购物", "20", date(2025, 1, 5)))
    newest = service.create(expense("娱乐", "8", date(2025, 2, 1)))

    ids = [t.id for t in service.list()]
    assert ids == [newest.id, first.id, second.id, older.id]


def test_list_is_scoped_to_owner_and_filterable(session) -> None:
    alice = make_user(session, "alice")
    bob = make_user(session, "bob")
    mine = TransactionService(session, alice.id)
    mine.create(expense("餐饮", "10", date(2025, 1, 5)))
    mine.create(
        TransactionIn(
            type=TransactionType.income,
            category="工资",
            amount=Decimal("1000"),
            date=date(2025, 2, 1),
        )
    )
    TransactionService(session, bob.id).create(expense("餐饮", "99", date(2025, 1, 5)))

    assert len(mine.list()) == 2
    expenses = mine.list(TransactionFilters(type=TransactionType.expense))
    assert [t.category for t in expenses] == ["餐饮"]
    february = mine.list(TransactionFilters(period=month_period(2025, 2)))
    assert [t.category for t in february] == ["工资"]
    assert mine.list(TransactionFilters(category="交通")) == []


def test_other_users_transactions_are_not_found(session) -> None:
    alice = make_user(session, "alice")
    bob = make_user(session, "bob")
    txn = TransactionService(session, alice.id).create(
        expense("餐饮", "10", date(2025, 1, 5))
    )
    intruder = TransactionService(session, bob.id)

    with pytest.raises(NotFoundError):
        intruder.get(txn.id)
    with pytest.raises(NotFoundError):
        intruder.delete(txn.id)
    with pytest.raises(NotFoundError):
        intruder.update(txn.id, expense("交通", "1", date(2025, 1, 6)))

    still_there = TransactionService(session, alice.id).get(txn.id)
    assert still_there.category == "餐饮"
    assert still_there.amount == Decimal("10")


def test_update_replaces_required_fields_and_keeps_omitted_optionals(session) -> None:
    alice = make_user(session, "alice")
    service = TransactionService(session, alice.id)
    txn = service.create(expense("餐饮", "10", date(2025, 1, 5), note="lunch"))

    updated = service.update(
        txn.id,
        TransactionIn(type=TransactionType.expense, category="交通", amount=12),
    )
    assert updated.category == "交通"
    assert updated.amount == Decimal("12")
    assert updated.date == date(2025, 1, 5)
    assert updated.note == "lunch"

    cleared = service.update(
        txn.id,
        TransactionIn(
            type=TransactionType.expense,
            category="交通",
            amount=12,
            date=date(2025, 1, 9),
            note=None,
        ),
    )
    assert cleared.date == date(2025, 1, 9)
    assert cleared.note is None


def test_update_rejects_missing_fields_and_null_date(session) -> None:
    alice = make_user(session, "alice")
    service = TransactionService(session, alice.id)
    txn = service.create(expense("餐饮", "10", date(2025, 1, 5)))

    with pytest.raises(ValidationError):
        service.update(txn.id, TransactionIn(category="餐饮", amount=1))
    with pytest.raises(ValidationError):
        service.update(
            txn.id,
            TransactionIn(
                type=TransactionType.expense, category="餐饮", amount=1, date=None
            ),
        )


def test_delete_removes_row(session) -> None:
    alice = make_user(session, "alice")
    service = TransactionService(session, alice.id)
    txn = service.create(expense("餐饮", "10", date(2025, 1, 5)))

    service.delete(txn.id)

    assert service.list() == []
    with pytest.raises(NotFoundError):
        service.get(txn.id)
