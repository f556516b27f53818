from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base, enable_sqlite_foreign_keys
from errors import Conflict, Forbidden, InvalidArgument, NotFound
from models import Category, TransactionType, User
from schemas import CategoryIn, TransactionIn
from services import CategoryService, TransactionService, seed_default_categories


def _engine():
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    return engine


def _user(session: Session, username: str) -> int:
    user = User(
        username=username,
        email=f"{username}@mailbox.org",
        password="hash",
        full_name=username.title(),
    )
    session.add(user)
    session.commit()
    return user.id


def test_seed_defaults_runs_once() -> None:
    engine = _engine()

    with Session(engine) as session:
        assert seed_default_categories(session) == 12
        session.commit()
        assert seed_default_categories(session) == 0

        defaults = session.scalars(select(Category)).all()
        assert len(defaults) == 12
        assert all(c.is_default and c.user_id is None for c in defaults)
        types = [c.type for c in defaults]
        assert types.count(TransactionType.income) == 4
        assert types.count(TransactionType.expense) == 8


def test_list_includes_defaults_and_own_but_not_others() -> None:
    engine = _engine()

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice")
        bob = _user(session, "bob")
        CategoryService(session, alice).create(
            CategoryIn(name="Alice Pets", type=TransactionType.expense)
        )
        CategoryService(session, bob).create(
            CategoryIn(name="Bob Boats", type=TransactionType.expense)
        )

        names = [c.name for c in CategoryService(session, alice).list_all()]
        assert "Alice Pets" in names
        assert "Bob Boats" not in names
        assert "Salary" in names
        assert len(names) == 13
        assert names == sorted(names)


def test_list_by_type_filters_and_rejects_unknown_type() -> None:
    engine = _engine()

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice")
        service = CategoryService(session, alice)
        service.create(CategoryIn(name="Tips", type=TransactionType.income))

        income = service.list_by_type("INCOME")
        assert {c.type for c in income} == {TransactionType.income}
        assert [c.name for c in income] == [
            "Freelance",
            "Investment",
            "Other Income",
            "Salary",
            "Tips",
        ]

        with pytest.raises(InvalidArgument, match="Invalid category type"):
            service.list_by_type("income")


def test_create_applies_default_color_and_owner() -> None:
    engine = _engine()

    with Session(engine) as session:
        alice = _user(session, "alice")
        created = CategoryService(session, alice).create(
            CategoryIn(name="Books", description="", type=TransactionType.expense)
        )

        assert created.color == "#FF6B6B"
        assert created.user_id == alice
        assert created.is_default is False
        assert created.description is None


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "B", "type": "EXPENSE"},
        {"name": "x" * 101, "type": "EXPENSE"},
        {"name": "Books", "type": "SPENDING"},
        {"name": "Books", "type": "EXPENSE", "color": "red"},
        {"name": "Books", "type": "EXPENSE", "color": "#12345"},
        {"name": "Books", "type": "EXPENSE", "description": "d" * 256},
    ],
)
def test_category_input_validation(payload: dict) -> None:
    with pytest.raises(ValidationError):
        CategoryIn.model_validate(payload)


def test_color_is_case_insensitive_hex() -> None:
    assert CategoryIn(name="Books", type="EXPENSE", color="#abcDEF").color == "#abcDEF"


def test_update_keeps_color_when_omitted() -> None:
    engine = _engine()

    with Session(engine) as session:
        alice = _user(session, "alice")
        service = CategoryService(session, alice)
        created = service.create(
            CategoryIn(name="Books", type=TransactionType.expense, color="#123456")
        )

        updated = service.update(
            created.id,
            CategoryIn(name="Comics", description="Paper", type=TransactionType.expense),
        )
        assert updated.name == "Comics"
        assert updated.description == "Paper"
        assert updated.color == "#123456"


def test_defaults_and_foreign_categories_are_immutable() -> None:
    engine = _engine()

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice")
        bob = _user(session, "bob")
        bobs = CategoryService(session, bob).create(
            CategoryIn(name="Bob Boats", type=TransactionType.expense)
        )
        salary = session.scalar(select(Category).where(Category.name == "Salary"))
        change = CategoryIn(name="Hacked", type=TransactionType.income)

        for user_id in (alice, bob):
            service = CategoryService(session, user_id)
            with pytest.raises(Forbidden, match="Cannot modify this category"):
                service.update(salary.id, change)
            with pytest.raises(Forbidden, match="Cannot delete this category"):
                service.delete(salary.id)

        with pytest.raises(Forbidden):
            CategoryService(session, alice).update(bobs.id, change)
        with pytest.raises(Forbidden):
            CategoryService(session, alice).delete(bobs.id)
        with pytest.raises(NotFound):
            CategoryService(session, alice).delete(9999)

        session.refresh(salary)
        assert salary.name == "Salary"


def test_delete_blocked_while_transactions_reference_category() -> None:
    engine = _engine()

    with Session(engine) as session:
        alice = _user(session, "alice")
        categories = CategoryService(session, alice)
        books = categories.create(CategoryIn(name="Books", type=TransactionType.expense))
        txns = TransactionService(session, alice)
        txn = txns.create(
            TransactionIn(
                amount=Decimal("12.50"),
                description="Novel",
                transaction_date=date(2025, 2, 1),
                type=TransactionType.expense,
                category_id=books.id,
            )
        )

        with pytest.raises(Conflict, match="being used in transactions"):
            categories.delete(books.id)
        assert session.get(Category, books.id) is not None
        assert txns.get(txn.id).category.id == books.id

        txns.delete(txn.id)
        categories.delete(books.id)
        assert session.get(Category, books.id) is None
