from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from config import Settings, get_settings
from database import Base, session_scope
from errors import Conflict, Forbidden, InvalidArgument, NotFound, Unauthorized
from models import DEFAULT_CATEGORY_COLOR, Category, Transaction, TransactionType, User
from periods import Period, current_month, custom_period, month_period
from schemas import (
    AuthOut,
    CategoryIn,
    CategoryOut,
    LoginIn,
    RegisterIn,
    SummaryOut,
    TransactionIn,
    TransactionOut,
    UserProfile,
)
from security import dummy_hash, hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

DEFAULT_CATEGORIES: list[tuple[str, str, TransactionType, str]] = [
    ("Salary", "Monthly salary", TransactionType.income, "#4CAF50"),
    ("Freelance", "Freelance work income", TransactionType.income, "#8BC34A"),
    ("Investment", "Investment returns", TransactionType.income, "#CDDC39"),
    ("Other Income", "Other sources of income", TransactionType.income, "#FFC107"),
    ("Food & Dining", "Food and restaurant expenses", TransactionType.expense, "#FF5722"),
    ("Transportation", "Transport and fuel expenses", TransactionType.expense, "#FF9800"),
    ("Shopping", "Shopping and retail expenses", TransactionType.expense, "#E91E63"),
    ("Entertainment", "Entertainment and leisure", TransactionType.expense, "#9C27B0"),
    ("Bills & Utilities", "Monthly bills and utilities", TransactionType.expense, "#3F51B5"),
    ("Healthcare", "Medical and healthcare expenses", TransactionType.expense, "#2196F3"),
    ("Education", "Education and learning expenses", TransactionType.expense, "#00BCD4"),
    ("Other Expenses", "Other miscellaneous expenses", TransactionType.expense, "#607D8B"),
]


def parse_transaction_type(value: str, kind: str) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as exc:
        raise InvalidArgument(f"Invalid {kind} type") from exc


def resolve_month(year: int, month: int) -> Period:
    try:
        return month_period(year, month)
    except ValueError as exc:
        raise InvalidArgument(str(exc)) from exc


def seed_default_categories(session: Session) -> int:
    """Insert the built-in categories once; returns how many were created."""
    existing = session.execute(
        select(func.count(Category.id)).where(Category.is_default.is_(True))
    ).scalar_one()
    if existing:
        return 0
    for name, description, txn_type, color in DEFAULT_CATEGORIES:
        session.add(
            Category(
                name=name,
                description=description,
                type=txn_type,
                color=color,
                user_id=None,
                is_default=True,
            )
        )
    session.flush()
    return len(DEFAULT_CATEGORIES)


def init_database(engine: Engine, factory: sessionmaker, create_schema: bool = True) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connected successfully")

    if create_schema:
        Base.metadata.create_all(engine)

    with session_scope(factory) as session:
        seeded = seed_default_categories(session)
    if seeded:
        logger.info(f"db_init: default_categories_created={seeded}")
    logger.info("Database initialized successfully")


class UserService:
    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def register(self, data: RegisterIn) -> User:
        existing = self.session.scalar(
            select(User.id).where(
                or_(User.username == data.username, User.email == data.email)
            )
        )
        if existing:
            raise Conflict("Username or email already exists")
        user = User(
            username=data.username,
            email=data.email,
            password=hash_password(data.password, rounds=self.settings.bcrypt_rounds),
            full_name=data.full_name,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict("Username or email already exists") from exc
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return user

    def login(self, data: LoginIn) -> AuthOut:
        user = self.session.scalar(select(User).where(User.username == data.username))
        if user is None:
            verify_password(data.password, dummy_hash(self.settings.bcrypt_rounds))
            raise Unauthorized("Invalid username or password")
        if not verify_password(data.password, user.password):
            raise Unauthorized("Invalid username or password")

        token = issue_token(
            user, self.settings.token_secret, expires_in=self.settings.token_expiration
        )
        logger.info(f"user_login: user_id={user.id}")
        return AuthOut(
            token=token,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
        )

    def get_profile(self, user_id: int) -> Optional[UserProfile]:
        user = self.session.get(User, user_id)
        if user is None:
            return None
        return UserProfile.model_validate(user)


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return select(Category).where(
            or_(Category.user_id == self.user_id, Category.is_default.is_(True))
        )

    def list_all(self) -> list[CategoryOut]:
        stmt = self._visible().order_by(Category.name, Category.id)
        return [CategoryOut.model_validate(c) for c in self.session.scalars(stmt)]

    def list_by_type(self, category_type: str) -> list[CategoryOut]:
        txn_type = parse_transaction_type(category_type, "category")
        stmt = (
            self._visible()
            .where(Category.type == txn_type)
            .order_by(Category.name, Category.id)
        )
        return [CategoryOut.model_validate(c) for c in self.session.scalars(stmt)]

    def get_visible(self, category_id: int) -> Optional[Category]:
        return self.session.scalar(self._visible().where(Category.id == category_id))

    def _get_mutable(self, category_id: int, action: str) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFound("Category not found")
        if category.is_default or category.user_id != self.user_id:
            raise Forbidden(f"Cannot {action} this category")
        return category

    def create(self, data: CategoryIn) -> CategoryOut:
        category = Category(
            name=data.name,
            description=data.description or None,
            type=data.type,
            color=data.color or DEFAULT_CATEGORY_COLOR,
            user_id=self.user_id,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: user_id={self.user_id} category_id={category.id}")
        return CategoryOut.model_validate(category)

    def update(self, category_id: int, data: CategoryIn) -> CategoryOut:
        category = self._get_mutable(category_id, "modify")
        category.name = data.name
        category.description = data.description or None
        category.color = data.color or category.color
        category.type = data.type
        self.session.commit()
        self.session.refresh(category)
        return CategoryOut.model_validate(category)

    def delete(self, category_id: int) -> None:
        category = self._get_mutable(category_id, "delete")
        in_use = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category.id
            )
        ).scalar_one()
        if in_use:
            raise Conflict("Cannot delete category that is being used in transactions")
        self.session.delete(category)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict(
                "Cannot delete category that is being used in transactions"
            ) from exc
        logger.info(f"category_deleted: user_id={self.user_id} category_id={category_id}")


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _owned(self):
        return (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
        )

    def _ordered(self, stmt):
        return stmt.order_by(
            Transaction.transaction_date.desc(),
            Transaction.created_at.desc(),
            Transaction.id.desc(),
        )

    def _fetch(self, stmt) -> list[TransactionOut]:
        return [TransactionOut.from_model(t) for t in self.session.scalars(stmt)]

    def _get_model(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(self._owned().where(Transaction.id == transaction_id))
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def _require_category(self, category_id: int) -> Category:
        category = CategoryService(self.session, self.user_id).get_visible(category_id)
        if not category:
            raise InvalidArgument("Invalid category")
        return category

    def list(
        self, page: Optional[int] = None, size: Optional[int] = None
    ) -> list[TransactionOut]:
        stmt = self._ordered(self._owned())
        if page and size:
            stmt = stmt.limit(size).offset((page - 1) * size)
        return self._fetch(stmt)

    def get(self, transaction_id: int) -> TransactionOut:
        return TransactionOut.from_model(self._get_model(transaction_id))

    def create(self, data: TransactionIn) -> TransactionOut:
        self._require_category(data.category_id)
        txn = Transaction(
            amount=data.amount,
            description=data.description,
            transaction_date=data.transaction_date,
            type=data.type,
            category_id=data.category_id,
            user_id=self.user_id,
            notes=data.notes or None,
        )
        self.session.add(txn)
        self.session.commit()
        logger.info(f"transaction_created: user_id={self.user_id} transaction_id={txn.id}")
        self.session.expire_all()
        return self.get(txn.id)

    def update(self, transaction_id: int, data: TransactionIn) -> TransactionOut:
        txn = self._get_model(transaction_id)
        self._require_category(data.category_id)
        txn.amount = data.amount
        txn.description = data.description
        txn.transaction_date = data.transaction_date
        txn.type = data.type
        txn.category_id = data.category_id
        txn.notes = data.notes or None
        self.session.commit()
        self.session.expire_all()
        return self.get(transaction_id)

    def delete(self, transaction_id: int) -> None:
        txn = self._get_model(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(
            f"transaction_deleted: user_id={self.user_id} transaction_id={transaction_id}"
        )

    def list_for_period(self, period: Period) -> list[TransactionOut]:
        stmt = self._owned().where(
            Transaction.transaction_date.between(period.start, period.end)
        )
        return self._fetch(self._ordered(stmt))

    def list_by_date_range(self, start: date, end: date) -> list[TransactionOut]:
        return self.list_for_period(custom_period(start, end))

    def list_by_type(self, txn_type: str) -> list[TransactionOut]:
        parsed = parse_transaction_type(txn_type, "transaction")
        stmt = self._owned().where(Transaction.type == parsed)
        return self._fetch(self._ordered(stmt))

    def list_by_month(self, year: int, month: int) -> list[TransactionOut]:
        return self.list_for_period(resolve_month(year, month))


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _total(self, txn_type: TransactionType, period: Period) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.user_id == self.user_id,
                Transaction.type == txn_type,
                Transaction.transaction_date.between(period.start, period.end),
            )
        ).scalar_one()
        return Decimal(str(total or 0)).quantize(CENTS)

    def summary(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> SummaryOut:
        if year is None and month is None:
            period = current_month(today)
        elif year is None or month is None:
            raise InvalidArgument("Invalid year or month")
        else:
            period = resolve_month(year, month)

        income = self._total(TransactionType.income, period)
        expense = self._total(TransactionType.expense, period)
        return SummaryOut(
            income=float(income),
            expense=float(expense),
            balance=float(income - expense),
            year=period.year,
            month=period.month,
        )
