import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from models import Category, Transaction, TransactionType

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RegisterIn(ApiModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class LoginIn(ApiModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CategoryIn(ApiModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    type: TransactionType
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)


class TransactionIn(ApiModel):
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    description: str = Field(..., min_length=2, max_length=255)
    transaction_date: date
    type: TransactionType
    category_id: int = Field(..., gt=0)
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("transaction_date", mode="before")
    @classmethod
    def require_iso_date(cls, value):
        if isinstance(value, date):
            return value
        if isinstance(value, str) and ISO_DATE_PATTERN.match(value):
            return value
        raise ValueError("Transaction date must be an ISO 8601 date (YYYY-MM-DD)")


class UserProfile(ApiModel):
    id: int
    username: str
    email: str
    full_name: str


class AuthOut(ApiModel):
    token: str
    username: str
    email: str
    full_name: str


class MessageOut(ApiModel):
    message: str


class CategoryOut(ApiModel):
    id: int
    name: str
    description: Optional[str]
    type: TransactionType
    color: str
    user_id: Optional[int]
    is_default: bool
    created_at: datetime
    updated_at: datetime


class CategoryRef(ApiModel):
    id: int
    name: str
    type: TransactionType
    color: str


class TransactionOut(ApiModel):
    """A transaction as the API shows it, with its category embedded."""

    id: int
    amount: float
    description: str
    transaction_date: date
    type: TransactionType
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime
    category: CategoryRef

    @classmethod
    def from_model(cls, txn: Transaction) -> "TransactionOut":
        category: Category = txn.category
        return cls(
            id=txn.id,
            amount=float(txn.amount),
            description=txn.description,
            transaction_date=txn.transaction_date,
            type=txn.type,
            notes=txn.notes,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
            category=CategoryRef.model_validate(category),
        )


class SummaryOut(ApiModel):
    income: float
    expense: float
    balance: float
    year: int
    month: int


class HealthOut(ApiModel):
    status: str
    timestamp: datetime
    version: str
