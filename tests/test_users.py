import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from config import Settings
from database import Base
from errors import Conflict, Unauthorized
from models import User
from schemas import LoginIn, RegisterIn
from security import verify_token
from services import UserService

SETTINGS = Settings(database_url="sqlite://", token_secret="k", bcrypt_rounds=4)


def _register(session: Session, username: str = "alice", email: str = "alice@mailbox.org"):
    return UserService(session, SETTINGS).register(
        RegisterIn(
            username=username,
            email=email,
            password="secret123",
            full_name="Alice Example",
        )
    )


def test_register_then_login_returns_token_for_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _register(session)
        assert user.password != "secret123"

        auth = UserService(session, SETTINGS).login(
            LoginIn(username="alice", password="secret123")
        )
        assert auth.username == "alice"
        assert auth.email == "alice@mailbox.org"
        assert auth.full_name == "Alice Example"
        assert verify_token(auth.token, "k")["id"] == user.id


def test_login_failure_message_is_identical_for_unknown_user_and_bad_password() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _register(session)
        service = UserService(session, SETTINGS)

        with pytest.raises(Unauthorized) as wrong_password:
            service.login(LoginIn(username="alice", password="nope-nope"))
        with pytest.raises(Unauthorized) as unknown_user:
            service.login(LoginIn(username="bob", password="secret123"))

        assert str(wrong_password.value) == "Invalid username or password"
        assert str(unknown_user.value) == str(wrong_password.value)


def test_register_rejects_duplicate_username_or_email() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _register(session)
        with pytest.raises(Conflict, match="Username or email already exists"):
            _register(session, username="alice", email="other@mailbox.org")
        with pytest.raises(Conflict):
            _register(session, username="alice2", email="ALICE@mailbox.org")

        assert len(session.scalars(select(User)).all()) == 1


@pytest.mark.parametrize(
    "field, value",
    [
        ("username", "ab"),
        ("username", "a" * 51),
        ("username", "bad name!"),
        ("email", "not-an-email"),
        ("password", "12345"),
        ("full_name", ""),
        ("full_name", "x" * 256),
    ],
)
def test_register_input_validation(field: str, value: str) -> None:
    payload = {
        "username": "alice",
        "email": "alice@mailbox.org",
        "password": "secret123",
        "full_name": "Alice",
    }
    payload[field] = value
    with pytest.raises(ValidationError):
        RegisterIn(**payload)


def test_register_accepts_camel_case_payload() -> None:
    data = RegisterIn.model_validate(
        {
            "username": "under_score_1",
            "email": "Mixed@MailBox.org",
            "password": "secret123",
            "fullName": "Under Score",
        }
    )
    assert data.full_name == "Under Score"
    assert data.email == "mixed@mailbox.org"
