"""Password hashing and signed access tokens."""

import time
from datetime import timedelta
from functools import lru_cache
from typing import Optional, Protocol

import bcrypt
from itsdangerous import BadSignature, URLSafeSerializer

BCRYPT_MAX_BYTES = 72
TOKEN_SALT = "access-token"


class InvalidToken(Exception):
    pass


class ExpiredToken(Exception):
    pass


class TokenSubject(Protocol):
    id: int
    username: str
    email: str


def _password_bytes(plaintext: str) -> bytes:
    # bcrypt only looks at the first 72 bytes; newer releases reject longer input.
    return plaintext.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(plaintext: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_password_bytes(plaintext), salt).decode("utf-8")


def verify_password(plaintext: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plaintext), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=4)
def dummy_hash(rounds: int = 12) -> str:
    """A throwaway hash so unknown usernames cost the same as wrong passwords."""
    return hash_password("not-a-real-password", rounds=rounds)


def _serializer(secret: str) -> URLSafeSerializer:
    return URLSafeSerializer(secret, salt=TOKEN_SALT)


def issue_token(
    user: TokenSubject,
    secret: str,
    expires_in: timedelta = timedelta(hours=24),
    now: Optional[float] = None,
) -> str:
    issued_at = int(now if now is not None else time.time())
    expiry = issued_at + int(expires_in.total_seconds())
    claims = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "iat": issued_at,
        "exp": expiry,
    }
    return _serializer(secret).dumps(claims)


def verify_token(token: str, secret: str, now: Optional[float] = None) -> dict:
    try:
        claims = _serializer(secret).loads(token)
    except BadSignature as exc:
        raise InvalidToken("Invalid token") from exc

    if not isinstance(claims, dict):
        raise InvalidToken("Invalid token")
    user_id = claims.get("id")
    expiry = claims.get("exp")
    if not isinstance(user_id, int) or not isinstance(expiry, int):
        raise InvalidToken("Invalid token")

    current_time = now if now is not None else time.time()
    if current_time >= expiry:
        raise ExpiredToken("Token expired")
    return claims
