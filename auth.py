"""Bearer-token authentication for protected routes."""

import logging
from typing import Iterator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from config import Settings
from errors import Forbidden, Unauthorized
from schemas import UserProfile
from security import ExpiredToken, InvalidToken, verify_token
from services import UserService

logger = logging.getLogger(__name__)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Iterator[Session]:
    db: Session = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def resolve_user(
    token: Optional[str], db: Session, settings: Settings
) -> UserProfile:
    if not token:
        raise Unauthorized("Access token required")
    try:
        claims = verify_token(token, settings.token_secret)
    except ExpiredToken as exc:
        raise Forbidden("Token expired") from exc
    except InvalidToken as exc:
        raise Forbidden("Invalid token") from exc

    profile = UserService(db, settings).get_profile(claims["id"])
    if profile is None:
        logger.info(f"auth_rejected: reason=user_missing user_id={claims['id']}")
        raise Unauthorized("User not found")
    return profile


def get_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    return bearer_token(authorization)


def get_current_user(
    token: Optional[str] = Depends(get_token),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
) -> UserProfile:
    return resolve_user(token, db, settings)
