import os
import re
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from sqlalchemy.engine import URL

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


class Settings:
    def __init__(
        self,
        database_url: str,
        pool_size: int = 10,
        port: int = 8080,
        cors_origin: str = "http://localhost:3000",
        token_secret: str = "change-me",
        token_expiration: timedelta = timedelta(hours=24),
        bcrypt_rounds: int = 12,
        api_prefix: str = "/api",
        auto_create_schema: bool = True,
        log_level: str = "INFO",
    ) -> None:
        self.database_url = database_url
        self.pool_size = pool_size
        self.port = port
        self.cors_origin = cors_origin
        self.token_secret = token_secret
        self.token_expiration = token_expiration
        self.bcrypt_rounds = bcrypt_rounds
        self.api_prefix = api_prefix
        self.auto_create_schema = auto_create_schema
        self.log_level = log_level


def parse_duration(value: str) -> timedelta:
    """Parse ``24h``/``30m``/``7d``/``90s`` or a bare number of seconds."""
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit.lower()]: int(amount)})


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _database_url_from_env() -> str:
    explicit: Optional[str] = os.getenv("DATABASE_URL")
    if explicit:
        return explicit
    url = URL.create(
        drivername=os.getenv("DB_DRIVER", "mysql+pymysql"),
        username=os.getenv("DB_USER", "root"),
        password=os.getenv("DB_PASSWORD", "password"),
        host=os.getenv("DB_HOST", "localhost"),
        port=int(os.getenv("DB_PORT", "3306")),
        database=os.getenv("DB_NAME", "expense_tracker"),
    )
    return url.render_as_string(hide_password=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        database_url=_database_url_from_env(),
        pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
        port=int(os.getenv("PORT", "8080")),
        cors_origin=os.getenv("CORS_ORIGIN", "http://localhost:3000"),
        token_secret=os.getenv(
            "JWT_SECRET",
            "3f0c1d5b8e9a47c2b6d1e0f9a8c7b6d5e4f3a2b1c0d9e8f7a6b5c4d3e2f1a0b9",
        ),
        token_expiration=parse_duration(os.getenv("JWT_EXPIRATION", "24h")),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
        api_prefix=os.getenv("API_PREFIX", "/api"),
        auto_create_schema=_env_bool("AUTO_CREATE_SCHEMA", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
