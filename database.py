from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import Settings, get_settings


def create_db_engine(settings: Optional[Settings] = None) -> Engine:
    settings = settings or get_settings()
    kwargs: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.pool_size
        kwargs["max_overflow"] = 0
        kwargs["pool_pre_ping"] = True

    eng = create_engine(settings.database_url, **kwargs)
    if settings.database_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(eng)
    return eng


def enable_sqlite_foreign_keys(eng: Engine) -> None:
    event.listen(eng, "connect", _enable_sqlite_pragmas)


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def create_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
