from collections.abc import Generator
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import Settings, get_settings

Base = declarative_base()

_engine = None
_SessionLocal = None


def make_engine(url: str, echo: bool = False):
    sqlite = url.startswith("sqlite")
    connect_args = {}
    if sqlite:
        # list/search run their row and count queries from two worker threads
        connect_args["check_same_thread"] = False
    engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)
    if sqlite:
        event.listen(engine, "connect", _sqlite_case_sensitive_like)
    return engine


def _sqlite_case_sensitive_like(dbapi_connection, connection_record):
    # SQLite LIKE ignores ASCII case unless told otherwise; PostgreSQL LIKE does not
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA case_sensitive_like = ON")
    cursor.close()


def make_session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_engine(settings: Optional[Settings] = None):
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        _engine = make_engine(settings.database_url, echo=settings.echo_sql)
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = make_session_factory(get_engine())
    return _SessionLocal


def get_session() -> Generator[Session, None, None]:
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine=None) -> None:
    # imported for its side effect of registering the tables on Base.metadata
    from . import entities  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
