from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        eng = create_engine(database_url, connect_args={"check_same_thread": False})
        event.listen(eng, "connect", _enable_sqlite_pragmas)
        return eng
    # Hosted databases drop idle connections.
    return create_engine(database_url, pool_pre_ping=True)


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def get_db() -> Iterator[Session]:
    """Request-scoped session; services commit their own writes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
