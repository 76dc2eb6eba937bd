"""Database engine + session management.

One ``Database`` instance is built per application by the factory and shared
by the stores; there is no module-level engine.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; they were written as UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _normalize_url(url: str) -> str:
    # Normalize postgres schemes to ensure SQLAlchemy uses psycopg v3
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://") :]
    if url.startswith("postgresql://") and "+" not in url.split("://", 1)[1].split("@", 1)[0]:
        # no explicit driver specified (defaults may try psycopg2), force psycopg
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    return url


class Database:
    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        url = _normalize_url(database_url)
        connect_args: dict[str, object] = {}
        if url.startswith("sqlite"):
            # request threads share the pool
            connect_args["check_same_thread"] = False
        self.url = url
        self.engine: Engine = create_engine(url, future=True, echo=echo, connect_args=connect_args)
        self._factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def new_session(self) -> Session:
        return self._factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, rollback on any exception."""
        db = self._factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create_all(self) -> None:
        # dev/test helper ONLY for fresh databases. Use Alembic in normal flows.
        Base.metadata.create_all(self.engine)

    def create_tables(self, *tables) -> None:
        Base.metadata.create_all(self.engine, tables=list(tables))

    def dispose(self) -> None:
        self.engine.dispose()


__all__ = ["Database", "utcnow", "as_utc"]
