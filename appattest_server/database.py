"""SQLAlchemy helpers."""

from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from typing import ContextManager, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


class Database:
    def __init__(self, database_url: str):
        options = {"future": True}
        self._lock: ContextManager[object] = nullcontext()
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # an in-memory database lives on a single connection, so sessions
            # from different threads must take turns on it
            options.update(
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            self._lock = threading.RLock()
        self.engine = create_engine(database_url, **options)
        self.SessionLocal = sessionmaker(self.engine, expire_on_commit=False, future=True)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        with self._lock:
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
