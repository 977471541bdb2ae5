"""Database engine, session factory and FastAPI session dependency."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from inbox_relay.config import get_settings


class Base(DeclarativeBase):
    pass


class DatabaseManager:
    """Owns the engine and hands out sessions. Engine is created lazily from settings."""

    def __init__(self) -> None:
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            settings = get_settings()
            url = settings.database_url_obj
            kwargs: dict = {"pool_pre_ping": True}
            if url.get_backend_name() != "sqlite":
                kwargs["pool_size"] = settings.database_pool_size
                kwargs["max_overflow"] = settings.database_max_overflow
            self.bind(create_engine(url, **kwargs))
        return self._engine  # type: ignore[return-value]

    def bind(self, engine: Engine) -> None:
        """Point the manager at an engine (tests bind an in-memory database here)."""
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
        )

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            _ = self.engine
        return self._session_factory  # type: ignore[return-value]

    @contextmanager
    def db_session(self) -> Iterator[Session]:
        """Session scope for work that runs outside a request (jobs, background tasks)."""
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


db_manager = DatabaseManager()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a database session closed after the request."""
    with db_manager.db_session() as db:
        yield db
