"""
Database engine, session scope and per-professional write locks.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ..domain.exceptions import InfrastructureError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ProfessionalLocks:
    """
    In-process mutexes keyed by professional id.

    Serializes check-conflict-then-write for one professional inside this
    process. Cross-process safety comes from the row lock taken in the
    transaction and, on PostgreSQL, the exclusion constraint.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, professional_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(professional_id, threading.Lock())
        with lock:
            yield


class Database:
    """
    Owns the SQLAlchemy engine and hands out transactional sessions.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self._is_sqlite = url.startswith("sqlite")

        connect_args = {"check_same_thread": False} if self._is_sqlite else {}
        self.engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        if self._is_sqlite:
            self._configure_sqlite()

        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )
        self.locks = ProfessionalLocks()

    @classmethod
    def from_config(cls, config) -> "Database":
        return cls(config.database_url, echo=config.echo_sql)

    def _configure_sqlite(self) -> None:
        # pysqlite defers BEGIN on its own; take over so SAVEPOINTs work
        # and enable foreign keys for ON DELETE CASCADE.
        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, _connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    def create_all(self) -> None:
        """Create all tables (and the PostgreSQL overlap constraint)."""
        from . import orm  # noqa: F401  registers the mapped tables

        Base.metadata.create_all(self.engine)
        logger.info("Database schema ready at %s", self.engine.url.render_as_string(hide_password=True))

    def drop_all(self) -> None:
        from . import orm  # noqa: F401

        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Commits on success. Rolls back on any error; storage failures are
        re-raised as InfrastructureError, domain errors propagate unchanged.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Database transaction failed: %s", exc)
            raise InfrastructureError(f"Database operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
