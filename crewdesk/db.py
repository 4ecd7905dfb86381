from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE clauses unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Connection pool and session factory, built once per process.

    The instance lives on ``app.state.database``; request handlers get a fresh
    session from it through :func:`get_db` and services receive that session
    explicitly.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine: Engine = self._create_engine(url, echo)
        # do not use scoped_session with async frameworks; one Session per request
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        if url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # a single shared connection, otherwise every checkout sees an empty database
                kwargs["poolclass"] = StaticPool
            engine = create_engine(url, future=True, echo=echo, **kwargs)
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            return engine
        return create_engine(
            url,
            future=True,
            echo=echo,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            pool_recycle=3600,  # Recycle connections after 1 hour
        )

    def session(self) -> Session:
        return self.session_factory()

    def create_all(self) -> None:
        # models register themselves on Base.metadata when imported
        from .models import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
