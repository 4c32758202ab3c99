"""
Record store connection management for the Blacklist Registry

- DatabaseSettings: connection parameters from config.yaml or DB_* variables
- UnitOfWork: one session and one transaction per service operation
- DatabaseSessionProvider: engine, session factory and schema bootstrap;
  services receive it by injection (FastAPI dependency in the API, a
  StaticPool SQLite provider in the test suite)

Only engine creation at startup is retried. Storage errors raised while
serving a request propagate to the caller unchanged.
"""

import os
import logging
from typing import Callable, Dict, Generator, Optional, Tuple
from contextlib import contextmanager
from functools import lru_cache
from dataclasses import dataclass

from sqlalchemy import create_engine, event, text, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from database.models import Base

logger = logging.getLogger(__name__)

IN_MEMORY_SQLITE = "sqlite://"


# ============================================
# SETTINGS
# ============================================

# field -> (environment variable, parser)
_ENV_FIELDS: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "host": ("DB_HOST", str),
    "port": ("DB_PORT", int),
    "database": ("DB_NAME", str),
    "user": ("DB_USER", str),
    "password": ("DB_PASSWORD", str),
    "pool_size": ("DB_POOL_SIZE", int),
    "max_overflow": ("DB_MAX_OVERFLOW", int),
    "pool_timeout": ("DB_POOL_TIMEOUT", int),
    "pool_recycle": ("DB_POOL_RECYCLE", int),
    "echo": ("DB_ECHO", lambda value: value.lower() == "true"),
}


@dataclass
class DatabaseSettings:
    """Where the record store lives and how its pool is sized."""
    host: str = "localhost"
    port: int = 5432
    database: str = "blacklist_registry"
    user: str = "registry_user"
    password: str = "registry_password"
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False
    url: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'DatabaseSettings':
        """Settings from DB_* variables; DATABASE_URL overrides them all."""
        values = {}
        for name, (variable, parse) in _ENV_FIELDS.items():
            raw = os.getenv(variable)
            if raw:
                values[name] = parse(raw)
        return cls(url=os.getenv("DATABASE_URL") or None, **values)

    @classmethod
    def from_config(cls, database_config) -> 'DatabaseSettings':
        """Settings from the ``database`` section of config.yaml; DATABASE_URL still wins."""
        return cls(
            host=database_config.host,
            port=int(database_config.port),
            database=database_config.name,
            user=database_config.user,
            password=database_config.password,
            url=os.getenv("DATABASE_URL") or None
        )

    def get_url(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql+psycopg2://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.get_url().startswith("sqlite")


@lru_cache()
def get_settings() -> DatabaseSettings:
    return DatabaseSettings.from_env()


def get_pool_settings(settings: DatabaseSettings) -> dict:
    """
    Engine keyword arguments for the configured backend.

    SQLite shares one connection across threads; PostgreSQL gets a
    pre-pinged QueuePool sized from the settings.
    """
    if settings.is_sqlite:
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": settings.pool_size,
        "max_overflow": settings.max_overflow,
        "pool_timeout": settings.pool_timeout,
        "pool_recycle": settings.pool_recycle,
        "pool_pre_ping": True,
    }


def create_retry_decorator(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10
) -> Callable:
    """Retry on OperationalError with exponential backoff; used for engine start-up."""
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


db_retry = create_retry_decorator()


# ============================================
# UNIT OF WORK
# ============================================

class UnitOfWork:
    """
    One session, one transaction.

    Nothing is committed unless ``commit()`` is called; leaving the block
    on an exception rolls back, leaving it normally just closes the session.

        with provider.get_unit_of_work() as uow:
            BlacklistEntryRepository(uow.session).insert(entry)
            uow.commit()
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._session: Optional[Session] = None

    def __enter__(self) -> 'UnitOfWork':
        self._session = self._session_factory()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rollback()
        self.close()

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("UnitOfWork is only usable inside its with-block")
        return self._session

    def commit(self) -> None:
        if self._session is not None:
            self._session.commit()

    def rollback(self) -> None:
        if self._session is not None:
            self._session.rollback()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None


# ============================================
# SESSION PROVIDER
# ============================================

class DatabaseSessionProvider:
    """
    Owns the engine and hands out units of work.

    Args:
        settings: Connection settings (DB_* environment when omitted)
        engine: Ready-made engine, used as-is (tests pass a SQLite engine)
    """

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        engine: Optional[Engine] = None
    ):
        self._settings = settings or get_settings()
        self._engine = engine
        self._session_factory: Optional[sessionmaker] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self, echo: Optional[bool] = None) -> None:
        """Create the engine (with retry) and the session factory; idempotent."""
        if self._initialized:
            return

        if echo is not None:
            self._settings.echo = echo
        if self._engine is None:
            self._engine = self._connect()

        # Entities handed back by services are read after their unit of work closes
        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False
        )

        @event.listens_for(self._engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            logger.debug("Opened record store connection")

        self._initialized = True
        logger.info("Record store ready (%s)", self._engine.dialect.name)

    @db_retry
    def _connect(self) -> Engine:
        engine = create_engine(
            self._settings.get_url(),
            echo=self._settings.echo,
            **get_pool_settings(self._settings)
        )
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Record store not initialized; call init() first")
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            raise RuntimeError("Record store not initialized; call init() first")
        return self._session_factory

    def get_unit_of_work(self) -> UnitOfWork:
        if self._session_factory is None:
            self.init()
        return UnitOfWork(self._session_factory)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Session committed on normal exit and rolled back on error (seeding, scripts)."""
        with self.get_unit_of_work() as uow:
            yield uow.session
            uow.commit()

    def create_tables(self) -> None:
        """Create any missing tables; existing ones are left alone."""
        if self._engine is None:
            self.init()
        Base.metadata.create_all(self._engine)
        logger.info("Schema ensured: %s", ", ".join(sorted(Base.metadata.tables)))

    def health_check(self) -> bool:
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Record store health check failed: %s", e)
            return False
        return True

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Record store engine disposed")
        self._initialized = False


# ============================================
# PROCESS-WIDE PROVIDER
# ============================================

_db_provider: Optional[DatabaseSessionProvider] = None


def init_db(
    settings: Optional[DatabaseSettings] = None,
    echo: bool = False
) -> DatabaseSessionProvider:
    """Create (once) and initialize the provider the API server uses."""
    global _db_provider
    if _db_provider is None:
        _db_provider = DatabaseSessionProvider(settings=settings)
    _db_provider.init(echo=echo)
    return _db_provider


def close_db() -> None:
    global _db_provider
    if _db_provider is not None:
        _db_provider.close()
        _db_provider = None


def create_test_provider(engine: Optional[Engine] = None) -> DatabaseSessionProvider:
    """
    Initialized provider over an in-memory SQLite database with every table created.

    One StaticPool connection keeps the in-memory database alive for the
    provider's lifetime.
    """
    if engine is None:
        engine = create_engine(
            IN_MEMORY_SQLITE,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
    provider = DatabaseSessionProvider(settings=DatabaseSettings(url=IN_MEMORY_SQLITE), engine=engine)
    provider.init()
    provider.create_tables()
    return provider
