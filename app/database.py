# app/database.py

import time
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from logger import logger

# SQLAlchemy setup
Base = declarative_base()

# Key in sessionmaker info holding the lock that serializes sessions on a
# single shared connection
SESSION_LOCK = "session_lock"


def is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return False
    return url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"


def make_engine(database_url: str, timeout: float = 5.0) -> Engine:
    """
    Creates the SQLAlchemy engine for the given URL.

    In-memory SQLite exists only on one connection, so every thread shares it
    through StaticPool (callers must serialize sessions, see init_database).
    File SQLite and server databases get a pool with one connection per
    checkout; checkout and SQLite's busy wait are bounded by `timeout`.
    """
    if is_memory_sqlite(database_url):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout},
            poolclass=StaticPool,
        )
    if make_url(database_url).get_backend_name() == "sqlite":
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout},
            pool_timeout=timeout,
        )
    return create_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=timeout,
        pool_pre_ping=True,
    )


def init_database(settings) -> sessionmaker:
    """
    Connects to the database, creates the tables and returns a session factory.

    Args:
        settings (Settings): Application settings.

    Returns:
        sessionmaker: Factory bound to the new engine. For in-memory SQLite
            its info carries SESSION_LOCK, which session users must hold for
            the whole life of a session.
    """
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not set. Please set it in your environment.")

    # Registers the tables on Base.metadata
    from app import models  # noqa: F401

    engine = make_engine(settings.database_url, settings.store_timeout)

    # Retry logic to wait for the database to be ready
    max_retries = max(1, settings.db_connect_retries)
    for attempt in range(max_retries):
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database connected and tables created successfully.")
            break
        except OperationalError as oe:
            if attempt < max_retries - 1:
                logger.warning(
                    f"Database connection failed on attempt {attempt + 1}. "
                    f"Retrying in {settings.db_retry_interval} seconds..."
                )
                time.sleep(settings.db_retry_interval)
            else:
                logger.error("Max retries reached. Exiting.")
                raise oe

    info = {}
    if is_memory_sqlite(settings.database_url):
        from app.store import KeyedLock

        info[SESSION_LOCK] = KeyedLock(settings.store_timeout)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, info=info)
