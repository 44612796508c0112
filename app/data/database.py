# app/data/database.py
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError, InterfaceError, TimeoutError as SATimeoutError
from sqlalchemy.orm import declarative_base, sessionmaker

from app.domain.errors import StorageError
from app.utils.settings import DATABASE_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)


def make_engine(url: str):
    if url.startswith("sqlite"):
        # sqlite - lokalnie i w testach, watki wspoldziela plik bazy
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def dialect_insert(db, model):
    """INSERT z obsluga ON CONFLICT dla dialektu sesji (postgres lub sqlite)."""
    if db.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


@contextmanager
def storage_guard(db):
    """Awaria polaczenia z baza -> rollback i StorageError (fail closed)."""
    try:
        yield
    except (OperationalError, InterfaceError, SATimeoutError) as e:
        db.rollback()
        logger.error(f"Storage unavailable: {e}")
        raise StorageError("Storage temporarily unavailable") from e


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
