"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from lifesprint.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},  # SQLite only; shared with the API threads
        )
        init_db(_engine)
    return _engine


def init_db(engine) -> None:
    """Create all tables and bring older databases up to date."""
    # Import all models so metadata is populated before create_all
    from lifesprint.models.local import LocalRecord  # noqa
    from lifesprint.models.sync import DeadLetterOperation, QueuedOperation, SyncStatusRecord  # noqa
    SQLModel.metadata.create_all(engine)
    from lifesprint.db.migrations import run_migrations
    run_migrations(engine)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
