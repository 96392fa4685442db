from databases import Database
from sqlalchemy import create_engine, MetaData

metadata = MetaData()


def create_database(database_url: str) -> Database:
    """Async client used by the SQL record store."""
    return Database(database_url)


def create_sync_engine(database_url: str):
    """SQLAlchemy sync engine for metadata.create_all()."""
    sync_url = database_url.replace("+asyncpg", "").replace("+aiosqlite", "")
    if sync_url.startswith("sqlite"):
        return create_engine(sync_url, connect_args={"check_same_thread": False})
    return create_engine(sync_url)


def init_db(database_url: str) -> None:
    """Create the mirrored tables if they are missing (local SQLite databases only)."""
    from . import models  # noqa: F401  registers the tables on metadata

    engine = create_sync_engine(database_url)
    try:
        metadata.create_all(engine)
    finally:
        engine.dispose()
