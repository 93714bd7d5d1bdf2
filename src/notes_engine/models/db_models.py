"""SQLAlchemy database models for the reference note store."""
import datetime
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, Integer, String, Text,
                        create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from notes_engine.config import config

Base = declarative_base()


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(64), primary_key=True)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    emoji = Column(String(32), nullable=True)
    public = Column(Boolean, default=False, nullable=False, index=True)
    session_id = Column(String(255), nullable=True, index=True)
    category = Column(String(64), nullable=True)
    pinned = Column(Boolean, nullable=True)
    pin_order = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    creation_time = Column(
        DateTime,
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(slug='{self.slug}', public={self.public})>"


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # WAL mode: writes go to a separate journal, preventing corruption on crash
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the engine and schema for the note store.

    ``sqlite://`` (in-memory) URLs get a single shared connection so every
    session sees the same database; file URLs get WAL journaling.

    Args:
        db_url: Database URL. Defaults to the configured SQLite file.

    Returns:
        The initialized engine.
    """
    url = db_url or config.get_db_url()
    if url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        event.listen(engine, "connect", _set_sqlite_pragma)

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
