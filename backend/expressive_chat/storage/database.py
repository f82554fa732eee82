"""
Database configuration and ORM models.

Three tables: ``users``, ``chats`` (owned by a user) and ``messages`` (owned
by a chat). Deleting a chat removes its messages.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, relationship

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


class UserORM(Base):
    """User ORM model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    chats = relationship("ChatORM", back_populates="owner", passive_deletes=True)


class ChatORM(Base):
    """Chat ORM model."""

    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    owner = relationship("UserORM", back_populates="chats")
    messages = relationship(
        "MessageORM",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class MessageORM(Base):
    """Message ORM model. Rows are written once and never updated."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    text = Column(Text, nullable=False, default="")
    image_data = Column(Text, nullable=True)  # data URI, stored as sent
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    chat = relationship("ChatORM", back_populates="messages")


class Database:
    """Owns the async engine and session factory."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def create_all(self) -> None:
        """Create tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Global database instance
_database: Optional[Database] = None


async def init_database(url: str, echo: bool = False) -> Database:
    """
    Create the global database and make sure all tables exist.

    Args:
        url: SQLAlchemy async database URL
        echo: Echo SQL statements

    Returns:
        Database: The initialised database
    """
    global _database
    database = Database(url, echo=echo)
    await database.create_all()
    _database = database
    logger.info(f"Database initialized: {database.engine.url.render_as_string(hide_password=True)}")
    return database


def get_database() -> Database:
    """
    Get the global database instance.

    Raises:
        RuntimeError: If the database has not been initialized
    """
    if _database is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _database


async def close_database() -> None:
    global _database
    if _database is not None:
        await _database.dispose()
        _database = None
