"""
User Storage - Persistent storage for user accounts.
"""

import logging
from datetime import timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..core.errors import DuplicateEmail
from ..models import UserInDB
from .database import Database, UserORM

logger = logging.getLogger(__name__)


class UserStorage:
    """
    Manages persistent storage of user accounts in the ``users`` table.
    Only password hashes are ever stored.
    """

    def __init__(self, database: Database):
        """
        Initialize user storage.

        Args:
            database: Initialised Database
        """
        self._session_factory = database.session_factory

    @staticmethod
    def _orm_to_model(orm: UserORM) -> UserInDB:
        created_at = orm.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return UserInDB(
            id=orm.id,
            email=orm.email,
            password_hash=orm.password_hash,
            created_at=created_at,
        )

    async def get_user(self, user_id: int) -> Optional[UserInDB]:
        async with self._session_factory() as session:
            orm = await session.get(UserORM, user_id)
            return self._orm_to_model(orm) if orm else None

    async def get_user_by_email(self, email: str) -> Optional[UserInDB]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserORM).where(UserORM.email == email))
            orm = result.scalar_one_or_none()
            return self._orm_to_model(orm) if orm else None

    async def create_user(self, email: str, password_hash: str) -> UserInDB:
        """
        Create a new user.

        Args:
            email: Unique email
            password_hash: Already-hashed password

        Returns:
            UserInDB: Created user

        Raises:
            DuplicateEmail: If the email is already registered
        """
        async with self._session_factory() as session:
            orm = UserORM(email=email, password_hash=password_hash)
            session.add(orm)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateEmail() from e
            await session.refresh(orm)
            logger.info(f"User created: id={orm.id}")
            return self._orm_to_model(orm)


# Global user storage instance
_user_storage: Optional[UserStorage] = None


def init_user_storage(database: Database) -> UserStorage:
    """
    Initialize the global user storage instance.

    Args:
        database: Initialised Database
    """
    global _user_storage
    _user_storage = UserStorage(database)
    return _user_storage


def get_user_storage() -> UserStorage:
    """
    Get the global user storage instance.

    Returns:
        UserStorage: Global user storage instance

    Raises:
        RuntimeError: If user storage has not been initialized
    """
    if _user_storage is None:
        raise RuntimeError("User storage not initialized. Call init_user_storage() first.")
    return _user_storage
