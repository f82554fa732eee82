"""
Chat Storage - Owns chats and their append-only message logs.

Every chat read or delete is filtered by owner. ``append_message`` and
``list_messages`` take a bare chat id: callers must have resolved the chat
through an owner-filtered lookup first.
"""

import logging
from datetime import timezone
from typing import List, Optional

from sqlalchemy import delete, select

from ..config import settings
from ..core.i18n import translate
from ..models import Chat, Message, MessageRole
from .database import ChatORM, Database, MessageORM, utcnow

logger = logging.getLogger(__name__)


def _as_utc(value):
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _chat_to_model(orm: ChatORM) -> Chat:
    return Chat(id=orm.id, user_id=orm.user_id, title=orm.title, created_at=_as_utc(orm.created_at))


def _message_to_model(orm: MessageORM) -> Message:
    return Message(
        id=orm.id,
        chat_id=orm.chat_id,
        role=orm.role,
        text=orm.text,
        image_data=orm.image_data,
        timestamp=_as_utc(orm.timestamp),
    )


class ChatStorage:
    """Persistent chats and messages."""

    def __init__(self, database: Database):
        self._session_factory = database.session_factory

    async def create_chat(self, owner_user_id: int, title: Optional[str] = None,
                          language: Optional[str] = None) -> Chat:
        """
        Create a chat for ``owner_user_id``.

        Args:
            owner_user_id: Owner's user id
            title: Chat title; blank titles get the localised placeholder
            language: Language of the placeholder title

        Returns:
            Chat: The created chat
        """
        if not title or not title.strip():
            title = translate(language or settings.default_language, "new_chat_title")

        async with self._session_factory() as session:
            orm = ChatORM(user_id=owner_user_id, title=title.strip()[:200], created_at=utcnow())
            session.add(orm)
            await session.commit()
            await session.refresh(orm)
            logger.info(f"Chat created: id={orm.id}, user_id={owner_user_id}")
            return _chat_to_model(orm)

    async def get_chat(self, chat_id: int, owner_user_id: int) -> Optional[Chat]:
        """Return the chat only if ``owner_user_id`` owns it."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatORM).where(ChatORM.id == chat_id, ChatORM.user_id == owner_user_id)
            )
            orm = result.scalar_one_or_none()
            return _chat_to_model(orm) if orm else None

    async def list_chats(self, owner_user_id: int) -> List[Chat]:
        """List the owner's chats, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatORM)
                .where(ChatORM.user_id == owner_user_id)
                .order_by(ChatORM.created_at.desc(), ChatORM.id.desc())
            )
            return [_chat_to_model(orm) for orm in result.scalars().all()]

    async def delete_chat(self, chat_id: int, owner_user_id: int) -> bool:
        """
        Delete a chat and all of its messages in one transaction.

        Missing or foreign chats are left alone and reported as ``False``
        so callers can treat the operation as idempotent.
        """
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(ChatORM.id).where(ChatORM.id == chat_id, ChatORM.user_id == owner_user_id)
                )
                if result.scalar_one_or_none() is None:
                    return False
                await session.execute(delete(MessageORM).where(MessageORM.chat_id == chat_id))
                await session.execute(
                    delete(ChatORM).where(ChatORM.id == chat_id, ChatORM.user_id == owner_user_id)
                )
        logger.info(f"Chat deleted: id={chat_id}, user_id={owner_user_id}")
        return True

    async def append_message(self, chat_id: int, role: MessageRole, text: str,
                             image_data: Optional[str] = None) -> Message:
        """Append a message with a server-assigned timestamp."""
        async with self._session_factory() as session:
            orm = MessageORM(
                chat_id=chat_id,
                role=role,
                text=text or "",
                image_data=image_data,
                timestamp=utcnow(),
            )
            session.add(orm)
            await session.commit()
            await session.refresh(orm)
            logger.debug(f"Message appended: id={orm.id}, chat_id={chat_id}, role={role}")
            return _message_to_model(orm)

    async def list_messages(self, chat_id: int) -> List[Message]:
        """List a chat's messages in ascending (timestamp, id) order."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(MessageORM)
                .where(MessageORM.chat_id == chat_id)
                .order_by(MessageORM.timestamp.asc(), MessageORM.id.asc())
            )
            return [_message_to_model(orm) for orm in result.scalars().all()]


# Global chat storage instance
_chat_storage: Optional[ChatStorage] = None


def init_chat_storage(database: Database) -> ChatStorage:
    global _chat_storage
    _chat_storage = ChatStorage(database)
    return _chat_storage


def get_chat_storage() -> ChatStorage:
    """
    Get the global chat storage instance.

    Raises:
        RuntimeError: If chat storage has not been initialized
    """
    if _chat_storage is None:
        raise RuntimeError("Chat storage not initialized. Call init_chat_storage() first.")
    return _chat_storage
