"""
Live conversation contexts, one per chat.

A context holds what the model has seen so far in a chat. It lives only in
process memory: a fresh context starts from the system instruction alone,
even if the chat already has persisted messages.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..llm.base import LLMMessage
from .i18n import system_instruction

logger = logging.getLogger(__name__)


class ConversationContext:
    """Model-side dialogue state for a single chat."""

    def __init__(self, chat_id: int, language: str):
        self.chat_id = chat_id
        self.language = language
        self.system_instruction = system_instruction(language)
        self.history: List[LLMMessage] = []
        self.created_at = datetime.now(timezone.utc)

    def build_request(self, user_message: LLMMessage) -> List[LLMMessage]:
        """Messages to send for the next turn."""
        return [LLMMessage.system(self.system_instruction), *self.history, user_message]

    def record_exchange(self, user_message: LLMMessage, reply: str) -> None:
        """Remember a completed turn. Failed turns are never recorded."""
        self.history.append(user_message)
        self.history.append(LLMMessage.model(reply))


class ConversationContextRegistry:
    """
    Keyed store of live contexts with a mutual-exclusion lock per chat.

    Contexts are created on a chat's first turn, evicted when the chat is
    deleted and dropped wholesale on shutdown. Nothing else evicts them, so
    both maps grow with the number of chats this process has served.
    """

    def __init__(self):
        self._contexts: Dict[int, ConversationContext] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock(self, chat_id: int) -> asyncio.Lock:
        """Lock serialising turns on ``chat_id``."""
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        return lock

    def get(self, chat_id: int) -> Optional[ConversationContext]:
        return self._contexts.get(chat_id)

    def get_or_create(self, chat_id: int, language: str) -> ConversationContext:
        """
        Return the chat's context, creating a fresh one if there is none or
        if the language preference has changed since it was created.
        """
        context = self._contexts.get(chat_id)
        if context is not None and context.language == language:
            return context

        if context is not None:
            logger.info(
                f"Language changed for chat {chat_id} ({context.language} -> {language}), "
                f"starting a fresh context"
            )
        context = ConversationContext(chat_id, language)
        self._contexts[chat_id] = context
        return context

    def evict(self, chat_id: int) -> None:
        self._contexts.pop(chat_id, None)
        lock = self._locks.get(chat_id)
        if lock is not None and not lock.locked():
            del self._locks[chat_id]

    def clear(self) -> None:
        count = len(self._contexts)
        self._contexts.clear()
        self._locks.clear()
        logger.info(f"Dropped {count} conversation contexts")

    def __contains__(self, chat_id: int) -> bool:
        return chat_id in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)
