"""
Conversation Orchestrator - runs a user turn against the model while keeping
the persisted message log authoritative.

Per turn: resolve (or create) the chat, persist the user's message, forward
it to the model through the chat's live context, then persist the reply. If
the model call fails, a localised error reply is persisted instead so the
log always reads as a complete exchange.
"""

import base64
import binascii
import logging
from typing import Optional

from ..config import settings
from ..llm.base import InlineImage, LLMMessage, LLMProvider
from ..models import Chat, TurnResult
from ..storage.chat_storage import ChatStorage
from .conversation_context import ConversationContext, ConversationContextRegistry
from .errors import ChatNotFound, ExternalModelFailure, InvalidImage, InvalidTurn
from .i18n import normalize_language, translate

logger = logging.getLogger(__name__)

CHAT_TITLE_MAX_CHARS = 30


def decode_image_data_uri(data_uri: str) -> bytes:
    """
    Strip the ``data:<type>;base64,`` prefix and return the raw bytes.

    Raises:
        InvalidImage: If the value is not a non-empty base64 data URI
    """
    header, sep, payload = data_uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise InvalidImage()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImage() from e
    if not data:
        raise InvalidImage()
    return data


class ConversationOrchestrator:
    """
    Binds persisted chats to live model contexts.
    Turns on the same chat are serialised; different chats run concurrently.
    """

    def __init__(self, chat_storage: ChatStorage,
                 llm_provider: Optional[LLMProvider] = None,
                 contexts: Optional[ConversationContextRegistry] = None,
                 image_media_type: Optional[str] = None):
        """
        Args:
            chat_storage: Chat and message persistence
            llm_provider: Model capability; without one every turn gets the fallback reply
            contexts: Live context store (a new one is created if omitted)
            image_media_type: Media type sent with forwarded images
        """
        self.chat_storage = chat_storage
        self.llm_provider = llm_provider
        self.contexts = contexts or ConversationContextRegistry()
        self.image_media_type = image_media_type or settings.assumed_image_media_type

    async def ensure_chat(self, owner_user_id: int, chat_id: Optional[int] = None,
                          title_hint: str = "", language: Optional[str] = None) -> Chat:
        """
        Return the owner's chat ``chat_id``, or create one when no id is given.

        Raises:
            ChatNotFound: If ``chat_id`` does not exist or belongs to another user
        """
        if chat_id is not None:
            chat = await self.chat_storage.get_chat(chat_id, owner_user_id)
            if chat is None:
                raise ChatNotFound()
            return chat

        language = normalize_language(language, settings.default_language)
        title = title_hint.strip()[:CHAT_TITLE_MAX_CHARS] or translate(language, "image_chat_title")
        return await self.chat_storage.create_chat(owner_user_id, title, language)

    async def send_turn(self, owner_user_id: int, text: str = "",
                        image_data: Optional[str] = None,
                        chat_id: Optional[int] = None,
                        language: Optional[str] = None) -> TurnResult:
        """
        Run one user turn.

        Args:
            owner_user_id: Authenticated user
            text: User's text (may be empty when an image is attached)
            image_data: Optional single image as a base64 data URI
            chat_id: Existing chat, or None to start a new one
            language: Language for the system instruction and fallback text

        Returns:
            TurnResult: Persisted user message and reply; ``failed`` marks a fallback reply

        Raises:
            InvalidTurn: If there is neither text nor image
            InvalidImage: If the image is not a base64 data URI
            ChatNotFound: If ``chat_id`` is not owned by the user
        """
        text = text or ""
        if not text.strip() and not image_data:
            raise InvalidTurn()
        image_bytes = decode_image_data_uri(image_data) if image_data else None
        language = normalize_language(language, settings.default_language)

        chat = await self.ensure_chat(owner_user_id, chat_id, title_hint=text, language=language)

        logger.info(
            f"Turn started: chat={chat.id}, user={owner_user_id}, language={language}, "
            f"image={'yes' if image_bytes else 'no'}"
        )

        async with self.contexts.lock(chat.id):
            # A delete may have taken the lock first.
            if await self.chat_storage.get_chat(chat.id, owner_user_id) is None:
                raise ChatNotFound()

            # Persisted before the model is called so the input survives any failure.
            user_message = await self.chat_storage.append_message(chat.id, "user", text, image_data)

            context = self.contexts.get_or_create(chat.id, language)
            prompt = text if text.strip() else translate(language, "image_default_prompt")
            images = [InlineImage(image_bytes, self.image_media_type)] if image_bytes else []
            outgoing = LLMMessage.user(prompt, images)

            error_code = None
            try:
                reply_text = await self._call_model(context, outgoing)
            except Exception as e:
                logger.error(
                    f"Model call failed for chat {chat.id}: {str(e)}",
                    exc_info=True,
                    extra={"extra_fields": {
                        "chat_id": chat.id,
                        "user_id": owner_user_id,
                        "error": str(e),
                    }}
                )
                reply_text = translate(language, "model_error")
                error_code = ExternalModelFailure.code

            reply = await self.chat_storage.append_message(chat.id, "model", reply_text)

        logger.info(
            f"Turn completed: chat={chat.id}, failed={error_code is not None}, "
            f"reply_length={len(reply_text)} chars"
        )

        return TurnResult(
            chat=chat,
            user_message=user_message,
            reply=reply,
            failed=error_code is not None,
            error=error_code,
        )

    async def _call_model(self, context: ConversationContext, outgoing: LLMMessage) -> str:
        if self.llm_provider is None:
            raise ExternalModelFailure("No model provider is configured")

        response = await self.llm_provider.chat_completion(context.build_request(outgoing))
        if not response.content:
            raise ExternalModelFailure("The model returned an empty reply")

        context.record_exchange(outgoing, response.content)
        return response.content

    async def delete_chat(self, chat_id: int, owner_user_id: int) -> bool:
        """Delete an owned chat and forget its live context. No-op otherwise."""
        async with self.contexts.lock(chat_id):
            deleted = await self.chat_storage.delete_chat(chat_id, owner_user_id)
        if deleted:
            self.contexts.evict(chat_id)
        return deleted

    def shutdown(self) -> None:
        self.contexts.clear()


# Global orchestrator instance
_orchestrator: Optional[ConversationOrchestrator] = None


def init_orchestrator(chat_storage: ChatStorage,
                      llm_provider: Optional[LLMProvider] = None) -> ConversationOrchestrator:
    """Initialize the global orchestrator."""
    global _orchestrator
    _orchestrator = ConversationOrchestrator(chat_storage, llm_provider)
    return _orchestrator


def get_orchestrator() -> ConversationOrchestrator:
    """
    Get the global orchestrator instance.

    Raises:
        RuntimeError: If the orchestrator has not been initialized
    """
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized. Call init_orchestrator() first.")
    return _orchestrator
