"""
Chat API endpoints - chats, their message logs, and conversation turns.

Every chat lookup is filtered by the session's user, so another user's chat
id behaves exactly like one that does not exist.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Body, Depends

from ..core.errors import ChatNotFound
from ..core.orchestrator import ConversationOrchestrator, get_orchestrator
from ..models import (
    Chat,
    ChatCreate,
    ChatList,
    MessageCreate,
    MessageList,
    SuccessResponse,
    TokenData,
    TurnRequest,
    TurnResult,
)
from ..storage.chat_storage import ChatStorage, get_chat_storage
from ..utils.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chats", tags=["chats"])
conversation_router = APIRouter(prefix="/api/conversation", tags=["conversation"])


@router.get("", response_model=ChatList)
async def list_chats(
    current_user: TokenData = Depends(get_current_user),
    storage: ChatStorage = Depends(get_chat_storage),
):
    """List the user's chats, newest first."""
    return ChatList(chats=await storage.list_chats(current_user.user_id))


@router.post("", response_model=Chat)
async def create_chat(
    body: Optional[ChatCreate] = Body(None),
    current_user: TokenData = Depends(get_current_user),
    storage: ChatStorage = Depends(get_chat_storage),
):
    """Create a chat; an empty title gets a localised placeholder."""
    body = body or ChatCreate()
    return await storage.create_chat(current_user.user_id, body.title, body.language)


@router.get("/{chat_id}/messages", response_model=MessageList)
async def list_messages(
    chat_id: int,
    current_user: TokenData = Depends(get_current_user),
    storage: ChatStorage = Depends(get_chat_storage),
):
    """Messages of an owned chat in ascending order; empty for any other id."""
    chat = await storage.get_chat(chat_id, current_user.user_id)
    if chat is None:
        return MessageList(messages=[])
    return MessageList(messages=await storage.list_messages(chat.id))


@router.post("/{chat_id}/messages", response_model=SuccessResponse)
async def append_message(
    chat_id: int,
    message: MessageCreate,
    current_user: TokenData = Depends(get_current_user),
    storage: ChatStorage = Depends(get_chat_storage),
):
    """
    Append a raw message to an owned chat.

    Raises:
        ChatNotFound: If the chat is missing or owned by someone else
    """
    chat = await storage.get_chat(chat_id, current_user.user_id)
    if chat is None:
        raise ChatNotFound()
    await storage.append_message(chat.id, message.role, message.text, message.image_data)
    return SuccessResponse()


@router.delete("/{chat_id}", response_model=SuccessResponse)
async def delete_chat(
    chat_id: int,
    current_user: TokenData = Depends(get_current_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Delete an owned chat with its messages. Always succeeds."""
    await orchestrator.delete_chat(chat_id, current_user.user_id)
    return SuccessResponse()


@conversation_router.post("/turn", response_model=TurnResult)
async def send_turn(
    turn: TurnRequest,
    current_user: TokenData = Depends(get_current_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """
    Send one user turn to the model and persist both sides.

    Omitting ``chatId`` starts a new chat. A failed model call still returns
    200, with ``failed`` set and the localised error text as the reply.
    """
    return await orchestrator.send_turn(
        owner_user_id=current_user.user_id,
        text=turn.text,
        image_data=turn.image_data,
        chat_id=turn.chat_id,
        language=turn.language,
    )
