"""
Chat Models - Defines structures for chats, messages and conversation turns.

Field names are camelCase on the wire (``userId``, ``imageData``...) and
snake_case in Python.
"""

from datetime import datetime
from typing import Literal, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.i18n import Language

MessageRole = Literal["user", "model"]


class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)


class Chat(CamelModel):
    """Chat metadata."""
    id: int
    user_id: int
    title: str
    created_at: datetime


class ChatCreate(CamelModel):
    """Body for explicit chat creation."""
    title: Optional[str] = None
    language: Optional[Language] = None


class ChatList(CamelModel):
    chats: List[Chat]


class Message(CamelModel):
    """A persisted, immutable chat message."""
    id: int
    chat_id: int
    role: MessageRole
    text: str
    image_data: Optional[str] = None
    timestamp: datetime


class MessageCreate(CamelModel):
    """Body for appending a raw message to a chat."""
    role: MessageRole
    text: str = ""
    image_data: Optional[str] = None


class MessageList(CamelModel):
    messages: List[Message]


class TurnRequest(CamelModel):
    """One user turn; ``chat_id`` is omitted to start a new chat."""
    chat_id: Optional[int] = None
    text: str = ""
    image_data: Optional[str] = None
    language: Optional[Language] = None


class TurnResult(CamelModel):
    """Outcome of a turn. ``failed`` is set when the reply is the fallback text."""
    chat: Chat
    user_message: Message
    reply: Message
    failed: bool = False
    error: Optional[str] = None


class SuccessResponse(CamelModel):
    success: bool = Field(True)
