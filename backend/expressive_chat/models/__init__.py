"""Models module."""

from .user import UserCredentials, LoginRequest, User, UserInDB, AuthResponse, TokenData
from .chat import (
    Chat, ChatCreate, ChatList, Message, MessageCreate, MessageList,
    MessageRole, TurnRequest, TurnResult, SuccessResponse
)

__all__ = [
    'UserCredentials', 'LoginRequest', 'User', 'UserInDB', 'AuthResponse', 'TokenData',
    'Chat', 'ChatCreate', 'ChatList', 'Message', 'MessageCreate', 'MessageList',
    'MessageRole', 'TurnRequest', 'TurnResult', 'SuccessResponse'
]
