"""Storage module - SQL persistence for users, chats and messages."""

from .database import Database, init_database, get_database, close_database
from .user_storage import UserStorage, init_user_storage, get_user_storage
from .chat_storage import ChatStorage, init_chat_storage, get_chat_storage

__all__ = [
    'Database', 'init_database', 'get_database', 'close_database',
    'UserStorage', 'init_user_storage', 'get_user_storage',
    'ChatStorage', 'init_chat_storage', 'get_chat_storage',
]
