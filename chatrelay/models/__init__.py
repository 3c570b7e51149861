from .users import User
from .chats import Chat
from .messages import Message

DOCUMENT_MODELS = [User, Chat, Message]

__all__ = [
    "User",
    "Chat",
    "Message",
    "DOCUMENT_MODELS",
]
