"""
Services layer for data access.

This layer handles:
- MongoDB queries and operations (via Beanie)
- Reference expansion for API responses
"""

from . import auth_service
from . import chat_service
from . import message_service

__all__ = [
    "auth_service",
    "chat_service",
    "message_service"
]
