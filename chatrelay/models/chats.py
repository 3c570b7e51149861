from datetime import datetime
from typing import List, Optional
from beanie import Document, PydanticObjectId
from pydantic import Field


class Chat(Document):
    chat_name: str = Field(..., description="Group name, or \"sender\" for 1:1 chats")
    is_group_chat: bool = Field(default=False)
    users: List[PydanticObjectId] = Field(default_factory=list, description="Member user IDs")
    group_admin: Optional[PydanticObjectId] = Field(None, description="Admin user ID (group chats only)")
    latest_message: Optional[PydanticObjectId] = Field(None, description="Most recent message ID")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "chats"
        indexes = [
            [("users", 1), ("updated_at", -1)],  # For user chat list
            [("is_group_chat", 1), ("users", 1)],  # For 1:1 chat lookup
        ]

    def has_member(self, user_id) -> bool:
        return any(str(member) == str(user_id) for member in self.users)

    def is_admin(self, user_id) -> bool:
        return self.group_admin is not None and str(self.group_admin) == str(user_id)

    def __repr__(self):
        return f"<Chat(id={self.id}, chat_name={self.chat_name}, is_group_chat={self.is_group_chat})>"
