from datetime import datetime
from typing import List
from beanie import Document, PydanticObjectId
from pydantic import Field


class Message(Document):
    sender: PydanticObjectId = Field(..., description="User ID who sent the message")
    content: str = Field(..., description="Message content")
    chat: PydanticObjectId = Field(..., description="Chat ID where message was sent")
    read_by: List[PydanticObjectId] = Field(default_factory=list, description="User IDs who read the message")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "messages"
        indexes = [
            [("chat", 1), ("created_at", 1)],  # For chat message history
            [("sender", 1), ("created_at", -1)],  # For user message history
        ]

    def is_read_by(self, user_id) -> bool:
        return any(str(reader) == str(user_id) for reader in self.read_by)

    def __repr__(self):
        return f"<Message(id={self.id}, sender={self.sender}, chat={self.chat})>"
