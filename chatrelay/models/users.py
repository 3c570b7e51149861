from datetime import datetime
from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    username: Indexed(str, unique=True) = Field(..., description="Unique username (3-30 chars)")
    email: Indexed(str, unique=True) = Field(..., description="Lowercased email address")
    password_hash: str = Field(..., description="bcrypt password hash")
    is_admin: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, email={self.email})>"
