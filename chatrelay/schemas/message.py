from datetime import datetime
from typing import Optional, List
from pydantic import Field

from .base import CamelModel
from .chat import ChatResponse
from .user import UserPublic


class SendMessageRequest(CamelModel):
    """메시지 전송 요청"""
    content: Optional[str] = Field(None, description="메시지 내용")
    chat_id: Optional[str] = Field(None, description="채팅방 ID")


class MessageResponse(CamelModel):
    """발신자/채팅방/읽은 사용자가 펼쳐진 메시지 응답

    실시간 채널의 `new message` 페이로드로 그대로 재사용됩니다.
    """
    id: str = Field(..., alias="_id", description="메시지 ID")
    sender: Optional[UserPublic] = Field(None, description="발신자")
    content: str = Field(..., description="메시지 내용")
    chat: Optional[ChatResponse] = Field(None, description="채팅방 (참여자 포함)")
    read_by: List[UserPublic] = Field(default_factory=list, description="읽은 사용자 목록")
    created_at: datetime
    updated_at: datetime
