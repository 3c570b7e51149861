from datetime import datetime
from typing import Optional, List, Union
from pydantic import Field

from .base import CamelModel
from .user import UserPublic


class AccessChatRequest(CamelModel):
    """1:1 채팅방 접근 요청"""
    user_id: Optional[str] = Field(None, description="상대방 사용자 ID")


class GroupChatCreate(CamelModel):
    """그룹 채팅방 생성 요청"""
    name: Optional[str] = Field(None, description="그룹 이름")
    users: Optional[Union[List[str], str]] = Field(
        None, description="멤버 ID 목록 (배열 또는 JSON 문자열)"
    )


class RenameGroupRequest(CamelModel):
    chat_id: Optional[str] = None
    chat_name: Optional[str] = None


class GroupMemberRequest(CamelModel):
    chat_id: Optional[str] = None
    user_id: Optional[str] = None


class ChatIdRequest(CamelModel):
    chat_id: Optional[str] = None


class LatestMessage(CamelModel):
    """채팅 목록에 포함되는 마지막 메시지"""
    id: str = Field(..., alias="_id")
    sender: Optional[UserPublic] = None
    content: str
    chat: str
    read_by: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ChatResponse(CamelModel):
    """참여자가 펼쳐진(populate) 채팅방 응답"""
    id: str = Field(..., alias="_id", description="채팅방 ID")
    chat_name: str = Field(..., description="채팅방 이름")
    is_group_chat: bool = Field(..., description="그룹 채팅 여부")
    users: List[UserPublic] = Field(default_factory=list, description="참여자 목록")
    group_admin: Optional[UserPublic] = Field(None, description="그룹 관리자")
    latest_message: Optional[LatestMessage] = Field(None, description="마지막 메시지")
    created_at: datetime
    updated_at: datetime


class DeleteGroupResponse(CamelModel):
    message: str = "Group deleted successfully"
