"""
실시간 릴레이 채널의 수신 페이로드 스키마

프레임 형식: {"event": <이벤트명>, "data": <페이로드>}
검증 실패 시 핸들러는 이벤트를 로그만 남기고 버립니다.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class RelayPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class RelayFrame(BaseModel):
    """송수신 공통 프레임"""
    event: str = Field(..., min_length=1)
    data: Any = None


class SetupIdentity(RelayPayload):
    id: str = Field(..., alias="_id", min_length=1)
    token: Optional[str] = None


class SetupPayload(RelayPayload):
    """`setup` - 로그인 응답({success, data:{_id, token, ...}})을 그대로 전달"""
    data: SetupIdentity


class ChatTargets(RelayPayload):
    id: Optional[str] = Field(None, alias="_id")
    users: List[str]

    @field_validator("users", mode="before")
    @classmethod
    def normalize_users(cls, value):
        # populate 된 사용자 객체와 ID 문자열 모두 허용
        if not isinstance(value, list):
            raise ValueError("chat.users must be a list")
        normalized = []
        for user in value:
            if isinstance(user, dict):
                user = user.get("_id")
            if not isinstance(user, str) or not user:
                raise ValueError("chat.users entries must be user ids or objects with _id")
            normalized.append(user)
        return normalized


class SenderRef(RelayPayload):
    id: str = Field(..., alias="_id", min_length=1)


class NewMessagePayload(RelayPayload):
    """`new message` - REST로 저장된 메시지(MessageResponse)"""
    chat: ChatTargets
    sender: SenderRef


class MessageReadPayload(RelayPayload):
    """`message read` - {messageId, userId, chatId}"""
    message_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    chat_id: str = Field(..., min_length=1)


class ReadUpdate(RelayPayload):
    """`message read update` 송신 페이로드"""
    message_id: str
    read_by: List[str]
