"""
Message service layer for MongoDB operations.

Handles message creation, chat history and read status. The relay layer uses
`update_message_read_by` / `find_message_by_id` as its only store contract.
"""

from datetime import datetime
from typing import List, Optional

from beanie import UpdateResponse
from beanie.operators import AddToSet, Set
from pymongo import ASCENDING

from chatrelay.models.messages import Message
from chatrelay.schemas.chat import ChatResponse
from chatrelay.schemas.message import MessageResponse
from chatrelay.services import auth_service
from chatrelay.utils.ids import to_object_id


# =============================================================================
# Message CRUD Operations
# =============================================================================

async def create_message(sender_id, chat_id, content: str) -> Message:
    """메시지 생성 (발신자는 읽음 처리된 상태로 시작)"""
    sender = to_object_id(sender_id)
    message = Message(
        sender=sender,
        content=content,
        chat=to_object_id(chat_id),
        read_by=[sender],
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )
    await message.insert()
    return message


async def find_message_by_id(message_id) -> Optional[Message]:
    """메시지 ID로 조회"""
    object_id = to_object_id(message_id)
    if object_id is None:
        return None
    return await Message.get(object_id)


async def get_chat_messages(chat_id) -> List[Message]:
    """채팅방 메시지 목록 (오래된 것부터)"""
    return await Message.find(
        Message.chat == to_object_id(chat_id)
    ).sort([("created_at", ASCENDING)]).to_list()


# =============================================================================
# Read Status
# =============================================================================

async def update_message_read_by(message_id, user_id) -> Optional[Message]:
    """읽은 사용자 추가 ($addToSet, 여러 번 적용해도 중복 없음)

    Returns:
        갱신된 메시지, 메시지가 없으면 None
    """
    message_object_id = to_object_id(message_id)
    user_object_id = to_object_id(user_id)
    if message_object_id is None or user_object_id is None:
        return None

    return await Message.find_one(Message.id == message_object_id).update(
        AddToSet({Message.read_by: user_object_id}),
        Set({Message.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT
    )


async def mark_messages_read(messages: List[Message], user_id) -> int:
    """아직 읽지 않은 메시지에 읽음 표시, 갱신된 개수 반환"""
    unread = [message for message in messages if not message.is_read_by(user_id)]
    for message in unread:
        await update_message_read_by(message.id, user_id)
    return len(unread)


# =============================================================================
# Populate
# =============================================================================

async def populate_messages(
    messages: List[Message],
    chat: Optional[ChatResponse] = None
) -> List[MessageResponse]:
    """발신자/읽은 사용자/채팅방을 펼친 응답 목록 생성"""
    user_ids = set()
    for message in messages:
        user_ids.add(str(message.sender))
        user_ids.update(str(reader) for reader in message.read_by)
    users = await auth_service.find_users_by_ids(user_ids)

    responses = []
    for message in messages:
        sender = users.get(str(message.sender))
        responses.append(MessageResponse(
            id=str(message.id),
            sender=auth_service.to_user_public(sender) if sender else None,
            content=message.content,
            chat=chat,
            read_by=[
                auth_service.to_user_public(users[str(reader)])
                for reader in message.read_by
                if str(reader) in users
            ],
            created_at=message.created_at,
            updated_at=message.updated_at
        ))
    return responses


async def populate_message(message: Message, chat: Optional[ChatResponse] = None) -> MessageResponse:
    return (await populate_messages([message], chat=chat))[0]
