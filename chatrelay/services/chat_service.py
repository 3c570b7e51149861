"""
Chat service layer for MongoDB operations.

Handles 1:1 and group chat CRUD plus reference expansion ("populate") of
members, group admin and latest message for API responses.
"""

from datetime import datetime
from typing import List, Optional

from beanie import UpdateResponse
from beanie.operators import AddToSet, Pull, Set
from pymongo import DESCENDING

from chatrelay.models.chats import Chat
from chatrelay.models.messages import Message
from chatrelay.schemas.chat import ChatResponse, LatestMessage
from chatrelay.services import auth_service
from chatrelay.utils.ids import to_object_id, to_object_ids


# =============================================================================
# Chat CRUD Operations
# =============================================================================

async def find_chat_by_id(chat_id) -> Optional[Chat]:
    """채팅방 ID로 조회"""
    object_id = to_object_id(chat_id)
    if object_id is None:
        return None
    return await Chat.get(object_id)


async def find_chat_for_member(chat_id, user_id) -> Optional[Chat]:
    """사용자가 멤버인 경우에만 채팅방 반환"""
    chat_object_id = to_object_id(chat_id)
    user_object_id = to_object_id(user_id)
    if chat_object_id is None or user_object_id is None:
        return None
    return await Chat.find_one({"_id": chat_object_id, "users": user_object_id})


async def find_direct_chat(user_id, other_user_id) -> Optional[Chat]:
    """두 사용자 간의 기존 1:1 채팅방 조회"""
    return await Chat.find_one({
        "is_group_chat": False,
        "users": {"$all": to_object_ids([user_id, other_user_id])}
    })


async def create_direct_chat(user_id, other_user_id) -> Chat:
    """새 1:1 채팅방 생성"""
    chat = Chat(
        chat_name="sender",
        is_group_chat=False,
        users=to_object_ids([user_id, other_user_id]),
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )
    await chat.insert()
    return chat


async def get_user_chats(user_id) -> List[Chat]:
    """사용자가 참여한 채팅방 목록 (최근 갱신순)"""
    return await Chat.find(
        {"users": to_object_id(user_id)}
    ).sort([("updated_at", DESCENDING)]).to_list()


async def create_group_chat(name: str, member_ids: List[str], admin_id) -> Chat:
    """그룹 채팅방 생성 (생성자는 멤버이자 관리자)"""
    members = to_object_ids(member_ids)
    admin_object_id = to_object_id(admin_id)
    if admin_object_id not in members:
        members.append(admin_object_id)

    chat = Chat(
        chat_name=name,
        is_group_chat=True,
        users=members,
        group_admin=admin_object_id,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )
    await chat.insert()
    return chat


async def rename_chat(chat: Chat, chat_name: str) -> Optional[Chat]:
    return await Chat.find_one(Chat.id == chat.id).update(
        Set({Chat.chat_name: chat_name, Chat.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT
    )


async def add_user_to_chat(chat: Chat, user_id) -> Optional[Chat]:
    return await Chat.find_one(Chat.id == chat.id).update(
        AddToSet({Chat.users: to_object_id(user_id)}),
        Set({Chat.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT
    )


async def remove_user_from_chat(chat: Chat, user_id) -> Optional[Chat]:
    return await Chat.find_one(Chat.id == chat.id).update(
        Pull({Chat.users: to_object_id(user_id)}),
        Set({Chat.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT
    )


async def set_latest_message(chat_id, message_id):
    """채팅방의 마지막 메시지 갱신"""
    await Chat.find_one(Chat.id == to_object_id(chat_id)).update(
        Set({
            Chat.latest_message: to_object_id(message_id),
            Chat.updated_at: datetime.utcnow()
        })
    )


async def delete_chat(chat: Chat):
    await chat.delete()


# =============================================================================
# Populate
# =============================================================================

async def populate_chats(chats: List[Chat], include_latest: bool = True) -> List[ChatResponse]:
    """멤버/관리자/마지막 메시지(발신자 포함)를 펼친 응답 목록 생성"""
    latest_messages = {}
    if include_latest:
        latest_ids = [chat.latest_message for chat in chats if chat.latest_message]
        if latest_ids:
            messages = await Message.find({"_id": {"$in": latest_ids}}).to_list()
            latest_messages = {str(message.id): message for message in messages}

    user_ids = set()
    for chat in chats:
        user_ids.update(str(user_id) for user_id in chat.users)
        if chat.group_admin:
            user_ids.add(str(chat.group_admin))
    user_ids.update(str(message.sender) for message in latest_messages.values())

    users = await auth_service.find_users_by_ids(user_ids)

    def public(user_id):
        user = users.get(str(user_id))
        return auth_service.to_user_public(user) if user else None

    responses = []
    for chat in chats:
        latest = latest_messages.get(str(chat.latest_message)) if chat.latest_message else None
        responses.append(ChatResponse(
            id=str(chat.id),
            chat_name=chat.chat_name,
            is_group_chat=chat.is_group_chat,
            # 탈퇴 등으로 사라진 사용자는 제외
            users=[member for member in (public(user_id) for user_id in chat.users) if member],
            group_admin=public(chat.group_admin) if chat.group_admin else None,
            latest_message=LatestMessage(
                id=str(latest.id),
                sender=public(latest.sender),
                content=latest.content,
                chat=str(latest.chat),
                read_by=[str(reader) for reader in latest.read_by],
                created_at=latest.created_at,
                updated_at=latest.updated_at
            ) if latest else None,
            created_at=chat.created_at,
            updated_at=chat.updated_at
        ))
    return responses


async def populate_chat(chat: Chat, include_latest: bool = True) -> ChatResponse:
    return (await populate_chats([chat], include_latest=include_latest))[0]
