import json
import logging
from typing import List

from fastapi import APIRouter, Depends, status

from chatrelay.api.auth import get_current_user
from chatrelay.core.errors import (
    BusinessLogicException,
    AuthorizationException,
    user_not_found_error,
    chat_not_found_error,
    admin_only_error
)
from chatrelay.models.chats import Chat
from chatrelay.models.users import User
from chatrelay.schemas.chat import (
    AccessChatRequest,
    GroupChatCreate,
    RenameGroupRequest,
    GroupMemberRequest,
    ChatIdRequest,
    ChatResponse,
    DeleteGroupResponse
)
from chatrelay.services import auth_service, chat_service
from chatrelay.utils.ids import to_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chats"])


async def _get_group_chat(chat_id) -> Chat:
    chat = await chat_service.find_chat_by_id(chat_id)
    if not chat or not chat.is_group_chat:
        raise chat_not_found_error(chat_id)
    return chat


def _parse_group_members(users) -> List[str]:
    """users 필드는 JSON 문자열 또는 ID 배열"""
    if isinstance(users, str):
        try:
            users = json.loads(users)
        except ValueError:
            raise BusinessLogicException("users must be a JSON array of user ids")

    if not isinstance(users, list) or not all(isinstance(user_id, str) for user_id in users):
        raise BusinessLogicException("users must be a JSON array of user ids")

    if any(to_object_id(user_id) is None for user_id in users):
        raise BusinessLogicException("users contains an invalid user id")

    return list(dict.fromkeys(users))


@router.post("", response_model=ChatResponse)
async def access_chat(
    request: AccessChatRequest,
    current_user: User = Depends(get_current_user)
) -> ChatResponse:
    """
    1:1 채팅방 접근

    두 사용자 간에 기존 채팅방이 있으면 반환하고, 없으면 새로 생성합니다.
    """
    if not request.user_id:
        raise BusinessLogicException("UserId param not sent with request")

    if request.user_id == str(current_user.id):
        raise BusinessLogicException("Cannot create chat with yourself")

    participant = await auth_service.find_user_by_id(request.user_id)
    if not participant:
        raise user_not_found_error(request.user_id)

    chat = await chat_service.find_direct_chat(current_user.id, participant.id)
    if chat is None:
        chat = await chat_service.create_direct_chat(current_user.id, participant.id)
        logger.info(f"Direct chat {chat.id} created between {current_user.id} and {participant.id}")

    return await chat_service.populate_chat(chat)


@router.get("", response_model=List[ChatResponse])
async def fetch_chats(
    current_user: User = Depends(get_current_user)
) -> List[ChatResponse]:
    """사용자의 채팅방 목록 조회 (최근 갱신순)"""
    chats = await chat_service.get_user_chats(current_user.id)
    return await chat_service.populate_chats(chats)


@router.post("/group", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_group_chat(
    request: GroupChatCreate,
    current_user: User = Depends(get_current_user)
) -> ChatResponse:
    """
    그룹 채팅방 생성

    - **name**: 그룹 이름
    - **users**: 멤버 ID 목록 (생성자는 자동으로 멤버 겸 관리자)
    """
    if not request.users or not request.name:
        raise BusinessLogicException("Please provide all required fields")

    members = [user_id for user_id in _parse_group_members(request.users) if user_id != str(current_user.id)]
    if len(members) < 2:
        raise BusinessLogicException("More than 2 users are required to form a group chat")

    chat = await chat_service.create_group_chat(request.name, members, current_user.id)
    logger.info(f"Group chat {chat.id} created by {current_user.id} with {len(members)} members")

    return await chat_service.populate_chat(chat, include_latest=False)


@router.put("/group/rename", response_model=ChatResponse)
async def rename_group(
    request: RenameGroupRequest,
    current_user: User = Depends(get_current_user)
) -> ChatResponse:
    """그룹 이름 변경 (관리자 전용)"""
    if not request.chat_id or not request.chat_name:
        raise BusinessLogicException("Please provide chatId and new name")

    chat = await _get_group_chat(request.chat_id)
    if not chat.is_admin(current_user.id):
        raise admin_only_error("rename the group")

    updated = await chat_service.rename_chat(chat, request.chat_name)
    if not updated:
        raise chat_not_found_error(request.chat_id)

    return await chat_service.populate_chat(updated)


@router.put("/group/add", response_model=ChatResponse)
async def add_to_group(
    request: GroupMemberRequest,
    current_user: User = Depends(get_current_user)
) -> ChatResponse:
    """그룹 멤버 추가 (관리자 전용)"""
    if not request.chat_id or not request.user_id:
        raise BusinessLogicException("Please provide chatId and userId")

    chat = await _get_group_chat(request.chat_id)
    if not chat.is_admin(current_user.id):
        raise admin_only_error("add members")

    if chat.has_member(request.user_id):
        raise BusinessLogicException("User already in group")

    if not await auth_service.find_user_by_id(request.user_id):
        raise user_not_found_error(request.user_id)

    updated = await chat_service.add_user_to_chat(chat, request.user_id)
    if not updated:
        raise chat_not_found_error(request.chat_id)

    return await chat_service.populate_chat(updated)


@router.put("/group/remove", response_model=ChatResponse)
async def remove_from_group(
    request: GroupMemberRequest,
    current_user: User = Depends(get_current_user)
) -> ChatResponse:
    """그룹 멤버 제거 (관리자 전용, 관리자 자신은 제거 불가)"""
    if not request.chat_id or not request.user_id:
        raise BusinessLogicException("Please provide chatId and userId")

    chat = await _get_group_chat(request.chat_id)
    if not chat.is_admin(current_user.id):
        raise admin_only_error("remove members")

    if request.user_id == str(current_user.id):
        raise BusinessLogicException("Admin cannot be removed. Use delete group instead.")

    updated = await chat_service.remove_user_from_chat(chat, request.user_id)
    if not updated:
        raise chat_not_found_error(request.chat_id)

    return await chat_service.populate_chat(updated)


@router.put("/group/leave", response_model=ChatResponse)
async def leave_group(
    request: ChatIdRequest,
    current_user: User = Depends(get_current_user)
) -> ChatResponse:
    """그룹 나가기 (관리자는 나갈 수 없음)"""
    if not request.chat_id:
        raise BusinessLogicException("Please provide chatId")

    chat = await _get_group_chat(request.chat_id)
    if chat.is_admin(current_user.id):
        raise BusinessLogicException("Admin cannot leave group. Delete the group instead.")

    if not chat.has_member(current_user.id):
        raise AuthorizationException("You are not a member of this group")

    updated = await chat_service.remove_user_from_chat(chat, current_user.id)
    if not updated:
        raise chat_not_found_error(request.chat_id)

    return await chat_service.populate_chat(updated)


@router.delete("/group/delete", response_model=DeleteGroupResponse)
async def delete_group(
    request: ChatIdRequest,
    current_user: User = Depends(get_current_user)
) -> DeleteGroupResponse:
    """그룹 삭제 (관리자 전용)"""
    if not request.chat_id:
        raise BusinessLogicException("Please provide chatId")

    chat = await _get_group_chat(request.chat_id)
    if not chat.is_admin(current_user.id):
        raise admin_only_error("delete the group")

    await chat_service.delete_chat(chat)
    logger.info(f"Group chat {chat.id} deleted by {current_user.id}")

    return DeleteGroupResponse()
