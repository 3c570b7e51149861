import logging
from typing import List

from fastapi import APIRouter, Depends

from chatrelay.api.auth import get_current_user
from chatrelay.core.errors import BusinessLogicException, not_chat_member_error
from chatrelay.models.users import User
from chatrelay.schemas.message import SendMessageRequest, MessageResponse
from chatrelay.services import chat_service, message_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/message", tags=["Messages"])


@router.get("/{chat_id}", response_model=List[MessageResponse])
async def all_messages(
    chat_id: str,
    current_user: User = Depends(get_current_user)
) -> List[MessageResponse]:
    """
    채팅방 메시지 목록 조회

    조회한 사용자가 아직 읽지 않은 메시지는 읽음 처리됩니다.
    응답은 읽음 처리 이전 상태를 반환합니다.
    """
    chat = await chat_service.find_chat_for_member(chat_id, current_user.id)
    if not chat:
        raise not_chat_member_error()

    messages = await message_service.get_chat_messages(chat.id)
    chat_response = await chat_service.populate_chat(chat, include_latest=False)
    responses = await message_service.populate_messages(messages, chat=chat_response)

    marked = await message_service.mark_messages_read(messages, current_user.id)
    if marked:
        logger.info(f"Marked {marked} messages in chat {chat.id} read by {current_user.id}")

    return responses


@router.post("", response_model=MessageResponse)
async def send_message(
    request: SendMessageRequest,
    current_user: User = Depends(get_current_user)
) -> MessageResponse:
    """
    메시지 전송

    - **content**: 메시지 내용
    - **chatId**: 채팅방 ID

    저장만 수행하며, 실시간 전달은 클라이언트가 응답을 `new message`
    이벤트로 릴레이 채널에 보내 처리합니다.
    """
    if not request.content or not request.content.strip() or not request.chat_id:
        logger.warning(f"Invalid data passed into send message by {current_user.id}")
        raise BusinessLogicException("Content and chatId are required")

    chat = await chat_service.find_chat_for_member(request.chat_id, current_user.id)
    if not chat:
        raise not_chat_member_error()

    message = await message_service.create_message(
        sender_id=current_user.id,
        chat_id=chat.id,
        content=request.content
    )
    await chat_service.set_latest_message(chat.id, message.id)

    chat_response = await chat_service.populate_chat(chat, include_latest=False)
    return await message_service.populate_message(message, chat=chat_response)
