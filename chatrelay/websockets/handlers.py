import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from chatrelay.core.config import settings
from chatrelay.core.logging import log_websocket_event
from chatrelay.core.metrics import RELAY_EVENTS_RECEIVED, record_dropped, record_store_failure
from chatrelay.schemas.realtime import (
    RelayFrame,
    SetupPayload,
    NewMessagePayload,
    MessageReadPayload,
    ReadUpdate
)
from chatrelay.services import chat_service, message_service
from chatrelay.websockets.auth import verify_setup_identity
from chatrelay.websockets.connection_manager import Connection, ConnectionManager

logger = logging.getLogger(__name__)

# 수신 이벤트
SETUP = "setup"
JOIN_CHAT = "join chat"
LEAVE_CHAT = "leave chat"
NEW_MESSAGE = "new message"
MESSAGE_READ = "message read"
TYPING = "typing"
STOP_TYPING = "stop typing"
PING = "ping"

# 송신 이벤트
CONNECTED = "connected"
MESSAGE_RECEIVED = "message received"
MESSAGE_READ_UPDATE = "message read update"
PONG = "pong"


class RelayEventHandler:
    """WebSocket 릴레이 이벤트 처리 핸들러

    연결 상태: anonymous(초기, setup만 허용) -> identified -> disconnect.
    어떤 이벤트도 호출자에게 예외를 전달하지 않으며, 버려진 이벤트는
    로그와 카운터로만 남습니다.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        store=message_service,
        chat_store=chat_service,
        verify_membership: Optional[bool] = None
    ):
        self.manager = manager
        self.store = store
        self.chat_store = chat_store
        if verify_membership is None:
            verify_membership = settings.relay_verify_membership
        self.verify_membership = verify_membership

        self._identified_handlers = {
            JOIN_CHAT: self._handle_join_chat,
            LEAVE_CHAT: self._handle_leave_chat,
            NEW_MESSAGE: self._handle_new_message,
            MESSAGE_READ: self._handle_message_read,
            TYPING: self._handle_typing,
            STOP_TYPING: self._handle_typing,
        }

    async def handle_frame(self, connection: Connection, frame: Any):
        """수신 프레임 {"event", "data"} 처리"""
        try:
            parsed = RelayFrame.model_validate(frame)
        except ValidationError as e:
            logger.warning(f"Malformed frame from connection {connection.sid}: {e.errors()}")
            record_dropped("unknown", "malformed_frame")
            return

        await self.handle_event(connection, parsed.event, parsed.data)

    async def handle_event(self, connection: Connection, event: str, data: Any = None):
        """
        단일 이벤트를 처리합니다.

        Args:
            connection: 이벤트를 보낸 연결
            event: 이벤트 이름
            data: 이벤트 페이로드
        """
        if event == SETUP:
            RELAY_EVENTS_RECEIVED.labels(event=event).inc()
            await self._guarded(event, connection, self._handle_setup, data)
            return

        if event == PING:
            RELAY_EVENTS_RECEIVED.labels(event=event).inc()
            await connection.emit(PONG)
            return

        handler = self._identified_handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event '{event}' from connection {connection.sid}")
            record_dropped("unknown", "unknown_event")
            return

        RELAY_EVENTS_RECEIVED.labels(event=event).inc()

        if not connection.is_identified:
            logger.warning(f"Event '{event}' before setup from connection {connection.sid}, dropped")
            record_dropped(event, "unauthenticated")
            return

        await self._guarded(event, connection, handler, data, event)

    async def handle_disconnect(self, connection: Connection):
        """presence 해제 + 모든 방 퇴장 (응답 없음)"""
        user_id = connection.user_id
        self.manager.disconnect(connection)
        log_websocket_event(logger, "disconnect", connection.sid, user_id=user_id)

    async def _guarded(self, event: str, connection: Connection, handler, *args):
        try:
            await handler(connection, *args)
        except Exception as e:
            logger.error(
                f"Error handling '{event}' from connection {connection.sid}: {e}",
                exc_info=True
            )
            record_dropped(event, "handler_error")

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    async def _handle_setup(self, connection: Connection, data: Any):
        try:
            payload = SetupPayload.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed setup from connection {connection.sid}: {e.errors()}")
            record_dropped(SETUP, "malformed_payload")
            return

        user_id = payload.data.id
        if not verify_setup_identity(user_id, payload.data.token):
            record_dropped(SETUP, "unauthorized")
            return

        self.manager.identify(connection, user_id)
        log_websocket_event(logger, "setup", connection.sid, user_id=user_id, room_id=user_id)
        await connection.emit(CONNECTED)

    async def _handle_join_chat(self, connection: Connection, data: Any, event: str):
        room_id = self._room_id(connection, data, event)
        if room_id is None:
            return

        self.manager.join(connection, room_id)
        log_websocket_event(logger, "join", connection.sid, user_id=connection.user_id, room_id=room_id)
        await connection.emit(CONNECTED)

    async def _handle_leave_chat(self, connection: Connection, data: Any, event: str):
        room_id = self._room_id(connection, data, event)
        if room_id is None:
            return

        self.manager.leave(connection, room_id)
        log_websocket_event(logger, "leave", connection.sid, user_id=connection.user_id, room_id=room_id)

    async def _handle_new_message(self, connection: Connection, data: Any, event: str):
        try:
            payload = NewMessagePayload.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed new message from user {connection.user_id}: {e.errors()}")
            record_dropped(event, "malformed_payload")
            return

        sender_id = payload.sender.id
        targets = payload.chat.users

        if self.verify_membership:
            targets = await self._stored_targets(connection, payload, event)
            if targets is None:
                return

        recipients = self._unique_recipients(targets, exclude=sender_id)
        # 오프라인 사용자는 identity 방이 비어 있어 조용히 건너뜀 (at-most-once)
        delivered = await self.manager.emit_to_rooms(recipients, MESSAGE_RECEIVED, data)

        logger.info(
            f"Relayed message from user {sender_id} to {len(recipients)} recipients "
            f"({delivered} connections)"
        )

    async def _handle_message_read(self, connection: Connection, data: Any, event: str):
        try:
            payload = MessageReadPayload.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed message read from user {connection.user_id}: {e.errors()}")
            record_dropped(event, "malformed_payload")
            return

        try:
            updated = await self.store.update_message_read_by(payload.message_id, payload.user_id)
        except Exception as e:
            logger.error(f"Failed to mark message {payload.message_id} read by {payload.user_id}: {e}")
            record_store_failure("update_message_read_by")
            return

        if updated is None:
            logger.warning(f"Message {payload.message_id} not found for read receipt")
            record_store_failure("update_message_read_by")
            return

        try:
            message = await self.store.find_message_by_id(payload.message_id)
        except Exception as e:
            logger.error(f"Failed to re-read message {payload.message_id}: {e}")
            record_store_failure("find_message_by_id")
            return

        if message is None:
            logger.warning(f"Message {payload.message_id} disappeared after read receipt")
            record_store_failure("find_message_by_id")
            return

        update = ReadUpdate(
            message_id=payload.message_id,
            read_by=[str(reader) for reader in message.read_by]
        )
        await self.manager.emit_to_room(
            payload.chat_id,
            MESSAGE_READ_UPDATE,
            update.model_dump(by_alias=True)
        )

    async def _handle_typing(self, connection: Connection, data: Any, event: str):
        room_id = self._room_id(connection, data, event)
        if room_id is None:
            return

        await self.manager.emit_to_room(room_id, event, skip_sid=connection.sid)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _room_id(connection: Connection, data: Any, event: str) -> Optional[str]:
        if isinstance(data, str) and data:
            return data
        logger.warning(f"Invalid room id for '{event}' from connection {connection.sid}: {data!r}")
        record_dropped(event, "malformed_payload")
        return None

    @staticmethod
    def _unique_recipients(targets: List[str], exclude: str) -> List[str]:
        recipients = []
        for user_id in targets:
            if user_id == exclude or user_id in recipients:
                continue
            recipients.append(user_id)
        return recipients

    async def _stored_targets(
        self,
        connection: Connection,
        payload: NewMessagePayload,
        event: str
    ) -> Optional[List[str]]:
        """저장된 Chat.users로 수신자 재계산 (위조된 페이로드 차단)"""
        sender_id = payload.sender.id
        if sender_id != connection.user_id:
            logger.warning(
                f"Sender {sender_id} does not match connection identity {connection.user_id}"
            )
            record_dropped(event, "sender_mismatch")
            return None

        if not payload.chat.id:
            logger.warning(f"New message from user {sender_id} without chat._id")
            record_dropped(event, "malformed_payload")
            return None

        try:
            chat = await self.chat_store.find_chat_by_id(payload.chat.id)
        except Exception as e:
            logger.error(f"Failed to load chat {payload.chat.id}: {e}")
            record_store_failure("find_chat_by_id")
            return None

        if chat is None or not chat.has_member(sender_id):
            logger.warning(f"User {sender_id} is not a member of chat {payload.chat.id}")
            record_dropped(event, "not_member")
            return None

        return [str(user_id) for user_id in chat.users]
