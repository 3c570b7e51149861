import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Request

from chatrelay.api.auth import get_current_user
from chatrelay.core.errors import not_chat_member_error
from chatrelay.core.metrics import record_dropped
from chatrelay.models.users import User
from chatrelay.services import chat_service
from chatrelay.websockets.connection_manager import ConnectionManager
from chatrelay.websockets.handlers import RelayEventHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager


@router.websocket("")
async def websocket_endpoint(websocket: WebSocket):
    """
    실시간 릴레이 WebSocket 엔드포인트

    프레임 형식은 {"event": <이벤트명>, "data": <페이로드>} 입니다.
    연결 직후에는 anonymous 상태이며 `setup` 이후 다른 이벤트가 처리됩니다.
    하트비트(ping/timeout)는 uvicorn 전송 계층이 담당하고, 응답 없는 연결이
    끊기면 명시적 disconnect와 같은 정리가 수행됩니다.
    """
    manager: ConnectionManager = websocket.app.state.connection_manager
    handler: RelayEventHandler = websocket.app.state.relay_handler

    await websocket.accept()
    connection = manager.connect(websocket)

    try:
        # 한 연결의 이벤트는 수신 순서대로 하나씩 처리
        while True:
            try:
                frame = await websocket.receive_json()
            except (ValueError, KeyError) as e:
                # JSON 파싱 오류 또는 바이너리 프레임
                logger.warning(f"Invalid frame from connection {connection.sid}: {e}")
                record_dropped("unknown", "invalid_json")
                continue

            await handler.handle_frame(connection, frame)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: connection {connection.sid} (user={connection.user_id})")

    except Exception as e:
        logger.error(f"Unexpected error in WebSocket connection {connection.sid}: {e}", exc_info=True)

    finally:
        await handler.handle_disconnect(connection)


@router.get("/rooms/{room_id}/status")
async def get_room_status(
    room_id: str,
    current_user: User = Depends(get_current_user),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """
    채팅방의 현재 실시간 연결 상태를 조회합니다.
    해당 채팅방의 멤버만 조회할 수 있습니다.
    """
    chat = await chat_service.find_chat_for_member(room_id, current_user.id)
    if not chat:
        raise not_chat_member_error()

    online_users = manager.get_room_users(room_id)

    return {
        "room_id": room_id,
        "online_users": online_users,
        "online_count": len(online_users),
        "is_active": manager.get_connection_count_in_room(room_id) > 0,
        "user_id": str(current_user.id)
    }
