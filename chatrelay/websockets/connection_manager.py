import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from chatrelay.core.metrics import RELAY_EVENTS_EMITTED

logger = logging.getLogger(__name__)


class Connection:
    """WebSocket 한 개와 그 연결의 식별/구독 상태"""

    def __init__(self, websocket: WebSocket, sid: Optional[str] = None):
        self.websocket = websocket
        self.sid = sid or uuid.uuid4().hex
        # setup 이후에만 설정됨
        self.user_id: Optional[str] = None
        self.rooms: Set[str] = set()

    @property
    def is_identified(self) -> bool:
        return self.user_id is not None

    async def emit(self, event: str, data: Any = None) -> bool:
        """이 연결로 이벤트 전송. 전송 실패는 로그만 남김 (연결 정리는 수신 루프가 담당)"""
        try:
            await self.websocket.send_json({"event": event, "data": data})
        except Exception as e:
            logger.warning(f"Failed to emit '{event}' to connection {self.sid}: {e}")
            return False
        RELAY_EVENTS_EMITTED.labels(event=event).inc()
        return True

    def __repr__(self):
        return f"<Connection(sid={self.sid}, user_id={self.user_id}, rooms={sorted(self.rooms)})>"


class PresenceRegistry:
    """프로세스 로컬 identity <-> connection 매핑 (마지막 setup 우선)"""

    def __init__(self):
        # {user_id: Connection}
        self.user_connections: Dict[str, Connection] = {}
        # {sid: user_id}
        self.connection_users: Dict[str, str] = {}

    def register(self, user_id: str, connection: Connection):
        """identity에 연결을 매핑. 이전 매핑은 덮어씀"""
        previous = self.user_connections.get(user_id)
        if previous is not None and previous.sid != connection.sid:
            self.connection_users.pop(previous.sid, None)
            logger.info(f"User {user_id} re-registered: connection {previous.sid} replaced by {connection.sid}")

        # 같은 연결이 다른 identity로 다시 setup 한 경우 이전 identity 매핑 제거
        previous_user = self.connection_users.get(connection.sid)
        if previous_user is not None and previous_user != user_id:
            if self.user_connections.get(previous_user) is connection:
                del self.user_connections[previous_user]

        self.user_connections[user_id] = connection
        self.connection_users[connection.sid] = user_id

    def unregister(self, connection: Connection) -> Optional[str]:
        """연결에 매핑된 항목 제거. 없으면 아무 것도 하지 않음"""
        user_id = self.connection_users.pop(connection.sid, None)
        if user_id is not None and self.user_connections.get(user_id) is connection:
            del self.user_connections[user_id]
        return user_id

    def lookup(self, user_id: str) -> Optional[Connection]:
        return self.user_connections.get(user_id)

    def online_users(self) -> List[str]:
        return list(self.user_connections.keys())

    def __len__(self):
        return len(self.user_connections)


class ConnectionManager:
    """서버 프로세스가 소유하는 연결/방 구독 관리자

    방(room)은 저장되지 않는 구독 라벨이며 첫 join 시 생성되고
    마지막 구성원이 나가면 제거됩니다.
    """

    def __init__(self):
        self.presence = PresenceRegistry()
        # {sid: Connection}
        self.connections: Dict[str, Connection] = {}
        # {room_id: {sid, ...}}
        self.rooms: Dict[str, Set[str]] = {}

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self, websocket: WebSocket) -> Connection:
        """수락된 WebSocket을 anonymous 연결로 등록"""
        connection = Connection(websocket)
        self.connections[connection.sid] = connection
        logger.info(f"Connection {connection.sid} opened")
        return connection

    def identify(self, connection: Connection, user_id: str):
        """setup: identity 방 입장 + presence 등록"""
        if connection.user_id is not None and connection.user_id != user_id:
            self.leave(connection, connection.user_id)

        # 이전 연결은 열린 채로 두되 identity 방 전달 대상에서는 제외
        previous = self.presence.lookup(user_id)
        if previous is not None and previous is not connection:
            self.leave(previous, user_id)

        connection.user_id = user_id
        self.join(connection, user_id)
        self.presence.register(user_id, connection)

    def disconnect(self, connection: Connection):
        """presence 해제 + 모든 방에서 퇴장. 여러 번 호출해도 안전"""
        self.presence.unregister(connection)
        self.leave_all(connection)
        self.connections.pop(connection.sid, None)
        logger.info(f"Connection {connection.sid} closed (user={connection.user_id})")
        connection.user_id = None

    # -------------------------------------------------------------------------
    # Room subscription
    # -------------------------------------------------------------------------

    def join(self, connection: Connection, room_id: str):
        self.rooms.setdefault(room_id, set()).add(connection.sid)
        connection.rooms.add(room_id)

    def leave(self, connection: Connection, room_id: str):
        members = self.rooms.get(room_id)
        if members is not None:
            members.discard(connection.sid)
            if not members:
                del self.rooms[room_id]
        connection.rooms.discard(room_id)

    def leave_all(self, connection: Connection):
        for room_id in list(connection.rooms):
            self.leave(connection, room_id)

    def get_room_connections(self, room_id: str) -> List[Connection]:
        return [
            self.connections[sid]
            for sid in self.rooms.get(room_id, ())
            if sid in self.connections
        ]

    def get_room_users(self, room_id: str) -> List[str]:
        """방에 있는 identified 연결의 사용자 목록"""
        return sorted({
            connection.user_id
            for connection in self.get_room_connections(room_id)
            if connection.user_id
        })

    def get_connection_count_in_room(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, ()))

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def emit_to_room(
        self,
        room_id: str,
        event: str,
        data: Any = None,
        skip_sid: Optional[str] = None
    ) -> int:
        """방의 모든 연결에 전송 (skip_sid 연결 제외). 전송 성공 수 반환"""
        delivered = 0
        # 전송 중 disconnect로 집합이 바뀔 수 있으므로 스냅샷 사용
        for connection in self.get_room_connections(room_id):
            if skip_sid is not None and connection.sid == skip_sid:
                continue
            if await connection.emit(event, data):
                delivered += 1
        return delivered

    async def emit_to_rooms(
        self,
        room_ids: Iterable[str],
        event: str,
        data: Any = None,
        skip_sid: Optional[str] = None
    ) -> int:
        delivered = 0
        for room_id in room_ids:
            delivered += await self.emit_to_room(room_id, event, data, skip_sid=skip_sid)
        return delivered

    def is_user_connected(self, user_id: str) -> bool:
        return self.presence.lookup(user_id) is not None

    def get_online_users(self) -> List[str]:
        return self.presence.online_users()

    def get_online_users_count(self) -> int:
        return len(self.presence)
