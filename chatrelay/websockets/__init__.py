"""
WebSocket 실시간 릴레이 모듈

REST로 이미 저장된 상태에 대한 알림만 전달하며 채팅 데이터를 직접 저장하지 않습니다
(읽음 처리 $addToSet 제외).

주요 구성 요소:
- connection_manager: 연결, presence 레지스트리, 방 구독 관리
- auth: setup 이벤트 identity 검증
- handlers: 이벤트 상태 머신 및 브로드캐스트
"""

from .connection_manager import Connection, ConnectionManager, PresenceRegistry
from .auth import verify_setup_identity
from .handlers import RelayEventHandler

__all__ = [
    "Connection",
    "ConnectionManager",
    "PresenceRegistry",
    "verify_setup_identity",
    "RelayEventHandler"
]
