import os

# 테스트 중에는 로그 파일을 만들지 않음
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
import pytest_asyncio
from datetime import datetime
from types import SimpleNamespace
from typing import AsyncGenerator, List
from httpx import AsyncClient, ASGITransport
from beanie import PydanticObjectId
from pymongo.errors import ConnectionFailure

from chatrelay.main import app
from chatrelay.api.auth import get_current_user
from chatrelay.models.chats import Chat
from chatrelay.models.messages import Message
from chatrelay.models.users import User
from chatrelay.schemas.chat import ChatResponse
from chatrelay.schemas.message import MessageResponse
from chatrelay.schemas.user import UserPublic
from chatrelay.websockets.connection_manager import ConnectionManager
from chatrelay.websockets.handlers import RelayEventHandler


class FakeWebSocket:
    """send_json 으로 보낸 프레임을 기록하는 WebSocket 대역"""

    def __init__(self, fail: bool = False):
        self.frames: List[dict] = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.frames]


class FakeMessageStore:
    """update_message_read_by / find_message_by_id 만 제공하는 인메모리 저장소 ($addToSet 의미)"""

    def __init__(self):
        self.messages = {}
        self.fail = False
        self.update_calls = 0

    def add(self, message_id: str, read_by=None):
        self.messages[message_id] = SimpleNamespace(id=message_id, read_by=list(read_by or []))

    async def update_message_read_by(self, message_id, user_id):
        self.update_calls += 1
        if self.fail:
            raise ConnectionFailure("store unavailable")
        message = self.messages.get(message_id)
        if message is None:
            return None
        if user_id not in message.read_by:
            message.read_by.append(user_id)
        return message

    async def find_message_by_id(self, message_id):
        return self.messages.get(message_id)


class FakeChatStore:
    def __init__(self):
        self.chats = {}

    def add(self, chat_id: str, users: List[str]):
        self.chats[chat_id] = Chat.model_construct(
            id=chat_id,
            chat_name="chat",
            is_group_chat=False,
            users=users,
            group_admin=None,
            latest_message=None
        )

    async def find_chat_by_id(self, chat_id):
        return self.chats.get(chat_id)


# =============================================================================
# 실시간 릴레이 fixture
# =============================================================================

@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def message_store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def chat_store() -> FakeChatStore:
    return FakeChatStore()


@pytest.fixture
def relay(manager, message_store, chat_store) -> RelayEventHandler:
    return RelayEventHandler(
        manager,
        store=message_store,
        chat_store=chat_store,
        verify_membership=False
    )


@pytest.fixture
def connect(manager):
    """manager 에 FakeWebSocket 연결을 만들고, user_id 가 주어지면 setup 까지 수행"""
    def _connect(user_id=None, fail=False):
        connection = manager.connect(FakeWebSocket(fail=fail))
        if user_id is not None:
            manager.identify(connection, user_id)
        return connection
    return _connect


# =============================================================================
# REST fixture
# =============================================================================

def make_user(username: str) -> User:
    """DB 초기화 없이 사용할 수 있는 User 문서"""
    return User.model_construct(
        id=PydanticObjectId(),
        username=username,
        email=f"{username}@example.com",
        password_hash="not-a-real-hash",
        is_admin=False,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )


def make_chat(users, is_group_chat=False, group_admin=None, chat_name="sender") -> Chat:
    return Chat.model_construct(
        id=PydanticObjectId(),
        chat_name=chat_name,
        is_group_chat=is_group_chat,
        users=[user.id for user in users],
        group_admin=group_admin.id if group_admin else None,
        latest_message=None,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )


def make_message(sender: User, chat: Chat, content: str = "hello") -> Message:
    return Message.model_construct(
        id=PydanticObjectId(),
        sender=sender.id,
        content=content,
        chat=chat.id,
        read_by=[sender.id],
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )


def to_public(user: User) -> UserPublic:
    return UserPublic(
        id=str(user.id),
        username=user.username,
        email=user.email,
        is_admin=user.is_admin,
        created_at=user.created_at
    )


def chat_response(chat: Chat, users: List[User], admin: User = None) -> ChatResponse:
    return ChatResponse(
        id=str(chat.id),
        chat_name=chat.chat_name,
        is_group_chat=chat.is_group_chat,
        users=[to_public(user) for user in users],
        group_admin=to_public(admin) if admin else None,
        created_at=chat.created_at,
        updated_at=chat.updated_at
    )


def message_response(message: Message, sender: User, chat: ChatResponse) -> MessageResponse:
    return MessageResponse(
        id=str(message.id),
        sender=to_public(sender),
        content=message.content,
        chat=chat,
        read_by=[to_public(sender)],
        created_at=message.created_at,
        updated_at=message.updated_at
    )


@pytest.fixture
def factories():
    """테스트 모듈에서 쓰는 문서/응답 생성 함수 묶음"""
    return SimpleNamespace(
        user=make_user,
        chat=make_chat,
        message=make_message,
        public=to_public,
        chat_response=chat_response,
        message_response=message_response
    )


@pytest.fixture
def current_user() -> User:
    return make_user("alice")


@pytest.fixture
def other_user() -> User:
    return make_user("bob")


@pytest.fixture
def third_user() -> User:
    return make_user("carol")


@pytest_asyncio.fixture
async def client(current_user) -> AsyncGenerator[AsyncClient, None]:
    """current_user 로 인증된 비동기 HTTP 클라이언트"""
    app.dependency_overrides[get_current_user] = lambda: current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anonymous_client() -> AsyncGenerator[AsyncClient, None]:
    """인증 헤더 없이 요청하는 클라이언트"""
    app.dependency_overrides.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
