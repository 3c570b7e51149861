from .user import (
    UserRegister,
    UserLogin,
    UserPublic,
    AuthData,
    AuthResponse,
    UserListResponse
)

from .chat import (
    AccessChatRequest,
    GroupChatCreate,
    RenameGroupRequest,
    GroupMemberRequest,
    ChatIdRequest,
    LatestMessage,
    ChatResponse,
    DeleteGroupResponse
)

from .message import (
    SendMessageRequest,
    MessageResponse
)

from .realtime import (
    RelayFrame,
    SetupPayload,
    NewMessagePayload,
    MessageReadPayload,
    ReadUpdate
)

__all__ = [
    # User schemas
    "UserRegister",
    "UserLogin",
    "UserPublic",
    "AuthData",
    "AuthResponse",
    "UserListResponse",

    # Chat schemas
    "AccessChatRequest",
    "GroupChatCreate",
    "RenameGroupRequest",
    "GroupMemberRequest",
    "ChatIdRequest",
    "LatestMessage",
    "ChatResponse",
    "DeleteGroupResponse",

    # Message schemas
    "SendMessageRequest",
    "MessageResponse",

    # Realtime relay schemas
    "RelayFrame",
    "SetupPayload",
    "NewMessagePayload",
    "MessageReadPayload",
    "ReadUpdate"
]
