"""
User service layer for MongoDB operations.

Handles user lookup, registration, credential checks and search.
"""

import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from beanie.operators import In, NE, Or, RegEx

from chatrelay.models.users import User
from chatrelay.schemas.user import UserPublic
from chatrelay.utils.auth import get_password_hash, verify_password
from chatrelay.utils.ids import to_object_id, to_object_ids


# =============================================================================
# User Lookup
# =============================================================================

async def find_user_by_id(user_id) -> Optional[User]:
    """사용자 ID로 조회"""
    object_id = to_object_id(user_id)
    if object_id is None:
        return None
    return await User.get(object_id)


async def find_user_by_login(identifier: str) -> Optional[User]:
    """사용자명 또는 이메일로 조회"""
    identifier = identifier.strip()
    return await User.find_one(
        Or(User.username == identifier, User.email == identifier.lower())
    )


async def find_users_by_ids(user_ids: Iterable) -> Dict[str, User]:
    """여러 사용자를 한 번에 조회 ({str(id): User})"""
    object_ids = list(set(to_object_ids(user_ids)))
    if not object_ids:
        return {}
    users = await User.find(In(User.id, object_ids)).to_list()
    return {str(user.id): user for user in users}


async def is_username_exists(username: str) -> bool:
    return await User.find_one(User.username == username.strip()) is not None


async def is_email_exists(email: str) -> bool:
    return await User.find_one(User.email == email.strip().lower()) is not None


# =============================================================================
# Registration & Authentication
# =============================================================================

async def create_user(username: str, email: str, password: str) -> User:
    """새 사용자 생성 (비밀번호는 bcrypt 해시로 저장)"""
    user = User(
        username=username.strip(),
        email=email.strip().lower(),
        password_hash=get_password_hash(password),
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )
    await user.insert()
    return user


async def authenticate_user(identifier: str, password: str) -> Optional[User]:
    """사용자명/이메일 + 비밀번호 인증"""
    user = await find_user_by_login(identifier)
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# =============================================================================
# Search
# =============================================================================

async def search_users(keyword: Optional[str], exclude_user_id) -> List[User]:
    """사용자명/이메일 부분 일치 검색 (대소문자 무시, 본인 제외)"""
    conditions = [NE(User.id, to_object_id(exclude_user_id))]

    if keyword:
        pattern = re.escape(keyword.strip())
        conditions.append(
            Or(RegEx(User.username, pattern, "i"), RegEx(User.email, pattern, "i"))
        )

    return await User.find(*conditions).to_list()


def to_user_public(user: User) -> UserPublic:
    return UserPublic(
        id=str(user.id),
        username=user.username,
        email=user.email,
        is_admin=user.is_admin,
        created_at=user.created_at
    )
