from typing import Optional
from fastapi import APIRouter, Depends, Query
import logging

from chatrelay.api.auth import get_current_user
from chatrelay.models.users import User
from chatrelay.schemas.user import UserListResponse
from chatrelay.services import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["Users"])


@router.get("", response_model=UserListResponse)
async def fetch_all_users(
    search: Optional[str] = Query(default=None, max_length=50, description="사용자명 또는 이메일 검색어"),
    current_user: User = Depends(get_current_user)
) -> UserListResponse:
    """
    사용자 목록을 조회합니다 (자신 제외).

    Args:
        search: 검색어 (없으면 전체 사용자)
        current_user: 현재 사용자

    Returns:
        UserListResponse: 검색된 사용자 목록
    """
    users = await auth_service.search_users(search, exclude_user_id=current_user.id)
    logger.info(f"User search '{search or ''}' by {current_user.id}: {len(users)} results")

    return UserListResponse(
        success=True,
        data=[auth_service.to_user_public(user) for user in users]
    )
