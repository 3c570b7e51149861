import logging
from typing import Optional

from chatrelay.core.config import settings
from chatrelay.utils.auth import get_token_subject

logger = logging.getLogger(__name__)


def verify_setup_identity(user_id: str, token: Optional[str]) -> bool:
    """
    setup 이벤트의 identity를 검증합니다.

    WS_VERIFY_SETUP_TOKEN 이 꺼져 있으면 페이로드의 `_id`를 그대로 신뢰하고,
    켜져 있으면 `data.token`의 subject가 `_id`와 같아야 합니다.

    Args:
        user_id: setup 페이로드의 data._id
        token: setup 페이로드의 data.token (로그인 응답의 토큰)

    Returns:
        bool: identity를 받아들일 수 있으면 True
    """
    if not settings.ws_verify_setup_token:
        return True

    if not token:
        logger.warning(f"Setup for user {user_id} rejected: token missing")
        return False

    subject = get_token_subject(token)
    if subject is None:
        logger.warning(f"Setup for user {user_id} rejected: invalid or expired token")
        return False

    if subject != user_id:
        logger.warning(f"Setup for user {user_id} rejected: token subject {subject} does not match")
        return False

    return True
