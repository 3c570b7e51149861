import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordBearer

from chatrelay.core.errors import (
    user_not_found_error,
    invalid_credentials_error,
    email_already_exists_error,
    username_already_exists_error,
    invalid_token_error
)
from chatrelay.core.logging import log_authentication_event, user_id_var
from chatrelay.models.users import User
from chatrelay.schemas.user import UserRegister, UserLogin, AuthResponse, AuthData
from chatrelay.services import auth_service
from chatrelay.utils.auth import create_user_token, decode_access_token

logger = logging.getLogger(__name__)

# OAuth2 설정 (로그인은 JSON 바디, Swagger "Authorize"에는 토큰 직접 입력)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/user/login", auto_error=False)
router = APIRouter(prefix="/user", tags=["Authentication"])


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme)
) -> User:
    """
    현재 인증된 사용자 조회

    Authorization: Bearer <token> 의 subject(사용자 ID)로 사용자를 찾습니다.
    """
    if not token:
        raise invalid_token_error()

    payload = decode_access_token(token)
    if not payload:
        raise invalid_token_error()

    user_id = payload.get("sub")
    if not user_id:
        raise invalid_token_error()

    user = await auth_service.find_user_by_id(user_id)
    if not user:
        raise user_not_found_error(user_id)

    user_id_var.set(str(user.id))
    request.state.user_id = str(user.id)
    return user


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        success=True,
        data=AuthData(
            id=str(user.id),
            username=user.username,
            email=user.email,
            token=create_user_token(str(user.id))
        )
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserRegister) -> AuthResponse:
    """
    사용자 회원가입

    - **username**: 3-30자, 중복 불가
    - **email**: 이메일 형식, 중복 불가 (소문자로 저장)
    - **password**: 6자 이상
    """
    if await auth_service.is_email_exists(user_data.email):
        log_authentication_event(logger, "register", identifier=user_data.email, success=False)
        raise email_already_exists_error()

    if await auth_service.is_username_exists(user_data.username):
        log_authentication_event(logger, "register", identifier=user_data.username, success=False)
        raise username_already_exists_error()

    user = await auth_service.create_user(
        username=user_data.username,
        email=user_data.email,
        password=user_data.password
    )
    log_authentication_event(logger, "register", user_id=str(user.id), identifier=user.username)

    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
async def login(user_data: UserLogin) -> AuthResponse:
    """
    사용자 로그인

    username 필드에는 사용자명 또는 이메일을 입력할 수 있습니다.
    응답의 data 객체는 그대로 실시간 채널 `setup` 이벤트에 사용됩니다.
    """
    user = await auth_service.authenticate_user(user_data.username, user_data.password)
    if not user:
        log_authentication_event(logger, "login", identifier=user_data.username, success=False)
        raise invalid_credentials_error()

    log_authentication_event(logger, "login", user_id=str(user.id), identifier=user.username)
    return _auth_response(user)
