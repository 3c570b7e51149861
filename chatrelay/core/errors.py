"""
REST 에러 응답 형식과 예외 계층

모든 HTTP 에러는 {error, message, details, status_code} 형식으로 응답합니다.
실시간 릴레이 이벤트는 예외를 클라이언트에 돌려주지 않으므로 여기서 다루지 않습니다.
"""

from typing import Optional, Dict, Any, List
from fastapi import HTTPException, status
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """표준 에러 응답 모델"""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    status_code: int


class ValidationError(BaseModel):
    """요청 필드 하나의 검증 실패"""
    field: str
    message: str
    value: Optional[Any] = None


class ValidationErrorResponse(BaseModel):
    error: str = "validation_error"
    message: str
    validation_errors: List[ValidationError]
    status_code: int


# =============================================================================
# 예외 계층 (하위 클래스는 status_code / error 만 정의)
# =============================================================================

class BaseCustomException(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_server_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(status_code=type(self).status_code, detail=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return create_error_response(
            self.error, self.message, self.status_code, self.details
        ).model_dump()


class AuthenticationException(BaseCustomException):
    """토큰 누락/만료, 잘못된 로그인 정보"""
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "authentication_error"


class AuthorizationException(BaseCustomException):
    """채팅방 멤버가 아니거나 그룹 관리자가 아님"""
    status_code = status.HTTP_403_FORBIDDEN
    error = "authorization_error"


class ResourceNotFoundException(BaseCustomException):
    status_code = status.HTTP_404_NOT_FOUND
    error = "resource_not_found"

    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{resource} not found", details or {"resource": resource})


class ConflictException(BaseCustomException):
    """username / email 중복"""
    status_code = status.HTTP_409_CONFLICT
    error = "resource_conflict"


class BusinessLogicException(BaseCustomException):
    """필수 필드 누락, 그룹 규칙 위반 등"""
    status_code = status.HTTP_400_BAD_REQUEST
    error = "business_logic_error"


def create_error_response(
    error: str,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    return ErrorResponse(error=error, message=message, status_code=status_code, details=details)


def create_validation_error_response(
    message: str,
    validation_errors: List[ValidationError]
) -> ValidationErrorResponse:
    return ValidationErrorResponse(
        message=message,
        validation_errors=validation_errors,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY
    )


# =============================================================================
# 사용자 / 채팅방 에러 팩토리
# =============================================================================

def user_not_found_error(user_id: Optional[str] = None):
    return ResourceNotFoundException("User", {"user_id": user_id} if user_id else None)


def chat_not_found_error(chat_id: Optional[str] = None):
    return ResourceNotFoundException("Chat", {"chat_id": chat_id} if chat_id else None)


def invalid_credentials_error():
    return AuthenticationException("Invalid username or password")


def invalid_token_error():
    return AuthenticationException("Invalid or expired token")


def email_already_exists_error():
    return ConflictException("Email already registered")


def username_already_exists_error():
    return ConflictException("Username already taken")


def admin_only_error(action: str):
    """그룹 관리자 전용 작업 (rename / add / remove / delete)"""
    return AuthorizationException(f"Only admin can {action}")


def not_chat_member_error():
    """클라이언트는 details.code 로 채팅방에서 나가진 상태를 구분"""
    return AuthorizationException(
        "You are no longer a member of this conversation",
        details={"code": "NOT_MEMBER"}
    )
