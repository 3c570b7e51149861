import logging
import traceback
from typing import Callable
from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError
)

from chatrelay.core.errors import (
    BaseCustomException,
    ValidationError,
    create_error_response,
    create_validation_error_response
)
from chatrelay.core.config import settings

logger = logging.getLogger(__name__)


def _validation_errors(errors) -> list:
    validation_errors = []
    for error in errors:
        field_name = ".".join(str(loc) for loc in error["loc"])
        value = error.get("input")
        validation_errors.append(
            ValidationError(
                field=field_name,
                message=error["msg"],
                value=value if isinstance(value, (str, int, float, bool)) else None
            )
        )
    return validation_errors


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    통합 에러 처리 미들웨어

    라우터 밖으로 새어 나온 예외를 표준화된 에러 응답으로 변환합니다.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            response = await call_next(request)
            return response

        except BaseCustomException as e:
            return JSONResponse(
                status_code=e.status_code,
                content=e.to_dict()
            )

        except PydanticValidationError as e:
            error_response = create_validation_error_response(
                "Request validation failed",
                _validation_errors(e.errors())
            )

            return JSONResponse(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                content=error_response.model_dump()
            )

        except DuplicateKeyError as e:
            # 고유 인덱스 위반 (username / email)
            error_detail = str(e)
            if "email" in error_detail.lower():
                message = "Email already exists"
            elif "username" in error_detail.lower():
                message = "Username already exists"
            else:
                message = "Duplicate entry detected"

            error_response = create_error_response(
                "duplicate_entry",
                message,
                status.HTTP_409_CONFLICT,
                {"constraint": "unique"}
            )

            return JSONResponse(
                status_code=error_response.status_code,
                content=error_response.model_dump()
            )

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            error_response = create_error_response(
                "mongodb_connection_error",
                "MongoDB connection failed",
                status.HTTP_503_SERVICE_UNAVAILABLE,
                {"detail": str(e) if settings.debug else None}
            )

            logger.error(f"MongoDB connection error: {type(e).__name__}: {str(e)}")

            return JSONResponse(
                status_code=error_response.status_code,
                content=error_response.model_dump()
            )

        except OperationFailure as e:
            # 권한, 유효하지 않은 쿼리 등
            error_response = create_error_response(
                "mongodb_operation_error",
                "MongoDB operation failed",
                status.HTTP_400_BAD_REQUEST,
                {"detail": str(e) if settings.debug else None}
            )

            logger.error(f"MongoDB operation error: {str(e)}")

            return JSONResponse(
                status_code=error_response.status_code,
                content=error_response.model_dump()
            )

        except ValueError as e:
            error_response = create_error_response(
                "value_error",
                str(e),
                status.HTTP_400_BAD_REQUEST
            )

            return JSONResponse(
                status_code=error_response.status_code,
                content=error_response.model_dump()
            )

        except Exception as e:
            error_detail = None
            if settings.debug:
                error_detail = {
                    "exception": str(e),
                    "type": type(e).__name__,
                    "traceback": traceback.format_exc()
                }

            error_response = create_error_response(
                "internal_server_error",
                "An unexpected error occurred",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                error_detail
            )

            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)

            return JSONResponse(
                status_code=error_response.status_code,
                content=error_response.model_dump()
            )


def create_http_exception_handler():
    """FastAPI HTTPException 핸들러 생성"""
    async def http_exception_handler(request: Request, exc):
        """HTTPException을 표준 형식으로 변환"""

        # 커스텀 예외는 그대로 반환
        if isinstance(exc, BaseCustomException):
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_dict()
            )

        error_response = create_error_response(
            "http_error",
            exc.detail if isinstance(exc.detail, str) else "HTTP error occurred",
            exc.status_code,
            {"detail": exc.detail} if not isinstance(exc.detail, str) else None
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump()
        )

    return http_exception_handler


def create_validation_exception_handler():
    """요청 바디/쿼리 검증 실패를 validation_error 응답으로 변환"""
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        error_response = create_validation_error_response(
            "Request validation failed",
            _validation_errors(exc.errors())
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_response.model_dump()
        )

    return validation_exception_handler
