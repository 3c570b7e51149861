"""
HTTP 요청 로깅 미들웨어

요청마다 request_id 를 발급하고 끝날 때 api_call 한 줄을 남깁니다.
WebSocket 프레임은 여기를 지나지 않으며 websockets.handlers 가 직접 로깅합니다.
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from chatrelay.core.logging import (
    get_logger,
    set_request_context,
    clear_request_context,
    log_api_call
)

logger = get_logger(__name__)

# path prefix -> channel
CHANNELS = (
    ("/ws", "relay"),
    ("/api", "rest"),
)


def request_channel(path: str) -> str:
    """릴레이 상태 조회(/ws/...)와 REST(/api/...)를 구분, 나머지는 ops (health, metrics)"""
    for prefix, channel in CHANNELS:
        if path == prefix or path.startswith(prefix + "/"):
            return channel
    return "ops"


class LoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        channel = request_channel(request.url.path)
        start_time = time.time()
        set_request_context(request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "event_type": "api_error",
                    "request_id": request_id,
                    "channel": channel,
                    "user_id": getattr(request.state, "user_id", None),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            raise
        else:
            # get_current_user 가 인증에 성공하면 request.state.user_id 를 채움
            log_api_call(
                logger,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=(time.time() - start_time) * 1000,
                request_id=request_id,
                channel=channel,
                user_id=getattr(request.state, "user_id", None),
                client_ip=request.client.host if request.client else None
            )
            return response
        finally:
            clear_request_context()
