"""
Chat Relay Backend - FastAPI Application

사용자/채팅방/메시지 REST API와 실시간 메시지 릴레이(WebSocket)를 제공합니다.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatrelay.api import include_routers
from chatrelay.core.config import settings
from chatrelay.core.logging import setup_logging, get_logger
from chatrelay.database import init_databases, close_databases
from chatrelay.middleware.error_handler import (
    ErrorHandlerMiddleware,
    create_http_exception_handler,
    create_validation_exception_handler
)
from chatrelay.middleware.logging_middleware import LoggingMiddleware
from chatrelay.websockets import ConnectionManager, RelayEventHandler

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    # Startup
    logger.info(f"{settings.app_name} starting up...")
    await init_databases()

    yield

    # Shutdown
    logger.info(f"{settings.app_name} shutting down...")
    await close_databases()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    lifespan=lifespan
)

# 프로세스 단위 실시간 상태 (presence + 방 구독)
app.state.connection_manager = ConnectionManager()
app.state.relay_handler = RelayEventHandler(app.state.connection_manager)

# Middleware (마지막에 추가한 것이 가장 바깥)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StarletteHTTPException, create_http_exception_handler())
app.add_exception_handler(RequestValidationError, create_validation_exception_handler())

# Include routers
include_routers(app)

# Prometheus metrics
Instrumentator().instrument(app).expose(app)


@app.get("/")
async def root():
    return {
        "service": settings.app_name,
        "version": settings.version,
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chatrelay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        ws_ping_interval=settings.ws_ping_interval,
        ws_ping_timeout=settings.ws_ping_timeout
    )
