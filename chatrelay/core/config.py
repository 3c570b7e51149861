"""
Chat Relay Backend 설정

환경 변수(.env)를 통한 설정 관리
"""

from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()  # .env 파일 로드


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # Application
    app_name: str = "Chat Relay Backend"
    version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 5000

    # Database - MongoDB
    mongo_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "chat_db"

    # JWT
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_hours: int = 720  # 30일

    # CORS
    cors_origins: List[str] = ["*"]

    # WebSocket heartbeat (seconds)
    ws_ping_interval: float = 25.0
    ws_ping_timeout: float = 60.0

    # Relay hardening
    ws_verify_setup_token: bool = False  # setup 시 data.token 검증
    relay_verify_membership: bool = False  # new message 수신자를 저장된 Chat.users로 재계산

    # Logging
    log_dir: str = "logs"
    log_to_file: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # 추가 환경변수 무시


settings = Settings()
