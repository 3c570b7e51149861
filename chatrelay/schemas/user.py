from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field

from .base import CamelModel


class UserRegister(BaseModel):
    """회원가입 요청 스키마"""
    username: str = Field(..., min_length=3, max_length=30, description="사용자명 (3-30자)")
    email: EmailStr = Field(..., description="사용자 이메일")
    password: str = Field(..., min_length=6, description="비밀번호 (6자 이상)")


class UserLogin(BaseModel):
    """로그인 요청 스키마 (username 필드에 이메일도 허용)"""
    username: str = Field(..., min_length=1, description="사용자명 또는 이메일")
    password: str = Field(..., min_length=1, description="비밀번호")


class UserPublic(CamelModel):
    """비밀번호를 제외한 사용자 정보"""
    id: str = Field(..., alias="_id", description="사용자 ID")
    username: str = Field(..., description="사용자명")
    email: str = Field(..., description="이메일")
    is_admin: bool = Field(default=False, description="관리자 여부")
    created_at: Optional[datetime] = Field(None, description="생성일시")


class AuthData(CamelModel):
    id: str = Field(..., alias="_id", description="사용자 ID")
    username: str
    email: str
    token: str = Field(..., description="액세스 토큰")


class AuthResponse(BaseModel):
    """로그인/회원가입 응답 스키마"""
    success: bool = True
    data: AuthData


class UserListResponse(BaseModel):
    """사용자 목록 응답 스키마"""
    success: bool = True
    data: List[UserPublic]
