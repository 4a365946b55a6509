"""
Pydantic schemas for user-related request/response validation.
"""

import re
import uuid

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.schemas.base import CamelModel

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"\d")


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=32)
    name: str = Field(..., min_length=2, max_length=50)

    @field_validator("password")
    @classmethod
    def password_has_letter_and_digit(cls, value: str) -> str:
        if not (_LETTER.search(value) and _DIGIT.search(value)):
            raise ValueError("Password must contain at least one letter and one number")
        return value


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(CamelModel):
    refresh_token: str


class UserResponse(CamelModel):
    id: uuid.UUID
    email: str
    name: str


class AuthResponse(CamelModel):
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
