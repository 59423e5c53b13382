from __future__ import annotations

import re

from pydantic import EmailStr, Field, field_validator

from devsync.schemas.common import ORMModel
from devsync.schemas.user import UserRead

PASSWORD_STRENGTH = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


class LoginRequest(ORMModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TokenResponse(ORMModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class PasswordChange(ORMModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def check_strength(cls, value: str) -> str:
        if not PASSWORD_STRENGTH.match(value):
            raise ValueError("New password must contain at least one lowercase letter, one uppercase letter, and one number")
        return value
