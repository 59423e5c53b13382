from __future__ import annotations

from uuid import UUID

from pydantic import EmailStr, Field, HttpUrl, field_validator

from devsync.schemas.common import IdentifierModel, ORMModel


class UserBase(ORMModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class UserCreate(UserBase):
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Name cannot be blank")
        return stripped


class UserRead(UserBase, IdentifierModel):
    first_name: str
    last_name: str
    avatar: str | None = None


class UserSummary(ORMModel):
    """Acting-user identity carried in API responses and realtime payloads."""

    id: UUID
    first_name: str
    last_name: str
    email: EmailStr
    avatar: str | None = None


class ProfileUpdate(ORMModel):
    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)
    avatar: HttpUrl | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if len(stripped) < 2:
            raise ValueError("Name must be between 2 and 50 characters")
        return stripped
