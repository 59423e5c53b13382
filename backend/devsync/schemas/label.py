from __future__ import annotations

import re
from uuid import UUID

from pydantic import Field, field_validator

from devsync.schemas.common import IdentifierModel, ORMModel

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


class LabelCreate(ORMModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default="#3B82F6")

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Label name cannot be blank")
        return stripped

    @field_validator("color")
    @classmethod
    def validate_color(cls, value: str) -> str:
        candidate = value.strip()
        if not HEX_COLOR_PATTERN.match(candidate):
            raise ValueError("Color must be a hex value like #FF0000")
        return candidate.upper()


class LabelRead(IdentifierModel):
    project_id: UUID
    name: str
    color: str
