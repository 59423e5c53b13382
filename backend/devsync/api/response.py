from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field


class ResponseEnvelope(BaseModel):
    success: bool = Field(default=True)
    code: str = Field(default="SUCCESS")
    message: str = Field(default="Success")
    data: Any | None = None


def success_response(data: Any | None = None, message: str = "Success", code: str = "SUCCESS") -> dict[str, Any]:
    return {"success": True, "code": code, "message": message, "data": jsonable_encoder(data, by_alias=True)}
