"""
schemas/common.py

Shared DTOs used across endpoints (error envelope, plain messages, users).

Non-developer summary:
----------------------
This describes the JSON shapes we return, like the {error:{...}} object.
They also feed the OpenAPI document served at /api-docs.json.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorBody(BaseModel):
    code: str = Field(..., description="Stable error code (e.g., ORIGIN_NOT_ALLOWED)")
    message: str = Field(..., description="Human-readable message (safe for UI)")
    requestId: Optional[str] = Field(None, description="Echoed request correlation id")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Optional structured context",
    )


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: ErrorBody


class MessageBody(BaseModel):
    message: str = Field(..., description="Human-readable message")


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="User id")
    name: str = Field(..., description="Display name")
