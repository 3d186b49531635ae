"""Request and response schemas for the chat completion endpoint."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatCompletionRequest(BaseModel):
    model: str | None = None
    # forwarded as-is; content may be a string or a list of multimodal parts
    messages: list[dict[str, Any]] = Field(min_length=1)
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    stream: bool | None = False


class ChatCompletionResponse(BaseModel):
    """Upstream completion body with `model` and `object` overridden."""

    model_config = ConfigDict(extra="allow")

    object: str = "chat.completion"
    model: str
    choices: list[dict[str, Any]] = Field(min_length=1)


class ErrorDetail(BaseModel):
    message: str
    type: str
    code: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
