"""Pydantic schemas for the FastAPI endpoints.

Wire format is camelCase; Python attributes are snake_case.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aira.config import MAX_QUERY_LENGTH


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(BaseModel):
    """One prior turn of the conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


# ── Tool-calling chat ────────────────────────────────────────────────


class LlmChatRequest(_CamelModel):
    """Body of ``POST /api/llm-chat``.

    ``query`` is optional here so a missing query is reported by the
    orchestrator's own validation, with the same 400 shape as a bad tenant.
    """

    query: str | None = None
    user_id: str | None = None
    tenant_id: str | None = None
    history: list[ChatMessage] = Field(default_factory=list)
    context: dict[str, Any] | None = None


class TokenUsage(_CamelModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class SuggestedAction(_CamelModel):
    label: str
    action: str
    params: dict[str, Any] = Field(default_factory=dict)


class ChatMetadata(_CamelModel):
    tool: str | None = None
    tool_result: dict[str, Any] | None = None
    model: str
    tokens_used: TokenUsage | None = None
    latency_ms: int
    error: bool | None = None


class ChatResponse(_CamelModel):
    """Envelope returned for every processed chat request."""

    conversation_id: str
    reply: str
    metadata: ChatMetadata
    suggested_actions: list[SuggestedAction] | None = None
    timestamp: str


class ErrorResponse(_CamelModel):
    error: str
    message: str
    request_id: str


# ── Basic chat ───────────────────────────────────────────────────────


class BasicChatRequest(_CamelModel):
    """Body of ``POST /api/chat`` (no tools)."""

    message: str = Field(..., min_length=1, max_length=MAX_QUERY_LENGTH)
    conversation_id: str | None = Field(default=None, max_length=100)


class BasicChatResponse(_CamelModel):
    reply: str
    conversation_id: str
    timestamp: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "aira-assistant"
