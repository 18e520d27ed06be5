"""FastAPI route definitions for the AIRA assistant API."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from aira.agent import ChatValidationError, sanitize_query, validate_tenant_id
from aira.api.schemas import (
    BasicChatRequest,
    BasicChatResponse,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    LlmChatRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

INTERNAL_ERROR_MESSAGE = "Failed to process chat request. Please try again."


def _get_service(request: Request, name: str):
    """Retrieve a dependency built by the FastAPI lifespan (see ``server.py``)."""
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return service


def _error(status_code: int, error: str, message: str, request_id: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, request_id=request_id)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post(
    "/llm-chat",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def llm_chat(http_request: Request):
    """Tool-calling chat: one decision, at most one tool call and one summary.

    Executor failures are still a 200 with ``metadata.error`` set; only
    invalid input (400) and model-provider failures (500) change the status.
    The body is parsed here rather than by FastAPI so malformed JSON and
    validation problems share the ``{error, message, requestId}`` shape.
    """
    orchestrator = _get_service(http_request, "orchestrator")
    request_id = getattr(http_request.state, "request_id", None) or str(uuid.uuid4())

    raw = await http_request.body()
    if not raw.strip():
        return _error(400, "Bad Request", "Request body is required", request_id)
    try:
        payload = json.loads(raw)
    except ValueError:
        return _error(400, "Bad Request", "Invalid JSON in request body", request_id)
    if not isinstance(payload, dict):
        return _error(400, "Bad Request", "Request body must be a JSON object", request_id)

    try:
        body = LlmChatRequest.model_validate(payload)
    except ValidationError as exc:
        return _error(400, "Validation Error", _describe_validation_error(exc), request_id)

    tenant_id = http_request.headers.get("X-Tenant-Id") or body.tenant_id
    user_id = http_request.headers.get("X-User-Id") or body.user_id

    try:
        # The graph makes blocking Bedrock and HTTP calls
        return await asyncio.to_thread(
            orchestrator.run,
            body.query,
            tenant_id,
            user_id,
            body.history,
            conversation_id=request_id,
        )
    except ChatValidationError as exc:
        logger.info("[%s] Rejected chat request: %s", request_id, exc.message)
        return _error(400, exc.error, exc.message, request_id)
    except Exception:
        logger.exception("[%s] Error processing chat request", request_id)
        return _error(500, "Internal Server Error", INTERNAL_ERROR_MESSAGE, request_id)


@router.post("/chat", response_model=BasicChatResponse)
async def chat(request: BasicChatRequest, http_request: Request):
    """Plain conversation without tools.

    Turns are threaded by ``conversationId`` through the conversation store;
    a new id is issued when the client sends none.
    """
    gateway = _get_service(http_request, "gateway")
    conversations = _get_service(http_request, "conversations")
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        tenant_id = validate_tenant_id(http_request.headers.get("X-Tenant-Id"))
    except ChatValidationError as exc:
        return _error(400, exc.error, exc.message, request_id)

    message = sanitize_query(request.message)
    if not message:
        return _error(400, "Validation Error", "Message is empty after removing unsupported content", request_id)

    conversation_id = request.conversation_id or f"conv_{uuid.uuid4().hex}"
    history = conversations.get(tenant_id, conversation_id)
    user_turn = {"role": "user", "content": message}

    try:
        reply = await asyncio.to_thread(gateway.chat, [*history, user_turn])
    except Exception:
        logger.exception("[%s] Error processing basic chat request", request_id)
        return _error(500, "Internal Server Error", INTERNAL_ERROR_MESSAGE, request_id)

    conversations.append(tenant_id, conversation_id, user_turn, {"role": "assistant", "content": reply})
    return BasicChatResponse(
        reply=reply,
        conversation_id=conversation_id,
        timestamp=datetime.now(UTC).isoformat(),
    )
