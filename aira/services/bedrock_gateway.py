"""Model gateway: the single point of contact with the Bedrock-hosted model.

Three call sites:

* ``decide``    — conversation + tool catalog → text reply or one tool call.
                  Retries once on the fallback model when the provider fails.
* ``summarize`` — replays the executed tool call and its result so the model
                  can write a user-facing confirmation.  Lower temperature,
                  no fallback retry.
* ``chat``      — plain conversation without tools (basic chat endpoint).

The LangChain chat models are built once by ``create_bedrock_gateway`` and
injected, so tests can substitute any object with an ``invoke`` method.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from langchain_aws import ChatBedrockConverse
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.runnables import Runnable
from pydantic import BaseModel

from aira.config import (
    AWS_REGION,
    BEDROCK_FALLBACK_MODEL,
    BEDROCK_MAX_TOKENS,
    BEDROCK_MODEL_ID,
    BEDROCK_SUMMARY_TEMPERATURE,
    BEDROCK_TEMPERATURE,
)
from aira.prompts import BASIC_CHAT_PROMPT, get_summary_prompt, get_system_prompt
from aira.services.metrics import metrics
from aira.tools.catalog import tool_schemas

logger = logging.getLogger(__name__)


# ── Result types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolInvocation:
    """The model's request to call one catalog tool."""

    id: str
    name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class ModelDecision:
    content: str | None
    tool_invocation: ToolInvocation | None
    stop_reason: str | None
    usage: dict[str, int] | None
    model: str


@dataclass(frozen=True)
class ModelReply:
    content: str | None
    usage: dict[str, int] | None
    model: str


# ── Message helpers ──────────────────────────────────────────────────


def to_langchain_messages(messages: Sequence[Mapping[str, Any]]) -> list[BaseMessage]:
    """Convert ``{role, content}`` history to LangChain messages.

    System messages are dropped: the system prompt travels separately.
    """
    converted: list[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content") or ""
        if role == "user":
            converted.append(HumanMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
    return converted


def _text_of(message: BaseMessage) -> str | None:
    """Concatenate the text blocks of a model response."""
    content = message.content
    if isinstance(content, str):
        text = content
    else:
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        text = "".join(parts)
    return text.strip() or None


def _usage_of(message: BaseMessage) -> dict[str, int] | None:
    usage = getattr(message, "usage_metadata", None)
    if not usage:
        return None
    return {
        "inputTokens": usage.get("input_tokens", 0),
        "outputTokens": usage.get("output_tokens", 0),
        "totalTokens": usage.get("total_tokens", 0),
    }


def _stop_reason_of(message: BaseMessage) -> str | None:
    metadata = getattr(message, "response_metadata", None) or {}
    return metadata.get("stopReason") or metadata.get("stop_reason")


def _first_tool_invocation(message: BaseMessage) -> ToolInvocation | None:
    # One tool call per turn; anything after the first is ignored.
    tool_calls = getattr(message, "tool_calls", None) or []
    if not tool_calls:
        return None
    if len(tool_calls) > 1:
        logger.warning(
            "Model returned %d tool calls; using only %s",
            len(tool_calls), tool_calls[0].get("name"),
        )
    call = tool_calls[0]
    return ToolInvocation(
        id=call.get("id") or f"tool_{uuid.uuid4().hex[:12]}",
        name=call["name"],
        input=dict(call.get("args") or {}),
    )


# ── LLM builders ────────────────────────────────────────────────────


def _build_llm(model_id: str, temperature: float) -> ChatBedrockConverse:
    return ChatBedrockConverse(
        model=model_id,
        region_name=AWS_REGION,
        temperature=temperature,
        max_tokens=BEDROCK_MAX_TOKENS,
    )


def _build_decision_llm(model_id: str) -> Runnable:
    """Decision model with the full tool catalog bound."""
    return _build_llm(model_id, BEDROCK_TEMPERATURE).bind_tools(tool_schemas())


def _build_summary_llm() -> Runnable:
    """Summary model.

    Tools stay bound because the replayed transcript contains tool-use and
    tool-result blocks, which Bedrock only accepts alongside a tool config.
    """
    return _build_llm(BEDROCK_MODEL_ID, BEDROCK_SUMMARY_TEMPERATURE).bind_tools(tool_schemas())


def _build_chat_llm() -> ChatBedrockConverse:
    """Tool-less model for the basic chat feature."""
    return _build_llm(BEDROCK_MODEL_ID, BEDROCK_TEMPERATURE)


# ── Gateway ──────────────────────────────────────────────────────────


class BedrockGateway:
    """Wraps the decision, summary and chat models."""

    def __init__(
        self,
        decision_llm: Runnable,
        summary_llm: Runnable,
        chat_llm: Runnable,
        *,
        model_id: str,
        fallback_llm: Runnable | None = None,
        fallback_model_id: str | None = None,
    ) -> None:
        self._decision_llm = decision_llm
        self._summary_llm = summary_llm
        self._chat_llm = chat_llm
        self._fallback_llm = fallback_llm
        self.model_id = model_id
        self.fallback_model_id = fallback_model_id

    def _invoke(self, llm: Runnable, prompt: list[BaseMessage], operation: str) -> BaseMessage:
        t0 = time.perf_counter()
        try:
            response = llm.invoke(prompt)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "bedrock", operation, error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("bedrock", operation, latency_ms=elapsed)
        logger.debug("Bedrock %s responded in %.0fms", operation, elapsed)
        return response

    def decide(self, messages: Sequence[Mapping[str, Any]], tenant_id: str) -> ModelDecision:
        """Ask the model whether to answer directly or call a tool."""
        prompt = [SystemMessage(content=get_system_prompt(tenant_id)), *to_langchain_messages(messages)]
        logger.info(
            "Invoking %s for function decision (%d messages)", self.model_id, len(prompt) - 1,
        )

        model = self.model_id
        try:
            response = self._invoke(self._decision_llm, prompt, "decide")
        except Exception as exc:
            if self._fallback_llm is None:
                raise
            logger.warning(
                "Decision call on %s failed (%s); retrying with fallback model %s",
                self.model_id, type(exc).__name__, self.fallback_model_id,
            )
            model = self.fallback_model_id or self.model_id
            response = self._invoke(self._fallback_llm, prompt, "decide_fallback")

        decision = ModelDecision(
            content=_text_of(response),
            tool_invocation=_first_tool_invocation(response),
            stop_reason=_stop_reason_of(response),
            usage=_usage_of(response),
            model=model,
        )
        logger.info(
            "Decision received (model=%s, stop=%s, tool=%s)",
            model, decision.stop_reason,
            decision.tool_invocation.name if decision.tool_invocation else None,
        )
        return decision

    def summarize(
        self,
        original_query: str,
        tool_name: str,
        tool_result: BaseModel | Mapping[str, Any],
        history: Sequence[Mapping[str, Any]],
        tenant_id: str,
        tool_input: Mapping[str, Any] | None = None,
    ) -> ModelReply:
        """Turn a successful tool result into a confirmation for the user."""
        call_id = f"tool_{uuid.uuid4().hex[:12]}"
        payload = (
            tool_result.model_dump(exclude_none=True)
            if isinstance(tool_result, BaseModel)
            else dict(tool_result)
        )
        prompt: list[BaseMessage] = [
            SystemMessage(content=get_summary_prompt(tenant_id)),
            *to_langchain_messages(history),
            HumanMessage(content=original_query),
            AIMessage(
                content="",
                tool_calls=[{"name": tool_name, "args": dict(tool_input or {}), "id": call_id}],
            ),
            ToolMessage(content=json.dumps(payload, default=str), tool_call_id=call_id),
        ]
        logger.info("Generating summary for %s", tool_name)
        response = self._invoke(self._summary_llm, prompt, "summarize")
        return ModelReply(content=_text_of(response), usage=_usage_of(response), model=self.model_id)

    def chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        system_prompt: str | None = None,
    ) -> str:
        """Tool-less conversational reply."""
        prompt = [
            SystemMessage(content=system_prompt or BASIC_CHAT_PROMPT),
            *to_langchain_messages(messages),
        ]
        response = self._invoke(self._chat_llm, prompt, "chat")
        return _text_of(response) or ""


def create_bedrock_gateway() -> BedrockGateway:
    """Build the gateway from configuration.

    The fallback model is only wired when it differs from the primary.
    """
    fallback_llm = None
    fallback_id = None
    if BEDROCK_FALLBACK_MODEL and BEDROCK_FALLBACK_MODEL != BEDROCK_MODEL_ID:
        fallback_llm = _build_decision_llm(BEDROCK_FALLBACK_MODEL)
        fallback_id = BEDROCK_FALLBACK_MODEL

    gateway = BedrockGateway(
        decision_llm=_build_decision_llm(BEDROCK_MODEL_ID),
        summary_llm=_build_summary_llm(),
        chat_llm=_build_chat_llm(),
        model_id=BEDROCK_MODEL_ID,
        fallback_llm=fallback_llm,
        fallback_model_id=fallback_id,
    )
    logger.debug(
        "Bedrock gateway ready (primary: %s, fallback: %s, region: %s)",
        BEDROCK_MODEL_ID, fallback_id, AWS_REGION,
    )
    return gateway
