"""LangGraph-based chat orchestrator for the AIRA assistant.

Architecture:
  Each request runs a small LangGraph StateGraph exactly once:

    1. **decide**    — the model sees the conversation and the tool catalog
                       and either answers or asks for one tool call
    2. **execute**   — the function executor runs the requested tool
    3. **summarize** — the model turns a successful tool result into a
                       confirmation for the user

  Routing:
    decide → (no tool call?)  → END
    decide → (tool call?)     → execute → (error?)   → END
                                        → (success?) → summarize → END

  No node is revisited, so a request makes at most two model calls and one
  tool call.  Nothing is checkpointed: history comes in with each request.

``ChatOrchestrator.run`` wraps the graph with input validation,
sanitization, timing and response construction.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import UTC, datetime
from typing import Any, Iterable, Mapping

from langgraph.graph import END, StateGraph
from pydantic import BaseModel
from typing_extensions import TypedDict

from aira.api.schemas import ChatMetadata, ChatResponse, SuggestedAction, TokenUsage
from aira.config import MAX_QUERY_LENGTH
from aira.services.bedrock_gateway import BedrockGateway, ModelDecision, ModelReply
from aira.tools.executor import UNKNOWN_FUNCTION, FunctionExecutor, FunctionResult

logger = logging.getLogger(__name__)

NO_TOOL_FALLBACK_REPLY = "I can help you with that. What would you like to do?"
SUCCESS_FALLBACK_REPLY = "Action completed successfully."
UNKNOWN_FUNCTION_REPLY = (
    "Sorry, I can't do that. I can help you manage customers, jobs, "
    "invoices and notifications."
)

_TENANT_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE,
)
_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_PROTOCOL_HANDLER_RE = re.compile(r"(?:javascript|vbscript)\s*:|data\s*:\s*text/html", re.IGNORECASE)


# ── Input handling ───────────────────────────────────────────────────


class ChatValidationError(ValueError):
    """Client-correctable input problem; reported as HTTP 400."""

    def __init__(self, message: str, error: str = "Validation Error") -> None:
        super().__init__(message)
        self.error = error
        self.message = message


def validate_tenant_id(tenant_id: Any) -> str:
    """Return the tenant id if it is UUID-shaped, else raise."""
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise ChatValidationError(
            "Please ensure you are logged in and your session is valid",
            error="Tenant ID is required",
        )
    tenant_id = tenant_id.strip()
    if not _TENANT_ID_RE.match(tenant_id):
        raise ChatValidationError(f"Invalid tenant ID format: {tenant_id[:64]}")
    return tenant_id


def sanitize_query(query: str) -> str:
    """Strip script blocks and protocol-handler prefixes, trim, cap length."""
    cleaned = _SCRIPT_BLOCK_RE.sub("", query)
    cleaned = _PROTOCOL_HANDLER_RE.sub("", cleaned)
    return cleaned.strip()[:MAX_QUERY_LENGTH]


def _as_message(message: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(message, BaseModel):
        return message.model_dump()
    return {"role": message.get("role"), "content": message.get("content")}


# ── Reply construction ───────────────────────────────────────────────


def build_error_reply(result: FunctionResult, tenant_id: str) -> str:
    """One user-facing sentence for a failed tool call.

    The tenant id is added as a support reference unless the executor's
    message already names it.
    """
    error = result.error
    if error is None or error.code == UNKNOWN_FUNCTION:
        return UNKNOWN_FUNCTION_REPLY

    message = error.message.strip().rstrip(".")
    reply = f"I couldn't complete that request: {message}."
    if tenant_id.lower() not in error.message.lower():
        reply += f" (Tenant reference: {tenant_id})"
    return reply


def generate_suggested_actions(tool_name: str, result: FunctionResult) -> list[SuggestedAction]:
    """Next-step affordances keyed off the tool that just succeeded."""
    data = result.data or {}
    actions: list[SuggestedAction] = []

    if tool_name == "createCustomer" and data.get("customerId"):
        params = {"customerId": data["customerId"]}
        actions.append(SuggestedAction(label="Create Job for Customer", action="createJob", params=params))
        actions.append(SuggestedAction(label="View Customer Details", action="viewCustomer", params=params))

    elif tool_name == "createJob" and data.get("jobId"):
        actions.append(
            SuggestedAction(label="View Job Status", action="getJobStatus", params={"jobId": data["jobId"]}),
        )

    elif tool_name == "searchCustomer" and data.get("customers"):
        first = data["customers"][0]
        actions.append(
            SuggestedAction(
                label="Create Job for Customer",
                action="createJob",
                params={"customerId": first["customerId"]},
            ),
        )

    return actions


def combine_usage(*usages: Mapping[str, int] | None) -> TokenUsage | None:
    """Sum token counters across model calls; ``None`` if none reported."""
    present = [u for u in usages if u]
    if not present:
        return None
    return TokenUsage(
        input_tokens=sum(u.get("inputTokens", 0) for u in present),
        output_tokens=sum(u.get("outputTokens", 0) for u in present),
        total_tokens=sum(u.get("totalTokens", 0) for u in present),
    )


# ── State schema ─────────────────────────────────────────────────────


class OrchestratorState(TypedDict, total=False):
    """Per-request state.  Each node writes exactly one key."""

    query: str
    history: list[dict[str, Any]]
    messages: list[dict[str, Any]]
    tenant_id: str
    user_id: str
    decision: ModelDecision
    tool_result: FunctionResult
    summary: ModelReply


# ── Nodes ────────────────────────────────────────────────────────────


def _make_decide_node(gateway: BedrockGateway):
    def decide_node(state: OrchestratorState) -> dict:
        return {"decision": gateway.decide(state["messages"], state["tenant_id"])}

    return decide_node


def _make_execute_node(executor: FunctionExecutor):
    def execute_node(state: OrchestratorState) -> dict:
        invocation = state["decision"].tool_invocation
        result = executor.execute_function(
            invocation.name, invocation.input, state["user_id"], state["tenant_id"],
        )
        return {"tool_result": result}

    return execute_node


def _make_summarize_node(gateway: BedrockGateway):
    def summarize_node(state: OrchestratorState) -> dict:
        invocation = state["decision"].tool_invocation
        summary = gateway.summarize(
            state["query"],
            invocation.name,
            state["tool_result"],
            state["history"],
            state["tenant_id"],
            tool_input=invocation.input,
        )
        return {"summary": summary}

    return summarize_node


# ── Conditional edges ────────────────────────────────────────────────


def route_after_decision(state: OrchestratorState) -> str:
    if state["decision"].tool_invocation is not None:
        return "execute"
    return END


def route_after_execution(state: OrchestratorState) -> str:
    if state["tool_result"].ok:
        return "summarize"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def create_orchestrator_graph(gateway: BedrockGateway, executor: FunctionExecutor):
    """Build and compile the decide / execute / summarize graph.

    Invoke with an ``OrchestratorState`` holding ``query``, ``history``,
    ``messages`` (history plus the query), ``tenant_id`` and ``user_id``.
    """
    graph = StateGraph(OrchestratorState)

    graph.add_node("decide", _make_decide_node(gateway))
    graph.add_node("execute", _make_execute_node(executor))
    graph.add_node("summarize", _make_summarize_node(gateway))

    graph.set_entry_point("decide")
    graph.add_conditional_edges("decide", route_after_decision, {"execute": "execute", END: END})
    graph.add_conditional_edges("execute", route_after_execution, {"summarize": "summarize", END: END})
    graph.add_edge("summarize", END)

    return graph.compile()


# ── Orchestrator ─────────────────────────────────────────────────────


class ChatOrchestrator:
    """Request-level controller for the tool-calling chat endpoint."""

    def __init__(self, gateway: BedrockGateway, executor: FunctionExecutor) -> None:
        self._graph = create_orchestrator_graph(gateway, executor)
        logger.debug("Chat orchestrator compiled with %d tools", len(executor.function_names))

    def run(
        self,
        query: Any,
        tenant_id: Any,
        user_id: str | None = None,
        history: Iterable[BaseModel | Mapping[str, Any]] | None = None,
        *,
        conversation_id: str | None = None,
    ) -> ChatResponse:
        """Validate, run the graph once and build the response envelope.

        Raises ``ChatValidationError`` before any model call on bad input.
        Model provider errors propagate to the caller.
        """
        if not isinstance(query, str) or not query.strip():
            raise ChatValidationError("Query is required and must be a string")
        tenant_id = validate_tenant_id(tenant_id)
        user_id = user_id or "anonymous"

        sanitized = sanitize_query(query)
        if not sanitized:
            raise ChatValidationError("Query is empty after removing unsupported content")

        prior = [_as_message(m) for m in history or []]
        conversation_id = conversation_id or str(uuid.uuid4())
        logger.info(
            "[%s] Processing query (tenant=%s, user=%s, length=%d, history=%d)",
            conversation_id, tenant_id, user_id, len(sanitized), len(prior),
        )

        t0 = time.perf_counter()
        state: OrchestratorState = self._graph.invoke({
            "query": sanitized,
            "history": prior,
            "messages": [*prior, {"role": "user", "content": sanitized}],
            "tenant_id": tenant_id,
            "user_id": user_id,
        })
        latency_ms = int((time.perf_counter() - t0) * 1000)

        response = self._build_response(state, conversation_id, tenant_id, latency_ms)
        logger.info(
            "[%s] Request completed (tool=%s, error=%s, %dms)",
            conversation_id, response.metadata.tool, bool(response.metadata.error), latency_ms,
        )
        return response

    @staticmethod
    def _build_response(
        state: OrchestratorState, conversation_id: str, tenant_id: str, latency_ms: int,
    ) -> ChatResponse:
        decision = state["decision"]
        invocation = decision.tool_invocation
        timestamp = datetime.now(UTC).isoformat()

        if invocation is None:
            return ChatResponse(
                conversation_id=conversation_id,
                reply=decision.content or NO_TOOL_FALLBACK_REPLY,
                metadata=ChatMetadata(
                    model=decision.model,
                    tokens_used=combine_usage(decision.usage),
                    latency_ms=latency_ms,
                ),
                timestamp=timestamp,
            )

        result = state["tool_result"]
        tool_result = result.model_dump(exclude_none=True)

        if not result.ok:
            return ChatResponse(
                conversation_id=conversation_id,
                reply=build_error_reply(result, tenant_id),
                metadata=ChatMetadata(
                    tool=invocation.name,
                    tool_result=tool_result,
                    model=decision.model,
                    tokens_used=combine_usage(decision.usage),
                    latency_ms=latency_ms,
                    error=True,
                ),
                timestamp=timestamp,
            )

        summary = state.get("summary")
        reply = (
            (summary.content if summary else None)
            or (result.data or {}).get("message")
            or SUCCESS_FALLBACK_REPLY
        )
        return ChatResponse(
            conversation_id=conversation_id,
            reply=reply,
            metadata=ChatMetadata(
                tool=invocation.name,
                tool_result=tool_result,
                model=decision.model,
                tokens_used=combine_usage(decision.usage, summary.usage if summary else None),
                latency_ms=latency_ms,
            ),
            suggested_actions=generate_suggested_actions(invocation.name, result) or None,
            timestamp=timestamp,
        )
