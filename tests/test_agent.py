"""Tests for the chat orchestrator.

Covers:
  - Input validation and sanitization (no model call on bad input)
  - Graph routing: no tool / tool error / tool success
  - Reply fallbacks, suggested actions, usage aggregation
  - End-to-end flows with a mocked gateway and the in-memory backend
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from aira.agent import (
    NO_TOOL_FALLBACK_REPLY,
    SUCCESS_FALLBACK_REPLY,
    UNKNOWN_FUNCTION_REPLY,
    ChatOrchestrator,
    ChatValidationError,
    build_error_reply,
    combine_usage,
    generate_suggested_actions,
    sanitize_query,
    validate_tenant_id,
)
from aira.services.bedrock_gateway import BedrockGateway, ModelDecision, ModelReply, ToolInvocation
from aira.tools.executor import NOT_FOUND, FunctionExecutor, FunctionResult

TENANT = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"
USAGE = {"inputTokens": 100, "outputTokens": 20, "totalTokens": 120}


# ── Helpers ──────────────────────────────────────────────────────────


def _decision(content: str | None = None, tool: str | None = None, args: dict | None = None) -> ModelDecision:
    invocation = ToolInvocation(id="call-1", name=tool, input=args or {}) if tool else None
    return ModelDecision(
        content=content,
        tool_invocation=invocation,
        stop_reason="tool_use" if tool else "end_turn",
        usage=USAGE,
        model="primary-model",
    )


def _mock_gateway(decision: ModelDecision, summary: str | None = "Summary text") -> MagicMock:
    gateway = MagicMock(spec=BedrockGateway)
    gateway.decide.return_value = decision
    gateway.summarize.return_value = ModelReply(
        content=summary,
        usage={"inputTokens": 50, "outputTokens": 10, "totalTokens": 60},
        model="primary-model",
    )
    return gateway


@pytest.fixture
def mock_executor():
    executor = MagicMock(spec=FunctionExecutor)
    executor.function_names = frozenset({"createCustomer"})
    return executor


# ── Validation / sanitization ────────────────────────────────────────


class TestValidation:
    @pytest.mark.parametrize("query", [None, "", "   ", 42, ["create a job"]])
    def test_bad_query_makes_no_model_call(self, query, mock_executor):
        gateway = _mock_gateway(_decision("unused"))
        orchestrator = ChatOrchestrator(gateway, mock_executor)

        with pytest.raises(ChatValidationError):
            orchestrator.run(query, TENANT)

        gateway.decide.assert_not_called()

    @pytest.mark.parametrize(
        "tenant_id",
        [None, "", "tenant-1", "3f2b8c1e9a4d4e6f8b7a1c2d3e4f5a6b", "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6bz"],
    )
    def test_bad_tenant_makes_no_model_call(self, tenant_id, mock_executor):
        gateway = _mock_gateway(_decision("unused"))
        orchestrator = ChatOrchestrator(gateway, mock_executor)

        with pytest.raises(ChatValidationError):
            orchestrator.run("list customers", tenant_id)

        gateway.decide.assert_not_called()

    def test_missing_tenant_reports_required(self):
        with pytest.raises(ChatValidationError) as exc_info:
            validate_tenant_id(None)
        assert exc_info.value.error == "Tenant ID is required"

    def test_tenant_check_is_case_insensitive(self):
        assert validate_tenant_id(TENANT.upper()) == TENANT.upper()

    def test_query_only_markup_is_rejected(self, mock_executor):
        gateway = _mock_gateway(_decision("unused"))
        with pytest.raises(ChatValidationError):
            ChatOrchestrator(gateway, mock_executor).run("<script>alert(1)</script>", TENANT)
        gateway.decide.assert_not_called()


class TestSanitizeQuery:
    def test_strips_script_blocks(self):
        assert sanitize_query("find <script>steal()</script>Jane") == "find Jane"

    def test_strips_protocol_handlers(self):
        assert sanitize_query("javascript:alert(1) VBScript:x data:text/html,hi") == "alert(1) x ,hi"

    def test_trims_and_caps_length(self):
        assert sanitize_query("  " + "a" * 20_000 + "  ") == "a" * 10_000


# ── Routing ──────────────────────────────────────────────────────────


class TestNoToolPath:
    def test_reply_is_model_text_and_executor_untouched(self, mock_executor):
        gateway = _mock_gateway(_decision("Which customer do you mean?"))
        response = ChatOrchestrator(gateway, mock_executor).run("create a job", TENANT)

        assert response.reply == "Which customer do you mean?"
        mock_executor.execute_function.assert_not_called()
        gateway.summarize.assert_not_called()
        assert response.metadata.tool is None
        assert response.metadata.tokens_used.total_tokens == 120

    def test_empty_model_text_uses_fallback(self, mock_executor):
        gateway = _mock_gateway(_decision(None))
        response = ChatOrchestrator(gateway, mock_executor).run("hello", TENANT)
        assert response.reply == NO_TOOL_FALLBACK_REPLY

    def test_history_and_query_reach_decide(self, mock_executor):
        gateway = _mock_gateway(_decision("ok"))
        history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]

        ChatOrchestrator(gateway, mock_executor).run("  list jobs  ", TENANT, history=history)

        messages, tenant = gateway.decide.call_args[0]
        assert messages == [*history, {"role": "user", "content": "list jobs"}]
        assert tenant == TENANT


class TestToolErrorPath:
    def test_error_skips_summary_and_flags_metadata(self, mock_executor):
        mock_executor.execute_function.return_value = FunctionResult.failure(NOT_FOUND, "Job JOB-000404 not found")
        gateway = _mock_gateway(_decision(tool="getJobStatus", args={"jobNumber": "JOB-000404"}))

        response = ChatOrchestrator(gateway, mock_executor).run("status of JOB-000404", TENANT, "u-1")

        gateway.decide.assert_called_once()
        gateway.summarize.assert_not_called()
        assert "Job JOB-000404 not found" in response.reply
        assert response.metadata.error is True
        assert response.metadata.tool == "getJobStatus"
        assert response.metadata.tool_result["error"]["code"] == NOT_FOUND
        assert response.suggested_actions is None
        mock_executor.execute_function.assert_called_once_with(
            "getJobStatus", {"jobNumber": "JOB-000404"}, "u-1", TENANT,
        )

    def test_user_defaults_to_anonymous(self, mock_executor):
        mock_executor.execute_function.return_value = FunctionResult.failure(NOT_FOUND, "gone")
        gateway = _mock_gateway(_decision(tool="getJobStatus"))
        ChatOrchestrator(gateway, mock_executor).run("status", TENANT)
        assert mock_executor.execute_function.call_args[0][2] == "anonymous"


class TestErrorReply:
    def test_tenant_reference_added_once(self):
        result = FunctionResult.failure(NOT_FOUND, "Job JOB-1 not found")
        reply = build_error_reply(result, TENANT)
        assert reply.count(TENANT) == 1

    def test_tenant_not_duplicated_when_message_contains_it(self):
        message = f"Tenant with ID '{TENANT}' does not exist. Please verify your tenant configuration."
        reply = build_error_reply(FunctionResult.failure("EXECUTION_ERROR", message), TENANT)
        assert reply.count(TENANT) == 1
        assert "does not exist" in reply

    def test_tenant_dedup_ignores_case(self):
        message = f"Tenant {TENANT.upper()} is suspended"
        reply = build_error_reply(FunctionResult.failure("EXECUTION_ERROR", message), TENANT)
        assert TENANT not in reply

    def test_unknown_function_is_generic(self):
        reply = build_error_reply(FunctionResult.failure("UNKNOWN_FUNCTION", "Unknown function: rm"), TENANT)
        assert reply == UNKNOWN_FUNCTION_REPLY


class TestToolSuccessPath:
    def test_exactly_one_summary_and_usage_summed(self, mock_executor):
        mock_executor.execute_function.return_value = FunctionResult.success({"message": "done"})
        gateway = _mock_gateway(_decision(tool="createCustomer", args={"phone": "1"}))

        response = ChatOrchestrator(gateway, mock_executor).run("add customer", TENANT)

        gateway.summarize.assert_called_once()
        assert response.reply == "Summary text"
        assert response.metadata.tokens_used.total_tokens == 180
        assert response.metadata.tokens_used.input_tokens == 150
        assert response.metadata.error is None

    def test_summary_receives_original_query_and_tool_input(self, mock_executor):
        result = FunctionResult.success({"message": "done"})
        mock_executor.execute_function.return_value = result
        gateway = _mock_gateway(_decision(tool="createCustomer", args={"phone": "1"}))

        ChatOrchestrator(gateway, mock_executor).run("add customer", TENANT)

        args, kwargs = gateway.summarize.call_args
        assert args == ("add customer", "createCustomer", result, [], TENANT)
        assert kwargs == {"tool_input": {"phone": "1"}}

    def test_empty_summary_falls_back_to_data_message(self, mock_executor):
        mock_executor.execute_function.return_value = FunctionResult.success({"message": "Job JOB-000001 created"})
        gateway = _mock_gateway(_decision(tool="createCustomer"), summary=None)

        response = ChatOrchestrator(gateway, mock_executor).run("go", TENANT)

        assert response.reply == "Job JOB-000001 created"

    def test_generic_reply_when_nothing_usable(self, mock_executor):
        mock_executor.execute_function.return_value = FunctionResult.success({})
        gateway = _mock_gateway(_decision(tool="createCustomer"), summary=None)

        response = ChatOrchestrator(gateway, mock_executor).run("go", TENANT)

        assert response.reply == SUCCESS_FALLBACK_REPLY

    def test_summary_failure_propagates(self, mock_executor):
        mock_executor.execute_function.return_value = FunctionResult.success({})
        gateway = _mock_gateway(_decision(tool="createCustomer"))
        gateway.summarize.side_effect = RuntimeError("bedrock down")

        with pytest.raises(RuntimeError):
            ChatOrchestrator(gateway, mock_executor).run("go", TENANT)


class TestSuggestedActions:
    def test_after_create_customer(self):
        actions = generate_suggested_actions("createCustomer", FunctionResult.success({"customerId": "c-1"}))
        assert [(a.action, a.params) for a in actions] == [
            ("createJob", {"customerId": "c-1"}),
            ("viewCustomer", {"customerId": "c-1"}),
        ]

    def test_after_create_job(self):
        actions = generate_suggested_actions("createJob", FunctionResult.success({"jobId": "j-1"}))
        assert [(a.label, a.params) for a in actions] == [("View Job Status", {"jobId": "j-1"})]

    def test_after_search_with_results(self):
        data = {"customers": [{"customerId": "c-7"}, {"customerId": "c-8"}], "count": 2}
        actions = generate_suggested_actions("searchCustomer", FunctionResult.success(data))
        assert [(a.action, a.params) for a in actions] == [("createJob", {"customerId": "c-7"})]

    def test_after_empty_search(self):
        data = {"customers": [], "count": 0}
        assert generate_suggested_actions("searchCustomer", FunctionResult.success(data)) == []

    def test_other_tools_have_none(self):
        assert generate_suggested_actions("updateJob", FunctionResult.success({"jobId": "j-1"})) == []


class TestCombineUsage:
    def test_none_when_nothing_reported(self):
        assert combine_usage(None, None) is None

    def test_single_source(self):
        assert combine_usage(USAGE).total_tokens == 120


# ── End to end ───────────────────────────────────────────────────────


class TestEndToEnd:
    def test_create_customer_flow(self, executor, backend):
        gateway = _mock_gateway(_decision(
            tool="createCustomer", args={"firstName": "Jane", "lastName": "Doe", "phone": "555-0100"},
        ))
        gateway.summarize.side_effect = lambda query, tool, result, history, tenant, tool_input=None: ModelReply(
            content=f"Created Jane Doe as {result.data['customerNumber']}.",
            usage=None,
            model="primary-model",
        )

        response = ChatOrchestrator(gateway, executor).run(
            "create a customer named Jane Doe, phone 555-0100", TENANT, "u-1",
        )

        customer_id = response.metadata.tool_result["data"]["customerId"]
        assert "CUST-000001" in response.reply
        assert backend.get_customer(TENANT, customer_id)["mobilePhone"] == "555-0100"
        create_job = next(a for a in response.suggested_actions if a.action == "createJob")
        assert create_job.params == {"customerId": customer_id}
        gateway.summarize.assert_called_once()

    def test_unknown_job_flow(self, executor):
        gateway = _mock_gateway(_decision(tool="getJobStatus", args={"jobNumber": "JOB-009999"}))

        response = ChatOrchestrator(gateway, executor).run("where is job JOB-009999?", TENANT)

        assert "Job JOB-009999 not found" in response.reply
        assert response.metadata.error is True
        gateway.summarize.assert_not_called()

    def test_unknown_tool_flow(self):
        backend = MagicMock()
        executor = FunctionExecutor(backend)
        gateway = _mock_gateway(_decision(tool="deleteEverything", args={"confirm": True}))

        response = ChatOrchestrator(gateway, executor).run("delete everything", TENANT)

        assert response.reply == UNKNOWN_FUNCTION_REPLY
        assert response.metadata.tool_result["error"]["code"] == "UNKNOWN_FUNCTION"
        assert backend.method_calls == []
        gateway.summarize.assert_not_called()

    def test_search_then_suggest_job(self, executor, backend):
        backend.create_customer(TENANT, {"firstName": "Jane", "lastName": "Doe"})
        gateway = _mock_gateway(_decision(tool="searchCustomer", args={"query": "Jane"}))

        response = ChatOrchestrator(gateway, executor).run("find Jane", TENANT)

        assert response.suggested_actions[0].label == "Create Job for Customer"
