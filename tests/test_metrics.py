"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from aira.services.metrics import MetricsClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
        # Keep the flush thread out of tests
        with patch.object(MetricsClient, "_start_flush_thread"):
            return MetricsClient()


def _dims_of(client: MetricsClient, name: str) -> dict[str, str]:
    metric = next(m for m in client._buffer if m["MetricName"] == name)
    return {d["Name"]: d["Value"] for d in metric["Dimensions"]}


class TestExternalCallMetrics:
    def test_record_success_appends_count_and_latency(self):
        client = _make_client()
        client.record_success("bedrock", "decide", latency_ms=812.0)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalAPI/RequestCount", "ExternalAPI/Latency"}
        assert _dims_of(client, "ExternalAPI/RequestCount") == {"Service": "bedrock", "Status": "success"}

    def test_record_failure_without_latency(self):
        client = _make_client()
        client.record_failure("bedrock", "decide", error_type="ThrottlingException")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalAPI/RequestCount", "ExternalAPI/ErrorCount"}
        assert _dims_of(client, "ExternalAPI/ErrorCount")["ErrorType"] == "ThrottlingException"

    def test_record_failure_with_latency(self):
        client = _make_client()
        client.record_failure("field_api", "GET /jobs", error_type="5xx", latency_ms=300.0)
        assert len(client._buffer) == 3


class TestToolExecutionMetrics:
    def test_success_records_count_and_latency(self):
        client = _make_client()
        client.record_tool_execution("createJob", "success", latency_ms=42.0)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ToolExecution/Count", "ToolExecution/Latency"}
        assert _dims_of(client, "ToolExecution/Count") == {"Tool": "createJob", "Status": "success"}

    def test_error_records_error_code(self):
        client = _make_client()
        client.record_tool_execution("deleteEverything", "error", error_code="UNKNOWN_FUNCTION")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ToolExecution/Count", "ToolExecution/ErrorCount"}
        assert _dims_of(client, "ToolExecution/ErrorCount")["ErrorCode"] == "UNKNOWN_FUNCTION"


class TestMetricsFlush:
    def test_flush_when_disabled_sends_nothing_and_clears(self):
        client = _make_client()
        client.record_success("bedrock", "chat", latency_ms=100.0)
        assert client.flush() == 0
        assert client._buffer == []

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_success("bedrock", "summarize", latency_ms=100.0)
        sent = client.flush()

        assert sent == 2
        kwargs = mock_cw.put_metric_data.call_args.kwargs
        assert kwargs["Namespace"] == "InFieldAira"
        assert len(kwargs["MetricData"]) == 2

    def test_flush_failure_is_logged_not_raised(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()
        client._cw_client.put_metric_data.side_effect = RuntimeError("no credentials")
        client.record_success("bedrock", "decide", latency_ms=1.0)
        assert client.flush() == 0

    def test_flush_empty_buffer_returns_zero(self):
        assert _make_client(enabled=True).flush() == 0
