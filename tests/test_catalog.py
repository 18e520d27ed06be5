"""Tests for the tool catalog."""

from __future__ import annotations

import pytest

from aira.tools.catalog import (
    TOOL_CATALOG,
    PropertySpec,
    ToolDefinition,
    tool_names,
    tool_schemas,
)


def _tool(name: str) -> ToolDefinition:
    return next(t for t in TOOL_CATALOG if t.name == name)


class TestCatalogContents:
    def test_exposes_the_ten_business_functions(self):
        assert tool_names() == {
            "createCustomer",
            "searchCustomer",
            "getCustomer",
            "updateCustomer",
            "addAddress",
            "createJob",
            "getJobStatus",
            "updateJob",
            "updateInvoice",
            "sendNotification",
        }

    def test_create_customer_requires_phone(self):
        assert _tool("createCustomer").required == {"phone"}

    def test_create_job_priority_is_enumerated(self):
        priority = _tool("createJob").properties["priority"]
        assert priority.enum == ("low", "medium", "high", "urgent")

    def test_update_invoice_has_no_required_fields(self):
        """Either invoiceId or invoiceNumber may identify the invoice."""
        assert _tool("updateInvoice").required == frozenset()

    def test_unknown_name_is_not_listed(self):
        assert "deleteEverything" not in tool_names()


class TestSchemas:
    def test_schema_shape(self):
        schema = _tool("addAddress").to_schema()
        assert schema["name"] == "addAddress"
        assert schema["parameters"]["type"] == "object"
        assert set(schema["parameters"]["required"]) == {"customerId", "street", "city", "state", "zip"}
        assert schema["parameters"]["properties"]["street"]["type"] == "string"

    def test_enum_rendered_only_when_present(self):
        props = _tool("updateInvoice").to_schema()["parameters"]["properties"]
        assert "enum" in props["paymentMethod"]
        assert "enum" not in props["notes"]

    def test_tool_schemas_follow_catalog_order(self):
        assert [s["name"] for s in tool_schemas()] == [t.name for t in TOOL_CATALOG]


class TestToolDefinition:
    def test_required_must_be_declared(self):
        with pytest.raises(ValueError, match="not declared"):
            ToolDefinition(
                name="broken",
                description="x",
                properties={"a": PropertySpec("string", "a")},
                required=frozenset({"b"}),
            )

    def test_properties_are_read_only(self):
        tool = _tool("getCustomer")
        with pytest.raises(TypeError):
            tool.properties["injected"] = PropertySpec("string", "nope")

    def test_definition_is_frozen(self):
        tool = _tool("getCustomer")
        with pytest.raises(AttributeError):
            tool.name = "renamed"
