"""Tool catalog: the closed set of business functions the model may call.

Entries are plain data.  Adding a capability means adding an entry here
*and* a handler in ``aira.tools.executor``; the executor refuses to start
if the two sets differ.

The model is trusted to honour ``required``; the executor only applies
business rules (e.g. a job needs a service address).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class PropertySpec:
    """One argument of a tool."""

    type: str
    description: str
    enum: tuple[str, ...] | None = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass(frozen=True)
class ToolDefinition:
    """An immutable catalog entry."""

    name: str
    description: str
    properties: Mapping[str, PropertySpec] = field(default_factory=dict)
    required: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        unknown = self.required - set(self.properties)
        if unknown:
            raise ValueError(f"Tool {self.name}: required fields not declared: {sorted(unknown)}")
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def to_schema(self) -> dict[str, Any]:
        """Render the function schema sent to the model provider."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {k: v.to_schema() for k, v in self.properties.items()},
                # declaration order
                "required": [k for k in self.properties if k in self.required],
            },
        }


def _p(type_: str, description: str, enum: tuple[str, ...] | None = None) -> PropertySpec:
    return PropertySpec(type=type_, description=description, enum=enum)


# ── Catalog ──────────────────────────────────────────────────────────

TOOL_CATALOG: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="createCustomer",
        description=(
            "Create a new customer in the system. Use this when the user wants to add a new "
            "customer with their contact information. IMPORTANT: Always try to capture the "
            "customer's address during creation, as it's required for creating jobs/work orders."
        ),
        properties={
            "firstName": _p("string", "Customer first name (required for residential customers)"),
            "lastName": _p("string", "Customer last name (required for residential customers)"),
            "companyName": _p("string", "Company name (required for commercial customers)"),
            "email": _p("string", "Customer email address"),
            "phone": _p("string", "Customer phone number (required)"),
            "type": _p(
                "string", "Customer type (default: RESIDENTIAL)",
                ("RESIDENTIAL", "COMMERCIAL", "CONTRACTOR"),
            ),
            "street": _p("string", "Street address (HIGHLY RECOMMENDED - required for creating jobs)"),
            "city": _p("string", "City"),
            "state": _p("string", "State (2-letter code like CA, NY)"),
            "zip": _p("string", "ZIP/Postal code"),
            "notes": _p("string", "Additional notes about the customer"),
        },
        required=frozenset({"phone"}),
    ),
    ToolDefinition(
        name="searchCustomer",
        description=(
            "Search for existing customers by ID, customer number, name, phone or email. "
            "Use this before creating a customer to avoid duplicates. To search by name use "
            'the "query" parameter; use "email" and "phone" only for exact contact searches.'
        ),
        properties={
            "customerId": _p("string", "Look up a specific customer by their ID (UUID)"),
            "customerNumber": _p("string", 'Look up a specific customer by number (e.g. "CUST-000004")'),
            "query": _p("string", "Search by customer name (first, last, or full name)"),
            "phone": _p("string", "Search by phone number"),
            "email": _p("string", "Search by email address"),
            "limit": _p("number", "Maximum number of results (default 10)"),
        },
    ),
    ToolDefinition(
        name="getCustomer",
        description="Get the full details of one customer, including addresses.",
        properties={
            "customerId": _p("string", "Customer UUID (REQUIRED - get from searchCustomer)"),
        },
        required=frozenset({"customerId"}),
    ),
    ToolDefinition(
        name="updateCustomer",
        description=(
            "Update an existing customer's information. You must first search for the customer "
            "using searchCustomer to get their customerId. Do not update without a valid customerId."
        ),
        properties={
            "customerId": _p("string", "ID of the customer to update (REQUIRED - from searchCustomer)"),
            "firstName": _p("string", "Updated first name"),
            "lastName": _p("string", "Updated last name"),
            "companyName": _p("string", "Updated company name"),
            "email": _p("string", "Updated email address"),
            "phone": _p("string", "Updated phone number (mobile phone)"),
            "notes": _p("string", "Additional notes about the customer"),
        },
        required=frozenset({"customerId"}),
    ),
    ToolDefinition(
        name="addAddress",
        description=(
            "Add a service address to an existing customer. Use this when a customer needs a job "
            "created but doesn't have an address yet, or when adding additional service locations."
        ),
        properties={
            "customerId": _p("string", "Customer UUID (REQUIRED - get from searchCustomer)"),
            "type": _p("string", "Address type (default: SERVICE)", ("PRIMARY", "SERVICE", "BILLING")),
            "street": _p("string", "Street address"),
            "city": _p("string", "City"),
            "state": _p("string", "State 2-letter code"),
            "zip": _p("string", "ZIP/Postal code"),
            "isPrimary": _p("boolean", "Make this the customer's primary address"),
            "accessNotes": _p("string", "Special access instructions (gate codes, parking, etc.)"),
        },
        required=frozenset({"customerId", "street", "city", "state", "zip"}),
    ),
    ToolDefinition(
        name="createJob",
        description=(
            "Create a new job/work order for a customer. First search for the customer to get "
            "their customerId (UUID), then use that customerId to create the job. If no addressId "
            "is given the customer's primary address is used."
        ),
        properties={
            "customerId": _p("string", 'Customer UUID from searchCustomer (use "customerId", NOT "customerNumber")'),
            "addressId": _p("string", "Service address ID (optional, defaults to the primary address)"),
            "jobType": _p("string", "Type of job (e.g., HVAC repair, plumbing, electrical)"),
            "problem": _p("string", "Description of the problem or work needed"),
            "scheduledDate": _p("string", "When to schedule the job (ISO 8601 format)"),
            "priority": _p("string", "Job priority level", ("low", "medium", "high", "urgent")),
            "assignedTo": _p("string", "Technician ID to assign the job to"),
        },
        required=frozenset({"customerId", "jobType"}),
    ),
    ToolDefinition(
        name="getJobStatus",
        description="Get the current status and details of a job, by job ID or job number.",
        properties={
            "jobId": _p("string", "ID of the job to check"),
            "jobNumber": _p("string", 'Job number (e.g. "JOB-000012")'),
            "includeHistory": _p("boolean", "Include full job history and updates"),
        },
    ),
    ToolDefinition(
        name="updateJob",
        description=(
            "Update an existing job: status, priority, schedule or description. "
            "Identify the job by ID or by job number."
        ),
        properties={
            "jobId": _p("string", "ID of the job to update"),
            "jobNumber": _p("string", 'Job number (e.g. "JOB-000012")'),
            "status": _p(
                "string", "New job status",
                ("UNSCHEDULED", "SCHEDULED", "DISPATCHED", "EN_ROUTE", "IN_PROGRESS",
                 "ON_HOLD", "COMPLETED", "CANCELLED"),
            ),
            "priority": _p("string", "Job priority level", ("low", "medium", "high", "urgent")),
            "scheduledDate": _p("string", "New scheduled start (ISO 8601 format)"),
            "problem": _p("string", "Updated description of the work"),
            "notes": _p("string", "Internal notes"),
        },
    ),
    ToolDefinition(
        name="updateInvoice",
        description=(
            "Update an existing invoice or record a payment against it. To record a payment, "
            "pass BOTH paymentAmount and paymentMethod. Identify the invoice by ID or number."
        ),
        properties={
            "invoiceId": _p("string", "ID of the invoice to update"),
            "invoiceNumber": _p("string", 'Invoice number (e.g. "INV-000003")'),
            "status": _p(
                "string", "Invoice status",
                ("draft", "sent", "paid", "overdue", "void"),
            ),
            "paymentAmount": _p("number", "Payment amount in dollars (records a payment)"),
            "paymentMethod": _p(
                "string", "How the payment was made (records a payment)",
                ("CREDIT_CARD", "DEBIT_CARD", "ACH", "CHECK", "CASH", "FINANCING", "OTHER"),
            ),
            "notes": _p("string", "Additional notes about the invoice"),
        },
    ),
    ToolDefinition(
        name="sendNotification",
        description="Send a notification to a customer or user via SMS, email, or push notification.",
        properties={
            "to": _p("string", "Recipient (phone number, email, or user ID)"),
            "channel": _p("string", "Communication channel", ("sms", "email", "push")),
            "message": _p("string", "Message content to send"),
            "subject": _p("string", "Subject line (for email)"),
        },
        required=frozenset({"to", "channel", "message"}),
    ),
)

_BY_NAME: Mapping[str, ToolDefinition] = MappingProxyType({t.name: t for t in TOOL_CATALOG})

if len(_BY_NAME) != len(TOOL_CATALOG):
    raise ValueError("Duplicate tool names in TOOL_CATALOG")


def tool_names() -> frozenset[str]:
    """Names of every catalog entry."""
    return frozenset(_BY_NAME)


def tool_schemas() -> list[dict[str, Any]]:
    """Provider-ready schemas for every catalog entry."""
    return [t.to_schema() for t in TOOL_CATALOG]
