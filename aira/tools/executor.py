"""Function executor: turns a model tool invocation into one business operation.

Every call returns a ``FunctionResult`` envelope; nothing raised by a handler
or a collaborator escapes ``FunctionExecutor.execute_function``.

Error codes
-----------
``UNKNOWN_FUNCTION``  the tool name has no handler (no collaborator touched)
``VALIDATION_ERROR``  a business rule rejected the arguments
``NOT_FOUND``         the referenced customer / job / invoice does not exist
``EXECUTION_ERROR``   anything unexpected, original message in ``details``
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal

from pydantic import BaseModel

from aira.services.backend import FieldServiceBackend, Record
from aira.services.metrics import metrics
from aira.tools.catalog import ToolDefinition, tool_names

logger = logging.getLogger(__name__)

UNKNOWN_FUNCTION = "UNKNOWN_FUNCTION"
EXECUTION_ERROR = "EXECUTION_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"

DEFAULT_SEARCH_LIMIT = 10

_PRIORITY_MAP = {
    "low": "LOW",
    "medium": "NORMAL",
    "normal": "NORMAL",
    "high": "HIGH",
    "urgent": "EMERGENCY",
    "emergency": "EMERGENCY",
}

PAYMENT_METHODS = frozenset(
    {"CREDIT_CARD", "DEBIT_CARD", "ACH", "CHECK", "CASH", "FINANCING", "OTHER"},
)


# ── Result envelope ──────────────────────────────────────────────────


class FunctionError(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class FunctionResult(BaseModel):
    """Uniform outcome of every dispatched operation."""

    status: Literal["success", "error"]
    data: dict[str, Any] | None = None
    error: FunctionError | None = None

    @classmethod
    def success(cls, data: dict[str, Any]) -> FunctionResult:
        return cls(status="success", data=data)

    @classmethod
    def failure(
        cls, code: str, message: str, details: dict[str, Any] | None = None,
    ) -> FunctionResult:
        return cls(status="error", error=FunctionError(code=code, message=message, details=details))

    @property
    def ok(self) -> bool:
        return self.status == "success"


# ── updateInvoice intents ────────────────────────────────────────────


@dataclass(frozen=True)
class RecordPayment:
    """``updateInvoice`` called with both a payment amount and method."""

    amount: float
    method: str
    notes: str | None = None


@dataclass(frozen=True)
class UpdateInvoiceFields:
    """``updateInvoice`` called to change invoice fields."""

    fields: dict[str, Any] = field(default_factory=dict)


InvoiceIntent = RecordPayment | UpdateInvoiceFields


def parse_invoice_intent(args: dict[str, Any]) -> InvoiceIntent:
    """Decide up front which operation an ``updateInvoice`` call means.

    ``paymentAmount`` and ``paymentMethod`` together select the payment path;
    any ``status`` sent alongside them is ignored.
    """
    amount = args.get("paymentAmount")
    method = args.get("paymentMethod")
    if amount is not None and method:
        return RecordPayment(amount=float(amount), method=str(method).upper(), notes=args.get("notes"))

    fields: dict[str, Any] = {}
    if args.get("status"):
        fields["status"] = str(args["status"]).upper()
    if args.get("notes") is not None:
        fields["notes"] = args["notes"]
    return UpdateInvoiceFields(fields=fields)


def _text_arg(args: dict[str, Any], key: str) -> str | None:
    """``args[key]`` as stripped text; models sometimes send phone numbers as ints."""
    value = args.get(key)
    if value is None:
        return None
    return str(value).strip() or None


# ── Record shaping ───────────────────────────────────────────────────


def _display_name(customer: Record) -> str:
    name = " ".join(p for p in (customer.get("firstName"), customer.get("lastName")) if p)
    return name or customer.get("companyName") or customer.get("customerNumber") or customer["id"]


def _address_summary(address: Record) -> dict[str, Any]:
    return {
        "addressId": address["id"],
        "street": address.get("street"),
        "city": address.get("city"),
        "state": address.get("state"),
        "zip": address.get("zip"),
        "isPrimary": bool(address.get("isPrimary")),
    }


def _customer_summary(customer: Record) -> dict[str, Any]:
    addresses = customer.get("addresses") or []
    return {
        "customerId": customer["id"],
        "customerNumber": customer.get("customerNumber"),
        "name": _display_name(customer),
        "companyName": customer.get("companyName"),
        "email": customer.get("email"),
        "phone": customer.get("mobilePhone"),
        "hasAddress": bool(addresses),
        "addresses": [_address_summary(a) for a in addresses],
    }


def _job_summary(job: Record) -> dict[str, Any]:
    return {
        "jobId": job["id"],
        "jobNumber": job.get("jobNumber"),
        "customerId": job.get("customerId"),
        "addressId": job.get("addressId"),
        "title": job.get("title"),
        "description": job.get("description"),
        "status": job.get("status"),
        "priority": job.get("priority"),
        "scheduledStart": job.get("scheduledStart"),
        "assignedTo": job.get("assignedTo"),
    }


def _invoice_summary(invoice: Record) -> dict[str, Any]:
    total = float(invoice.get("total") or 0)
    paid = float(invoice.get("amountPaid") or 0)
    return {
        "invoiceId": invoice["id"],
        "invoiceNumber": invoice.get("invoiceNumber"),
        "status": invoice.get("status"),
        "total": total,
        "amountPaid": paid,
        "balanceDue": round(max(total - paid, 0.0), 2),
    }


def _resolve_address_id(customer: Record, address_id: str | None) -> str | None:
    """Explicit id → primary address → first address → ``None``."""
    addresses = customer.get("addresses") or []
    if address_id:
        return address_id if any(a["id"] == address_id for a in addresses) else None
    primary = next((a for a in addresses if a.get("isPrimary")), None)
    if primary is not None:
        return primary["id"]
    return addresses[0]["id"] if addresses else None


Handler = Callable[[dict[str, Any], str, str], FunctionResult]


class FunctionExecutor:
    """Dispatches tool invocations to the business-data collaborator.

    The name → handler registry is built once here and checked against the
    tool catalog, so a catalog entry without a handler (or the reverse) fails
    at startup instead of surfacing as ``UNKNOWN_FUNCTION`` at runtime.
    """

    def __init__(
        self,
        backend: FieldServiceBackend,
        catalog: Iterable[ToolDefinition] | None = None,
    ) -> None:
        self._backend = backend
        self._handlers: dict[str, Handler] = {
            "createCustomer": self._create_customer,
            "searchCustomer": self._search_customer,
            "getCustomer": self._get_customer,
            "updateCustomer": self._update_customer,
            "addAddress": self._add_address,
            "createJob": self._create_job,
            "getJobStatus": self._get_job_status,
            "updateJob": self._update_job,
            "updateInvoice": self._update_invoice,
            "sendNotification": self._send_notification,
        }

        catalog_names = tool_names() if catalog is None else {tool.name for tool in catalog}
        missing = catalog_names - self._handlers.keys()
        unlisted = self._handlers.keys() - catalog_names
        if missing or unlisted:
            raise RuntimeError(
                "Tool catalog and executor handlers are out of sync: "
                f"no handler for {sorted(missing)}, not in catalog {sorted(unlisted)}"
            )

    @property
    def function_names(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def execute_function(
        self,
        name: str,
        args: dict[str, Any] | None,
        user_id: str,
        tenant_id: str,
    ) -> FunctionResult:
        """Run tool *name* for *tenant_id*; never raises."""
        logger.info("Executing function %s (tenant=%s, user=%s)", name, tenant_id, user_id)

        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("Model requested unknown function %r", name)
            metrics.record_tool_execution(name, "error", error_code=UNKNOWN_FUNCTION)
            return FunctionResult.failure(UNKNOWN_FUNCTION, f"Unknown function: {name}")

        t0 = time.perf_counter()
        try:
            result = handler(dict(args or {}), tenant_id, user_id)
        except Exception as exc:
            logger.exception("Function execution failed: %s", name)
            result = FunctionResult.failure(
                EXECUTION_ERROR,
                str(exc) or "Function execution failed",
                details={"type": type(exc).__name__, "message": str(exc)},
            )

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_tool_execution(
            name,
            result.status,
            error_code=result.error.code if result.error else None,
            latency_ms=elapsed,
        )
        logger.info("Function %s finished: %s (%.0fms)", name, result.status, elapsed)
        return result

    # ── Customers ────────────────────────────────────────────────────

    def _create_customer(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        payload = {
            "type": args.get("type") or "RESIDENTIAL",
            "firstName": args.get("firstName"),
            "lastName": args.get("lastName"),
            "companyName": args.get("companyName"),
            "email": args.get("email"),
            "mobilePhone": args.get("phone"),
            "notes": args.get("notes"),
            "street": args.get("street"),
            "city": args.get("city"),
            "state": args.get("state"),
            "zip": args.get("zip"),
        }
        customer = self._backend.create_customer(
            tenant_id, {k: v for k, v in payload.items() if v is not None},
        )
        summary = _customer_summary(customer)
        logger.info("Customer created: %s (%s)", customer["id"], summary["customerNumber"])
        return FunctionResult.success({
            **summary,
            "message": (
                f"Customer {summary['name']} created successfully "
                f"(customer number {summary['customerNumber']})"
            ),
        })

    def _search_customer(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        limit = int(args.get("limit") or DEFAULT_SEARCH_LIMIT)

        # Exact identifiers beat fuzzy search
        if args.get("customerId"):
            customer = self._backend.get_customer(tenant_id, args["customerId"])
            return self._search_result([customer] if customer else [], "No customer found with that ID")

        if args.get("customerNumber"):
            customer = self._backend.get_customer_by_number(tenant_id, args["customerNumber"])
            return self._search_result([customer] if customer else [], "No customer found with that number")

        text = next(filter(None, (_text_arg(args, k) for k in ("query", "phone", "email"))), None)
        if text:
            customers = self._backend.search_customers(tenant_id, text, limit=limit)
            return self._search_result(customers[:limit], f'No customers matched "{text}"')

        customers = self._backend.list_customers(tenant_id, limit=limit)
        return self._search_result(customers, "No customers on file yet")

    @staticmethod
    def _search_result(customers: list[Record], empty_message: str) -> FunctionResult:
        data: dict[str, Any] = {
            "customers": [_customer_summary(c) for c in customers],
            "count": len(customers),
        }
        if not customers:
            data["message"] = empty_message
        return FunctionResult.success(data)

    def _get_customer(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        customer = self._backend.get_customer(tenant_id, args.get("customerId") or "")
        if customer is None:
            return FunctionResult.failure(NOT_FOUND, f"Customer with ID {args.get('customerId')} not found")
        return FunctionResult.success({**_customer_summary(customer), "notes": customer.get("notes")})

    def _update_customer(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        customer_id = args.get("customerId") or ""
        if self._backend.get_customer(tenant_id, customer_id) is None:
            return FunctionResult.failure(NOT_FOUND, f"Customer with ID {customer_id} not found")

        field_map = {
            "firstName": "firstName",
            "lastName": "lastName",
            "companyName": "companyName",
            "email": "email",
            "phone": "mobilePhone",
            "notes": "notes",
        }
        updates = {target: args[source] for source, target in field_map.items() if args.get(source) is not None}
        if not updates:
            return FunctionResult.failure(VALIDATION_ERROR, "No customer fields were provided to update.")

        customer = self._backend.update_customer(tenant_id, customer_id, updates)
        if customer is None:
            return FunctionResult.failure(NOT_FOUND, f"Customer with ID {customer_id} not found")
        summary = _customer_summary(customer)
        return FunctionResult.success({
            **summary,
            "updatedFields": sorted(updates),
            "message": f"Customer {summary['name']} updated successfully",
        })

    def _add_address(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        customer_id = args.get("customerId") or ""
        address = self._backend.add_address(tenant_id, customer_id, {
            "type": args.get("type") or "SERVICE",
            "street": args.get("street"),
            "city": args.get("city"),
            "state": args.get("state"),
            "zip": args.get("zip"),
            "isPrimary": bool(args.get("isPrimary")),
            "accessNotes": args.get("accessNotes"),
        })
        if address is None:
            return FunctionResult.failure(NOT_FOUND, f"Customer with ID {customer_id} not found")
        return FunctionResult.success({
            **_address_summary(address),
            "customerId": customer_id,
            "message": f"Address {address.get('street')}, {address.get('city')} added to customer",
        })

    # ── Jobs ─────────────────────────────────────────────────────────

    def _resolve_job(self, args: dict[str, Any], tenant_id: str) -> Record | None:
        job = None
        if args.get("jobId"):
            job = self._backend.get_job(tenant_id, args["jobId"])
        if job is None and args.get("jobNumber"):
            job = self._backend.get_job_by_number(tenant_id, args["jobNumber"])
        return job

    @staticmethod
    def _job_reference(args: dict[str, Any]) -> str:
        return str(args.get("jobNumber") or args.get("jobId") or "?")

    def _create_job(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        customer_id = args.get("customerId") or ""
        customer = self._backend.get_customer(tenant_id, customer_id)
        if customer is None:
            return FunctionResult.failure(NOT_FOUND, f"Customer with ID {customer_id} not found")

        address_id = _resolve_address_id(customer, args.get("addressId"))
        if address_id is None:
            if args.get("addressId"):
                message = (
                    f"Address {args['addressId']} does not belong to customer {_display_name(customer)}."
                )
            else:
                message = (
                    f"Customer {_display_name(customer)} has no address on file. "
                    "Add a service address before creating a job."
                )
            return FunctionResult.failure(VALIDATION_ERROR, message, details={"customerId": customer_id})

        priority = _PRIORITY_MAP.get(str(args.get("priority") or "medium").lower(), "NORMAL")
        job = self._backend.create_job(tenant_id, {
            "customerId": customer_id,
            "addressId": address_id,
            "title": args.get("jobType"),
            "description": args.get("problem"),
            "priority": priority,
            "scheduledStart": args.get("scheduledDate"),
            "assignedTo": args.get("assignedTo"),
            "createdById": user_id,
        })
        summary = _job_summary(job)
        return FunctionResult.success({
            **summary,
            "message": f"Job {summary['jobNumber']} created for {_display_name(customer)}",
        })

    def _get_job_status(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        if not (args.get("jobId") or args.get("jobNumber")):
            return FunctionResult.failure(VALIDATION_ERROR, "A job ID or job number is required.")
        job = self._resolve_job(args, tenant_id)
        if job is None:
            return FunctionResult.failure(NOT_FOUND, f"Job {self._job_reference(args)} not found")

        data = {
            **_job_summary(job),
            "message": f"Job {job.get('jobNumber')} is {job.get('status')}",
        }
        if args.get("includeHistory"):
            data["history"] = job.get("statusHistory") or []
        return FunctionResult.success(data)

    def _update_job(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        if not (args.get("jobId") or args.get("jobNumber")):
            return FunctionResult.failure(VALIDATION_ERROR, "A job ID or job number is required.")
        job = self._resolve_job(args, tenant_id)
        if job is None:
            return FunctionResult.failure(NOT_FOUND, f"Job {self._job_reference(args)} not found")

        updates: dict[str, Any] = {}
        if args.get("status"):
            updates["status"] = str(args["status"]).upper()
        if args.get("priority"):
            updates["priority"] = _PRIORITY_MAP.get(str(args["priority"]).lower(), "NORMAL")
        if args.get("scheduledDate"):
            updates["scheduledStart"] = args["scheduledDate"]
        if args.get("problem") is not None:
            updates["description"] = args["problem"]
        if args.get("notes") is not None:
            updates["internalNotes"] = args["notes"]
        if not updates:
            return FunctionResult.failure(VALIDATION_ERROR, "No job fields were provided to update.")

        updated = self._backend.update_job(tenant_id, job["id"], updates)
        if updated is None:
            return FunctionResult.failure(NOT_FOUND, f"Job {self._job_reference(args)} not found")
        return FunctionResult.success({
            **_job_summary(updated),
            "updatedFields": sorted(updates),
            "message": f"Job {updated.get('jobNumber')} updated successfully",
        })

    # ── Invoices ─────────────────────────────────────────────────────

    def _update_invoice(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        if not (args.get("invoiceId") or args.get("invoiceNumber")):
            return FunctionResult.failure(VALIDATION_ERROR, "An invoice ID or invoice number is required.")

        invoice = None
        if args.get("invoiceId"):
            invoice = self._backend.get_invoice(tenant_id, args["invoiceId"])
        if invoice is None and args.get("invoiceNumber"):
            invoice = self._backend.get_invoice_by_number(tenant_id, args["invoiceNumber"])
        if invoice is None:
            reference = args.get("invoiceNumber") or args.get("invoiceId")
            return FunctionResult.failure(NOT_FOUND, f"Invoice {reference} not found")

        intent = parse_invoice_intent(args)
        if isinstance(intent, RecordPayment):
            return self._record_payment(invoice, intent, tenant_id)
        return self._update_invoice_fields(invoice, intent, tenant_id)

    def _record_payment(self, invoice: Record, payment: RecordPayment, tenant_id: str) -> FunctionResult:
        if payment.amount <= 0:
            return FunctionResult.failure(VALIDATION_ERROR, "Payment amount must be greater than zero.")
        if payment.method not in PAYMENT_METHODS:
            return FunctionResult.failure(
                VALIDATION_ERROR,
                f"Unsupported payment method {payment.method}. "
                f"Use one of: {', '.join(sorted(PAYMENT_METHODS))}.",
            )

        updated = self._backend.add_payment(
            tenant_id, invoice["id"], amount=payment.amount, method=payment.method, notes=payment.notes,
        )
        if updated is None:
            return FunctionResult.failure(NOT_FOUND, f"Invoice {invoice.get('invoiceNumber')} not found")
        summary = _invoice_summary(updated)
        return FunctionResult.success({
            **summary,
            "payment": {"amount": payment.amount, "method": payment.method},
            "message": (
                f"Payment of ${payment.amount:,.2f} recorded on invoice {summary['invoiceNumber']}; "
                f"status is now {summary['status']}"
            ),
        })

    def _update_invoice_fields(
        self, invoice: Record, intent: UpdateInvoiceFields, tenant_id: str,
    ) -> FunctionResult:
        if not intent.fields:
            return FunctionResult.failure(VALIDATION_ERROR, "No invoice fields were provided to update.")
        updated = self._backend.update_invoice(tenant_id, invoice["id"], intent.fields)
        if updated is None:
            return FunctionResult.failure(NOT_FOUND, f"Invoice {invoice.get('invoiceNumber')} not found")
        summary = _invoice_summary(updated)
        return FunctionResult.success({
            **summary,
            "updatedFields": sorted(intent.fields),
            "message": f"Invoice {summary['invoiceNumber']} updated successfully",
        })

    # ── Notifications ────────────────────────────────────────────────

    def _send_notification(self, args: dict[str, Any], tenant_id: str, user_id: str) -> FunctionResult:
        # TODO: deliver through SNS (sms/push) and SES (email); acknowledged only for now
        notification_id = f"notif-{uuid.uuid4().hex[:12]}"
        logger.info(
            "Notification %s accepted for %s via %s (delivery not wired)",
            notification_id, args.get("to"), args.get("channel"),
        )
        return FunctionResult.success({
            "notificationId": notification_id,
            "to": args.get("to"),
            "channel": args.get("channel"),
            "status": "queued",
            "message": f"Notification queued for {args.get('to')} via {args.get('channel')}",
        })
