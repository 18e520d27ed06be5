"""Business-data collaborators used by the function executor.

``FieldServiceBackend`` is the contract the executor depends on: tenant-scoped
create / get / search / update operations that return plain ``dict`` records
(camelCase keys, as the field-service REST API returns them) or ``None`` when
nothing matches.  Implementations may raise; the executor catches everything.

Two implementations ship with the package:

* ``aira.services.field_api_client.FieldAPIClient`` — production, talks to the
  field-service REST API.
* ``InMemoryBackend`` (below) — thread-safe in-process store for local
  development, the CLI and the test-suite.  It reproduces the record-keeping
  rules of the real services (number sequences, primary address flag,
  payment → balance/status recalculation).
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class BackendError(Exception):
    """Raised by a collaborator when an operation is rejected or fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class FieldServiceBackend(Protocol):
    """Customer / job / invoice operations, all keyed by tenant."""

    def create_customer(self, tenant_id: str, data: Record) -> Record: ...

    def get_customer(self, tenant_id: str, customer_id: str) -> Record | None: ...

    def get_customer_by_number(self, tenant_id: str, customer_number: str) -> Record | None: ...

    def search_customers(self, tenant_id: str, query: str, limit: int = 10) -> list[Record]: ...

    def list_customers(self, tenant_id: str, limit: int = 10) -> list[Record]: ...

    def update_customer(self, tenant_id: str, customer_id: str, updates: Record) -> Record | None: ...

    def add_address(self, tenant_id: str, customer_id: str, address: Record) -> Record | None: ...

    def create_job(self, tenant_id: str, data: Record) -> Record: ...

    def get_job(self, tenant_id: str, job_id: str) -> Record | None: ...

    def get_job_by_number(self, tenant_id: str, job_number: str) -> Record | None: ...

    def update_job(self, tenant_id: str, job_id: str, updates: Record) -> Record | None: ...

    def get_invoice(self, tenant_id: str, invoice_id: str) -> Record | None: ...

    def get_invoice_by_number(self, tenant_id: str, invoice_number: str) -> Record | None: ...

    def update_invoice(self, tenant_id: str, invoice_id: str, updates: Record) -> Record | None: ...

    def add_payment(
        self, tenant_id: str, invoice_id: str, *, amount: float, method: str, notes: str | None = None,
    ) -> Record | None: ...

    def close(self) -> None: ...


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _sequence_number(prefix: str, existing: int) -> str:
    return f"{prefix}-{existing + 1:06d}"


class InMemoryBackend:
    """Process-local implementation of ``FieldServiceBackend``.

    ``known_tenants`` restricts which tenants may create customers (mirrors
    the tenant check of the real customer service); ``None`` accepts any.
    """

    def __init__(self, known_tenants: set[str] | None = None) -> None:
        self._known_tenants = {t.lower() for t in known_tenants} if known_tenants else None
        # record id → record; every record carries its tenantId
        self._customers: dict[str, Record] = {}
        self._jobs: dict[str, Record] = {}
        self._invoices: dict[str, Record] = {}
        self._lock = threading.Lock()

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _owned(store: dict[str, Record], tenant_id: str, record_id: str) -> Record | None:
        record = store.get(record_id)
        if record is None or record["tenantId"] != tenant_id:
            return None
        return record

    @staticmethod
    def _by_field(store: dict[str, Record], tenant_id: str, field: str, value: str) -> Record | None:
        wanted = str(value).strip().upper()
        for record in store.values():
            if record["tenantId"] == tenant_id and str(record.get(field, "")).upper() == wanted:
                return record
        return None

    @staticmethod
    def _count(store: dict[str, Record], tenant_id: str) -> int:
        return sum(1 for r in store.values() if r["tenantId"] == tenant_id)

    @staticmethod
    def _sorted_customers(records: list[Record]) -> list[Record]:
        return sorted(
            records,
            key=lambda c: ((c.get("firstName") or "").lower(), (c.get("lastName") or "").lower()),
        )

    # ── Customers ────────────────────────────────────────────────────

    def create_customer(self, tenant_id: str, data: Record) -> Record:
        if self._known_tenants is not None and tenant_id.lower() not in self._known_tenants:
            raise BackendError(
                f"Tenant with ID '{tenant_id}' does not exist. "
                "Please verify your tenant configuration.",
                status_code=404,
            )

        with self._lock:
            email = (data.get("email") or "").strip().lower()
            if email and any(
                c["tenantId"] == tenant_id and (c.get("email") or "").lower() == email
                for c in self._customers.values()
            ):
                raise BackendError(f"A customer with email {email} already exists", status_code=409)

            customer_id = str(uuid.uuid4())
            customer: Record = {
                "id": customer_id,
                "tenantId": tenant_id,
                "customerNumber": _sequence_number("CUST", self._count(self._customers, tenant_id)),
                "type": data.get("type") or "RESIDENTIAL",
                "firstName": data.get("firstName"),
                "lastName": data.get("lastName"),
                "companyName": data.get("companyName"),
                "email": data.get("email"),
                "mobilePhone": data.get("mobilePhone"),
                "notes": data.get("notes"),
                "addresses": [],
                "createdAt": _now(),
            }
            # A street on create becomes the primary service address
            if data.get("street"):
                customer["addresses"].append({
                    "id": str(uuid.uuid4()),
                    "type": "SERVICE",
                    "street": data["street"],
                    "city": data.get("city") or "",
                    "state": data.get("state") or "",
                    "zip": data.get("zip") or "",
                    "isPrimary": True,
                    "accessNotes": None,
                })
            self._customers[customer_id] = customer
            logger.debug("Created customer %s (%s)", customer_id, customer["customerNumber"])
            return copy.deepcopy(customer)

    def get_customer(self, tenant_id: str, customer_id: str) -> Record | None:
        with self._lock:
            customer = self._owned(self._customers, tenant_id, customer_id)
            return copy.deepcopy(customer) if customer else None

    def get_customer_by_number(self, tenant_id: str, customer_number: str) -> Record | None:
        with self._lock:
            customer = self._by_field(self._customers, tenant_id, "customerNumber", customer_number)
            return copy.deepcopy(customer) if customer else None

    def search_customers(self, tenant_id: str, query: str, limit: int = 10) -> list[Record]:
        needle = str(query).strip().lower()
        fields = ("firstName", "lastName", "companyName", "email", "mobilePhone", "customerNumber")
        with self._lock:
            matches = []
            for c in self._customers.values():
                if c["tenantId"] != tenant_id:
                    continue
                full_name = f"{c.get('firstName') or ''} {c.get('lastName') or ''}".strip().lower()
                if needle in full_name or any(needle in str(c.get(f) or "").lower() for f in fields):
                    matches.append(c)
            return copy.deepcopy(self._sorted_customers(matches)[:limit])

    def list_customers(self, tenant_id: str, limit: int = 10) -> list[Record]:
        with self._lock:
            owned = [c for c in self._customers.values() if c["tenantId"] == tenant_id]
            return copy.deepcopy(self._sorted_customers(owned)[:limit])

    def update_customer(self, tenant_id: str, customer_id: str, updates: Record) -> Record | None:
        with self._lock:
            customer = self._owned(self._customers, tenant_id, customer_id)
            if customer is None:
                return None
            for key, value in updates.items():
                if key not in ("id", "tenantId", "customerNumber", "addresses"):
                    customer[key] = value
            customer["updatedAt"] = _now()
            return copy.deepcopy(customer)

    def add_address(self, tenant_id: str, customer_id: str, address: Record) -> Record | None:
        with self._lock:
            customer = self._owned(self._customers, tenant_id, customer_id)
            if customer is None:
                return None
            is_primary = bool(address.get("isPrimary")) or not customer["addresses"]
            if is_primary:
                for existing in customer["addresses"]:
                    existing["isPrimary"] = False
            new_address = {
                "id": str(uuid.uuid4()),
                "type": address.get("type") or "SERVICE",
                "street": address["street"],
                "city": address.get("city") or "",
                "state": address.get("state") or "",
                "zip": address.get("zip") or "",
                "isPrimary": is_primary,
                "accessNotes": address.get("accessNotes"),
            }
            customer["addresses"].append(new_address)
            return copy.deepcopy(new_address)

    # ── Jobs ─────────────────────────────────────────────────────────

    def create_job(self, tenant_id: str, data: Record) -> Record:
        with self._lock:
            if self._owned(self._customers, tenant_id, data["customerId"]) is None:
                raise BackendError(f"Customer {data['customerId']} not found", status_code=404)
            job_id = str(uuid.uuid4())
            job: Record = {
                "id": job_id,
                "tenantId": tenant_id,
                "jobNumber": _sequence_number("JOB", self._count(self._jobs, tenant_id)),
                "customerId": data["customerId"],
                "addressId": data["addressId"],
                "title": data.get("title"),
                "description": data.get("description"),
                "priority": data.get("priority") or "NORMAL",
                "status": "SCHEDULED" if data.get("scheduledStart") else "UNSCHEDULED",
                "scheduledStart": data.get("scheduledStart"),
                "assignedTo": data.get("assignedTo"),
                "statusHistory": [],
                "createdAt": _now(),
            }
            job["statusHistory"].append({"fromStatus": None, "toStatus": job["status"], "at": job["createdAt"]})
            self._jobs[job_id] = job
            return copy.deepcopy(job)

    def get_job(self, tenant_id: str, job_id: str) -> Record | None:
        with self._lock:
            job = self._owned(self._jobs, tenant_id, job_id)
            return copy.deepcopy(job) if job else None

    def get_job_by_number(self, tenant_id: str, job_number: str) -> Record | None:
        with self._lock:
            job = self._by_field(self._jobs, tenant_id, "jobNumber", job_number)
            return copy.deepcopy(job) if job else None

    def update_job(self, tenant_id: str, job_id: str, updates: Record) -> Record | None:
        with self._lock:
            job = self._owned(self._jobs, tenant_id, job_id)
            if job is None:
                return None
            new_status = updates.get("status")
            if new_status and new_status != job["status"]:
                job["statusHistory"].append(
                    {"fromStatus": job["status"], "toStatus": new_status, "at": _now()},
                )
            for key, value in updates.items():
                if key not in ("id", "tenantId", "jobNumber", "statusHistory"):
                    job[key] = value
            job["updatedAt"] = _now()
            return copy.deepcopy(job)

    # ── Invoices ─────────────────────────────────────────────────────

    def create_invoice(self, tenant_id: str, data: Record) -> Record:
        """Seed an invoice (not part of the executor contract)."""
        with self._lock:
            invoice_id = str(uuid.uuid4())
            invoice: Record = {
                "id": invoice_id,
                "tenantId": tenant_id,
                "invoiceNumber": _sequence_number("INV", self._count(self._invoices, tenant_id)),
                "customerId": data.get("customerId"),
                "jobId": data.get("jobId"),
                "total": float(data.get("total", 0)),
                "amountPaid": float(data.get("amountPaid", 0)),
                "status": data.get("status") or "DRAFT",
                "notes": data.get("notes"),
                "payments": [],
                "createdAt": _now(),
            }
            self._invoices[invoice_id] = invoice
            return copy.deepcopy(invoice)

    def get_invoice(self, tenant_id: str, invoice_id: str) -> Record | None:
        with self._lock:
            invoice = self._owned(self._invoices, tenant_id, invoice_id)
            return copy.deepcopy(invoice) if invoice else None

    def get_invoice_by_number(self, tenant_id: str, invoice_number: str) -> Record | None:
        with self._lock:
            invoice = self._by_field(self._invoices, tenant_id, "invoiceNumber", invoice_number)
            return copy.deepcopy(invoice) if invoice else None

    def update_invoice(self, tenant_id: str, invoice_id: str, updates: Record) -> Record | None:
        with self._lock:
            invoice = self._owned(self._invoices, tenant_id, invoice_id)
            if invoice is None:
                return None
            for key, value in updates.items():
                if key not in ("id", "tenantId", "invoiceNumber", "payments", "amountPaid"):
                    invoice[key] = value
            if updates.get("status") == "PAID":
                invoice["paidAt"] = _now()
            invoice["updatedAt"] = _now()
            return copy.deepcopy(invoice)

    def add_payment(
        self, tenant_id: str, invoice_id: str, *, amount: float, method: str, notes: str | None = None,
    ) -> Record | None:
        with self._lock:
            invoice = self._owned(self._invoices, tenant_id, invoice_id)
            if invoice is None:
                return None
            invoice["payments"].append({
                "id": str(uuid.uuid4()),
                "amount": amount,
                "method": method,
                "status": "COMPLETED",
                "notes": notes,
                "processedAt": _now(),
            })
            invoice["amountPaid"] = invoice["amountPaid"] + amount
            invoice["status"] = "PAID" if invoice["amountPaid"] >= invoice["total"] else "PARTIAL"
            if invoice["status"] == "PAID":
                invoice["paidAt"] = _now()
                job = self._owned(self._jobs, tenant_id, invoice["jobId"]) if invoice.get("jobId") else None
                if job is not None:
                    job["status"] = "PAID"
            logger.debug(
                "Payment of %.2f recorded on %s (paid %.2f / %.2f)",
                amount, invoice["invoiceNumber"], invoice["amountPaid"], invoice["total"],
            )
            return copy.deepcopy(invoice)

    def close(self) -> None:
        """Nothing to release; present for lifecycle symmetry."""
