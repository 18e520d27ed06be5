"""HTTP client for the field-service REST API with retry logic and timeout
handling.

Implements ``aira.services.backend.FieldServiceBackend``.  Every request
carries the tenant in the ``X-Tenant-ID`` header; the API scopes all reads
and writes to that tenant.  List endpoints answer ``{"customers": [...],
"total": n}`` and single-record endpoints ``{"customer": {...}}``.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from aira.config import FIELD_API_BASE_URL, FIELD_API_TOKEN
from aira.services.backend import BackendError, Record
from aira.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

# Safe to resend after a lost response or a server error
IDEMPOTENT_METHODS = frozenset({"GET", "PUT", "DELETE"})
# The connection was never established, so the server saw nothing
_NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


class FieldAPIError(BackendError):
    """Raised when a field-service API call fails after all retries."""


def _unwrap(data: Any, key: str) -> Any:
    """Return ``data[key]`` when the API wrapped the payload, else ``data``."""
    if isinstance(data, dict) and key in data:
        return data[key]
    return data


class FieldAPIClient:
    """Thin wrapper around the field-service REST API with automatic retries.

    Reads return ``None`` on 404 so the executor can report ``NOT_FOUND``;
    every other 4xx is raised immediately with the API's message.  Reads and
    updates are retried on 5xx and transport errors with exponential backoff;
    creates and payments only when the connection could not be made.
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        self._base_url = base_url or FIELD_API_BASE_URL
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {token or FIELD_API_TOKEN}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    def _request(
        self,
        method: str,
        path: str,
        tenant_id: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        """Execute an HTTP request with exponential-backoff retries.

        Non-idempotent methods (POST) are only retried when the connection
        could not be made; after a timeout or 5xx the write may already be
        applied, so they raise at once.
        """
        operation = f"{method} /{path.strip('/').split('/')[0]}"
        idempotent = method.upper() in IDEMPOTENT_METHODS
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(
                    method,
                    path,
                    params=params,
                    json=json_body,
                    headers={"X-Tenant-ID": tenant_id},
                )
                elapsed = (time.perf_counter() - t0) * 1000
                if response.status_code == 404 and allow_not_found:
                    metrics.record_success("field_api", operation, latency_ms=elapsed)
                    return None
                if response.status_code >= 500:
                    raise FieldAPIError(
                        f"Server error {response.status_code}: {self._error_message(response)}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    metrics.record_failure(
                        "field_api", operation, error_type=str(response.status_code), latency_ms=elapsed,
                    )
                    raise FieldAPIError(
                        self._error_message(response), status_code=response.status_code,
                    )
                metrics.record_success("field_api", operation, latency_ms=elapsed)
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                metrics.record_failure("field_api", operation, error_type=type(exc).__name__)
                if not idempotent and not isinstance(exc, _NOT_SENT_ERRORS):
                    logger.error(
                        "Field API %s %s failed with %s; outcome unknown, not retrying",
                        method, path, type(exc).__name__,
                    )
                    raise FieldAPIError(
                        f"Field API {method} {path} did not complete ({type(exc).__name__}); "
                        "the change may or may not have been applied"
                    ) from exc
                logger.warning(
                    "Field API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except FieldAPIError as exc:
                if not (exc.status_code and exc.status_code >= 500):
                    raise  # 4xx errors are not retried
                last_error = exc
                metrics.record_failure("field_api", operation, error_type="5xx")
                if not idempotent:
                    raise
                logger.warning(
                    "Field API server error on attempt %d/%d. Retrying…",
                    attempt,
                    MAX_RETRIES,
                )

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise FieldAPIError(
            f"Field API request failed after {MAX_RETRIES} retries: {last_error}"
        )

    def _find_exact(
        self, path: str, tenant_id: str, key: str, field: str, value: str,
    ) -> Record | None:
        """Search a list endpoint and return the record whose *field* equals *value*."""
        data = self._request("GET", path, tenant_id, params={"search": value, "limit": 5})
        wanted = str(value).strip().upper()
        for record in _unwrap(data, key) or []:
            if str(record.get(field, "")).upper() == wanted:
                return record
        return None

    # ── Customers ────────────────────────────────────────────────────

    def create_customer(self, tenant_id: str, data: Record) -> Record:
        body = self._request("POST", "/customers", tenant_id, json_body=data)
        return _unwrap(body, "customer")

    def get_customer(self, tenant_id: str, customer_id: str) -> Record | None:
        body = self._request("GET", f"/customers/{customer_id}", tenant_id, allow_not_found=True)
        return _unwrap(body, "customer") if body is not None else None

    def get_customer_by_number(self, tenant_id: str, customer_number: str) -> Record | None:
        return self._find_exact("/customers", tenant_id, "customers", "customerNumber", customer_number)

    def search_customers(self, tenant_id: str, query: str, limit: int = 10) -> list[Record]:
        body = self._request("GET", "/customers", tenant_id, params={"search": query, "limit": limit})
        return list(_unwrap(body, "customers") or [])

    def list_customers(self, tenant_id: str, limit: int = 10) -> list[Record]:
        body = self._request("GET", "/customers", tenant_id, params={"limit": limit})
        return list(_unwrap(body, "customers") or [])

    def update_customer(self, tenant_id: str, customer_id: str, updates: Record) -> Record | None:
        body = self._request(
            "PUT", f"/customers/{customer_id}", tenant_id, json_body=updates, allow_not_found=True,
        )
        return _unwrap(body, "customer") if body is not None else None

    def add_address(self, tenant_id: str, customer_id: str, address: Record) -> Record | None:
        body = self._request(
            "POST", f"/customers/{customer_id}/addresses", tenant_id,
            json_body=address, allow_not_found=True,
        )
        return _unwrap(body, "address") if body is not None else None

    # ── Jobs ─────────────────────────────────────────────────────────

    def create_job(self, tenant_id: str, data: Record) -> Record:
        body = self._request("POST", "/jobs", tenant_id, json_body=data)
        return _unwrap(body, "job")

    def get_job(self, tenant_id: str, job_id: str) -> Record | None:
        body = self._request("GET", f"/jobs/{job_id}", tenant_id, allow_not_found=True)
        return _unwrap(body, "job") if body is not None else None

    def get_job_by_number(self, tenant_id: str, job_number: str) -> Record | None:
        return self._find_exact("/jobs", tenant_id, "jobs", "jobNumber", job_number)

    def update_job(self, tenant_id: str, job_id: str, updates: Record) -> Record | None:
        body = self._request(
            "PUT", f"/jobs/{job_id}", tenant_id, json_body=updates, allow_not_found=True,
        )
        return _unwrap(body, "job") if body is not None else None

    # ── Invoices ─────────────────────────────────────────────────────

    def get_invoice(self, tenant_id: str, invoice_id: str) -> Record | None:
        body = self._request("GET", f"/invoices/{invoice_id}", tenant_id, allow_not_found=True)
        return _unwrap(body, "invoice") if body is not None else None

    def get_invoice_by_number(self, tenant_id: str, invoice_number: str) -> Record | None:
        return self._find_exact("/invoices", tenant_id, "invoices", "invoiceNumber", invoice_number)

    def update_invoice(self, tenant_id: str, invoice_id: str, updates: Record) -> Record | None:
        body = self._request(
            "PUT", f"/invoices/{invoice_id}", tenant_id, json_body=updates, allow_not_found=True,
        )
        return _unwrap(body, "invoice") if body is not None else None

    def add_payment(
        self, tenant_id: str, invoice_id: str, *, amount: float, method: str, notes: str | None = None,
    ) -> Record | None:
        """Record a payment; the API recalculates balance and status.

        Returns the refreshed invoice, or ``None`` if it does not exist.
        """
        payment = self._request(
            "POST", f"/invoices/{invoice_id}/payments", tenant_id,
            json_body={"amount": amount, "method": method, "notes": notes},
            allow_not_found=True,
        )
        if payment is None:
            return None
        return self.get_invoice(tenant_id, invoice_id)

    def close(self) -> None:
        """Release the pooled HTTP connections."""
        self._client.close()
