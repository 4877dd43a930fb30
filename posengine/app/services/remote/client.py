"""HTTP client for the remote system of record (PostgREST-style REST API)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from posengine.app.schemas.cart import ProductRef
from posengine.app.schemas.checkout import PendingTransactionCreate
from posengine.app.schemas.promotions import (
    ActiveWindow,
    ComboConstituent,
    ComboDefinition,
    MultiProductBogoOffer,
    SingleBogoOffer,
)

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"


class RemoteStoreError(Exception):
    """Structured error from the remote store (4xx responses)."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Any | None = None,
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(message)


class UsageConflictError(RemoteStoreError):
    """Optimistic update of a usage counter kept losing to other terminals."""


@dataclass(frozen=True)
class ResolvedProduct:
    product_id: str
    variant_id: str | None
    name: str
    price: Decimal


# ─── Row mapping ─────────────────────────────────────────────────────────────


def _ref(product_id: str | None, variant_id: str | None) -> ProductRef:
    return ProductRef(product_id=product_id, variant_id=variant_id)


def combo_from_row(row: dict[str, Any]) -> ComboDefinition:
    items = row.get("combo_offer_items") or []
    return ComboDefinition(
        id=str(row["id"]),
        name=row["name"],
        combo_price=Decimal(str(row["combo_price"])),
        display_order=row.get("display_order") or 0,
        constituents=tuple(
            ComboConstituent(
                ref=_ref(item.get("product_id"), item.get("variant_id")),
                quantity=item.get("quantity") or 1,
            )
            for item in items
        ),
    )


def single_bogo_from_row(row: dict[str, Any]) -> SingleBogoOffer:
    return SingleBogoOffer(
        id=str(row["id"]),
        name=row["name"],
        buy=_ref(row.get("buy_product_id"), row.get("buy_variant_id")),
        buy_quantity=row.get("buy_quantity") or 1,
        get=_ref(row.get("get_product_id"), row.get("get_variant_id")),
        get_quantity=row.get("get_quantity") or 1,
        discount_percent=Decimal(str(row.get("get_discount_percentage", 100))),
        max_uses_per_transaction=row.get("max_uses_per_transaction"),
        max_total_uses=row.get("max_total_uses"),
        current_uses=row.get("current_uses") or 0,
        window=ActiveWindow(start_date=row["start_date"], end_date=row["end_date"]),
    )


def multi_bogo_from_row(row: dict[str, Any]) -> MultiProductBogoOffer:
    items = row.get("multi_product_bogo_items") or []
    return MultiProductBogoOffer(
        id=str(row["id"]),
        name=row["name"],
        items=frozenset(
            _ref(item.get("product_id"), item.get("variant_id"))
            for item in items
            if item.get("product_id") or item.get("variant_id")
        ),
        discount_percent=Decimal(str(row.get("discount_percentage") or 50)),
        window=ActiveWindow(start_date=row["start_date"], end_date=row["end_date"]),
    )


def transaction_to_row(record: PendingTransactionCreate, *, from_offline: bool) -> dict[str, Any]:
    data = record.model_dump(mode="json")
    amount_paid = sum((Decimal(str(p["amount"])) for p in record.payments), Decimal("0"))
    return {
        "id": data["id"],
        "store_id": data["store_id"],
        "cashier_id": data["cashier_id"],
        "customer_id": data["customer_id"],
        "subtotal": data["subtotal"],
        "discount": data["discount"],
        "tax": data["tax"],
        "total": data["total"],
        "amount_paid": str(amount_paid),
        "payment_method": data["payment_method"],
        "payment_details": data["payments"],
        "notes": data["notes"],
        "items": data["items"],
        "created_at": data["timestamp"],
        "metadata": {
            "synced_from_offline": from_offline,
            "order_id": data["order_id"],
        },
    }


# ─── Client ──────────────────────────────────────────────────────────────────


class RemoteStoreClient:
    """Async client for the tables the settlement engine reads and writes."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _handle_response(resp: httpx.Response) -> Any:
        """Return the decoded body; raise on error statuses.

        5xx propagate as :class:`httpx.HTTPStatusError` so callers treat them
        like any other transport failure. 4xx carry PostgREST error payloads
        and are raised as :class:`RemoteStoreError`.
        """
        if resp.status_code >= 500:
            resp.raise_for_status()

        if resp.status_code >= 400:
            try:
                body: Any = resp.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            raise RemoteStoreError(
                status_code=resp.status_code,
                error_code=str(body.get("code") or "UNKNOWN"),
                message=body.get("message") or resp.text or f"HTTP {resp.status_code}",
                details=body.get("details"),
            )

        if resp.status_code == 204 or not resp.content:
            return []
        try:
            return resp.json()
        except ValueError:
            raise RemoteStoreError(
                status_code=resp.status_code,
                error_code="PARSE_ERROR",
                message=f"Non-JSON response: {resp.text[:200]}",
            )

    async def _get(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        async with self._client() as client:
            resp = await client.get(
                f"{REST_PREFIX}/{table}", params=params, headers=self._headers()
            )
            return self._handle_response(resp)

    # ── Promotions ──────────────────────────────────────────────────────

    async def fetch_combo_offers(self) -> list[ComboDefinition]:
        rows = await self._get(
            "combo_offers",
            {
                "select": "*,combo_offer_items(*)",
                "is_active": "eq.true",
                "order": "display_order.asc",
            },
        )
        return [combo_from_row(row) for row in rows]

    async def fetch_single_bogo_offers(self) -> list[SingleBogoOffer]:
        rows = await self._get(
            "bogo_offers",
            {"select": "*", "is_active": "eq.true", "order": "display_order.asc"},
        )
        return [single_bogo_from_row(row) for row in rows]

    async def fetch_multi_bogo_offers(self) -> list[MultiProductBogoOffer]:
        rows = await self._get(
            "multi_product_bogo_offers",
            {
                "select": "*,multi_product_bogo_items(*)",
                "is_active": "eq.true",
                "order": "display_order.asc",
            },
        )
        return [multi_bogo_from_row(row) for row in rows]

    async def fetch_product(self, ref: ProductRef) -> ResolvedProduct:
        """Look up the current catalog price of a product or variant."""
        if ref.variant_id:
            rows = await self._get(
                "product_variants",
                {"select": "id,product_id,name,price", "id": f"eq.{ref.variant_id}"},
            )
        else:
            rows = await self._get(
                "products",
                {"select": "id,name,price", "id": f"eq.{ref.product_id}"},
            )
        if not rows:
            raise RemoteStoreError(
                status_code=404,
                error_code="NOT_FOUND",
                message=f"Product {ref.variant_id or ref.product_id} not found",
            )
        row = rows[0]
        return ResolvedProduct(
            product_id=str(row.get("product_id") or ref.product_id or row["id"]),
            variant_id=ref.variant_id,
            name=row.get("name") or "",
            price=Decimal(str(row["price"])),
        )

    async def increment_bogo_usage(
        self, offer_id: str, by: int = 1, max_retries: int = 3
    ) -> int:
        """Read-then-conditional-write increment of ``bogo_offers.current_uses``.

        The PATCH only matches while ``current_uses`` still holds the value we
        read, so two terminals sharing one offer pool never overwrite each
        other. Returns the stored count.
        """
        for _attempt in range(max_retries):
            rows = await self._get(
                "bogo_offers",
                {"select": "id,current_uses,max_total_uses", "id": f"eq.{offer_id}"},
            )
            if not rows:
                raise RemoteStoreError(404, "NOT_FOUND", f"BOGO offer {offer_id} not found")
            current = rows[0].get("current_uses") or 0
            cap = rows[0].get("max_total_uses")
            target = current + by
            if cap is not None:
                target = min(target, cap)
            if target == current:
                return current

            async with self._client() as client:
                resp = await client.patch(
                    f"{REST_PREFIX}/bogo_offers",
                    params={"id": f"eq.{offer_id}", "current_uses": f"eq.{current}"},
                    json={"current_uses": target},
                    headers=self._headers(prefer="return=representation"),
                )
                updated = self._handle_response(resp)
            if updated:
                return target
            logger.info("Usage counter for offer %s moved underneath us; retrying", offer_id)

        raise UsageConflictError(
            status_code=409,
            error_code="USAGE_CONFLICT",
            message=f"Could not update usage counter of offer {offer_id}",
        )

    # ── Transactions ────────────────────────────────────────────────────

    async def upsert_transaction(
        self, record: PendingTransactionCreate, *, from_offline: bool = False
    ) -> None:
        """Write a settled sale keyed by its client-generated id.

        Re-sending an id that is already stored is a success: the write is
        an upsert, and a duplicate-key 409 from older schemas is swallowed.
        """
        async with self._client() as client:
            resp = await client.post(
                f"{REST_PREFIX}/pos_transactions",
                params={"on_conflict": "id"},
                json=transaction_to_row(record, from_offline=from_offline),
                headers=self._headers(prefer="resolution=merge-duplicates,return=minimal"),
            )
        if resp.status_code == 409:
            logger.info("Transaction %s already stored remotely", record.id)
            return
        self._handle_response(resp)

    async def convert_order(
        self, order_id: str, transaction_id: str, payment_method: str
    ) -> None:
        """Mark an online order as completed and paid at the till."""
        async with self._client() as client:
            resp = await client.patch(
                f"{REST_PREFIX}/orders",
                params={"id": f"eq.{order_id}"},
                json={
                    "status": "completed",
                    "payment_status": "paid",
                    "pos_transaction_id": transaction_id,
                    "payment_method": payment_method,
                },
                headers=self._headers(prefer="return=minimal"),
            )
        self._handle_response(resp)

    async def ping(self) -> bool:
        """True when the remote store answers at all (any non-5xx status)."""
        try:
            async with self._client() as client:
                resp = await client.get(f"{REST_PREFIX}/", headers=self._headers())
        except httpx.HTTPError:
            return False
        return resp.status_code < 500
