"""
Client for the hosted ``get_resolved_price`` RPC (PostgREST).

The RPC runs the same cascade server side. Transport errors and 5xx are
retried; anything still failing surfaces as ``PersistenceFailure``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from fencequote.core.errors import PersistenceFailure
from fencequote.core.logging_config import logger
from fencequote.domain.models import D, PriceSource, PricingContext, PricingMethod, ResolvedPrice, q2, to_decimal
from fencequote.infra.retry import retry_async

RPC_PATH = "/rest/v1/rpc/get_resolved_price"

# pricing_source labels returned by the RPC
SOURCE_LABELS: Dict[str, PriceSource] = {
    "Community Price Override": PriceSource.COMMUNITY,
    "Community Rate Sheet": PriceSource.COMMUNITY,
    "Client Rate Sheet": PriceSource.CLIENT,
    "BU Default Rate Sheet": PriceSource.BUSINESS_UNIT,
    "No Rate Sheet": PriceSource.NONE,
}


class RpcServerError(Exception):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body[:200]}")


def _is_retryable(e: Exception) -> bool:
    return isinstance(e, (httpx.TransportError, RpcServerError))


def parse_rpc_row(row: Optional[Dict[str, Any]], base_cost: D) -> ResolvedPrice:
    if not row:
        return ResolvedPrice(price=q2(base_cost), pricing_method=PricingMethod.COST_ONLY)

    method = PricingMethod(row.get("pricing_method") or "cost_only")
    source = SOURCE_LABELS.get(row.get("pricing_source") or "", PriceSource.NONE)
    name = row.get("rate_sheet_name")
    if method is PricingMethod.COMMUNITY_OVERRIDE:
        name = row.get("pricing_source") or name

    return ResolvedPrice(
        price=q2(to_decimal(row.get("price")) if row.get("price") is not None else base_cost),
        pricing_method=method,
        source=source,
        labor_price=to_decimal(row.get("labor_price")),
        material_price=to_decimal(row.get("material_price")),
        rate_sheet_id=row.get("rate_sheet_id"),
        rate_sheet_name=name,
    )


class RpcPriceClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 5.0,
        attempts: int = 3,
        backoff_base: float = 0.2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.attempts = attempts
        self.backoff_base = backoff_base
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> Optional["RpcPriceClient"]:
        if not (settings.RPC_PRICING_ENABLED and settings.SUPABASE_URL and settings.SUPABASE_ANON_KEY):
            return None
        return cls(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            timeout=settings.RPC_TIMEOUT_SECONDS,
            attempts=settings.RPC_RETRY_ATTEMPTS,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, payload: Dict[str, Any]) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            r = await client.post(RPC_PATH, json=payload, headers=self._headers())
        if r.status_code >= 500:
            raise RpcServerError(r.status_code, r.text)
        r.raise_for_status()
        return r.json()

    async def get_resolved_price(self, sku_id: str, base_cost: D, context: PricingContext) -> ResolvedPrice:
        payload = {
            "p_sku_id": sku_id,
            "p_base_cost": str(base_cost),
            "p_community_id": context.community_id,
            "p_client_id": context.client_id,
            "p_qbo_class_id": context.business_unit_class_id,
        }
        try:
            data = await retry_async(
                lambda: self._post(payload),
                attempts=self.attempts,
                base=self.backoff_base,
                is_retryable=_is_retryable,
            )
        except (httpx.HTTPError, RpcServerError, ValueError) as e:
            logger.warning("rpc_price_failed", sku_id=sku_id, error=repr(e))
            raise PersistenceFailure(
                f"get_resolved_price failed for SKU {sku_id}",
                meta={"sku_id": sku_id},
            ) from e

        row = data[0] if isinstance(data, list) and data else (data if isinstance(data, dict) else None)
        return parse_rpc_row(row, base_cost)
