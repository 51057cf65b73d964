from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from fencequote.core.errors import InvalidPricingData, PersistenceFailure
from fencequote.core.logging_config import logger
from fencequote.domain.models import (
    D,
    ZERO,
    CommunityProduct,
    LineItem,
    LineType,
    PricingContext,
    RateSheetItem,
    ResolvedPrice,
    to_decimal,
)
from fencequote.pricing.calculator import resolve_price_with_community_override
from fencequote.pricing.resolver import RateSheetRepository
from fencequote.pricing.rpc_client import RpcPriceClient
from fencequote.repositories.base import PricingDataSource

LABOR_CATALOG_UNIT = D("100")


@dataclass(frozen=True)
class LineRequest:
    sku_id: str
    quantity: D
    line_id: Optional[str] = None


@dataclass(frozen=True)
class LinePricingError:
    sku_id: str
    code: str
    message: str


class PricingService:
    """
    Prices SKUs for a quote context.

    With an RPC client configured the hosted resolver is asked first and the
    local cascade is the fallback; otherwise the local cascade runs alone.
    """

    def __init__(
        self,
        data: PricingDataSource,
        repository: RateSheetRepository,
        rpc: Optional[RpcPriceClient] = None,
    ):
        self.data = data
        self.repository = repository
        self.rpc = rpc

    async def resolve(self, sku_id: str, base_cost, context: PricingContext) -> ResolvedPrice:
        base_cost = to_decimal(base_cost)
        if base_cost is None:
            raise InvalidPricingData(
                f"No base cost for SKU {sku_id}", code="MISSING_BASE_COST", meta={"sku_id": sku_id}
            )

        if self.rpc is not None:
            try:
                return await self.rpc.get_resolved_price(sku_id, base_cost, context)
            except PersistenceFailure:
                logger.warning("rpc_price_fallback_local", sku_id=sku_id)
                result = await self.resolve_local(sku_id, base_cost, context)
                return replace(result, degraded=True)

        return await self.resolve_local(sku_id, base_cost, context)

    async def resolve_local(self, sku_id: str, base_cost: D, context: PricingContext) -> ResolvedPrice:
        effective = await self.repository.resolve(context)
        degraded = effective.degraded

        products: Dict[str, CommunityProduct] = {}
        if context.community_id:
            try:
                products = await self.data.get_community_products(context.community_id)
            except PersistenceFailure as e:
                logger.warning("community_products_lookup_failed", community_id=context.community_id, error=e.message)
                degraded = True

        items: Dict[str, RateSheetItem] = {}
        if effective.rate_sheet_id:
            try:
                item = await self.data.get_rate_sheet_item(effective.rate_sheet_id, sku_id)
            except PersistenceFailure as e:
                logger.warning("rate_sheet_item_lookup_failed", rate_sheet_id=effective.rate_sheet_id, error=e.message)
                item = None
                degraded = True
            if item is not None:
                items[sku_id] = item

        result = resolve_price_with_community_override(
            sku_id,
            base_cost,
            items,
            effective.rate_sheet,
            products,
            source=effective.source,
        )

        logger.bind(sku_id=sku_id, method=result.pricing_method.value, source=result.source.value).debug(
            "price_resolved"
        )
        return replace(result, degraded=degraded) if degraded else result

    async def labor_cost_per_foot(self, sku, qbo_class_id: Optional[str]) -> D:
        if qbo_class_id:
            bu_cost = await self.data.get_labor_cost(sku.id, qbo_class_id)
            if bu_cost is not None:
                return to_decimal(bu_cost)
        if sku.standard_labor_cost is not None:
            return to_decimal(sku.standard_labor_cost) / LABOR_CATALOG_UNIT
        return ZERO

    async def price_sku_line(
        self,
        sku_id: str,
        quantity,
        context: PricingContext,
        line_id: Optional[str] = None,
    ) -> LineItem:
        sku = await self.data.get_sku(sku_id)
        if sku is None:
            raise InvalidPricingData(f"Unknown SKU {sku_id}", code="UNKNOWN_SKU", meta={"sku_id": sku_id})

        qty = to_decimal(quantity) or ZERO
        if qty < 0:
            raise InvalidPricingData("Quantity must not be negative", meta={"sku_id": sku_id, "quantity": str(qty)})

        material = to_decimal(sku.standard_cost_per_foot) or ZERO
        labor = await self.labor_cost_per_foot(sku, context.business_unit_class_id)
        resolved = await self.resolve(sku_id, material, context)

        return LineItem(
            id=line_id or str(uuid.uuid4()),
            line_type=LineType.MATERIAL,
            quantity=qty,
            unit_price=resolved.price,
            unit_cost=material + labor,
            material_unit_cost=material,
            labor_unit_cost=labor,
            sku_id=sku_id,
            pricing_source=resolved.pricing_source_label,
            description=sku.sku_name,
        )

    async def price_lines(
        self,
        requests: Sequence[LineRequest],
        context: PricingContext,
    ) -> Tuple[List[LineItem], List[LinePricingError]]:
        """Bad data on one SKU rejects that line only."""
        lines: List[LineItem] = []
        errors: List[LinePricingError] = []
        for req in requests:
            try:
                lines.append(await self.price_sku_line(req.sku_id, req.quantity, context, req.line_id))
            except InvalidPricingData as e:
                logger.warning("line_pricing_rejected", sku_id=req.sku_id, code=e.code, error=e.message)
                errors.append(LinePricingError(sku_id=req.sku_id, code=e.code, message=e.message))
        return lines, errors
