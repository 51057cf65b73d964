from __future__ import annotations

from fastapi import APIRouter, Depends

from fencequote.api.deps import Services, get_services
from fencequote.core.errors import InvalidPricingData
from fencequote.core.logging_config import logger
from fencequote.domain.models import Quote
from fencequote.pricing.totals import compute_totals
from fencequote.schemas.pricing_v1 import (
    ApprovalDecisionV1,
    ApprovalInputV1,
    QuoteTotalsV1,
    ResolvedPriceV1,
    ResolvePriceInputV1,
    TotalsInputV1,
)

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


@router.post("/resolve", response_model=ResolvedPriceV1)
async def resolve(payload: ResolvePriceInputV1, services: Services = Depends(get_services)) -> ResolvedPriceV1:
    context = payload.context.to_domain()
    base_cost = payload.base_cost
    if base_cost is None:
        # no explicit cost: price the catalog SKU
        sku = await services.pricing.data.get_sku(payload.sku_id)
        if sku is None:
            raise InvalidPricingData(
                f"Unknown SKU {payload.sku_id}", code="UNKNOWN_SKU", meta={"sku_id": payload.sku_id}
            )
        base_cost = sku.standard_cost_per_foot

    result = await services.pricing.resolve(payload.sku_id, base_cost, context)
    logger.bind(sku_id=payload.sku_id, source=result.source.value).info("price_resolve_request")
    return ResolvedPriceV1.from_domain(result)


@router.post("/totals", response_model=QuoteTotalsV1)
async def totals(payload: TotalsInputV1) -> QuoteTotalsV1:
    t = compute_totals(
        [li.to_domain() for li in payload.line_items],
        discount_percent=payload.discount_percent,
        tax_rate_percent=payload.tax_rate_percent,
        deposit_percent=payload.deposit_percent,
    )
    return QuoteTotalsV1.from_domain(t)


@router.post("/approval", response_model=ApprovalDecisionV1)
async def approval(payload: ApprovalInputV1, services: Services = Depends(get_services)) -> ApprovalDecisionV1:
    quote = Quote(
        id="preview",
        line_items=[li.to_domain() for li in payload.line_items],
        discount_percent=payload.discount_percent,
        tax_rate_percent=payload.tax_rate_percent,
        deposit_percent=payload.deposit_percent,
        qbo_class_id=payload.qbo_class_id,
    )
    t = compute_totals(
        quote.line_items,
        discount_percent=quote.discount_percent,
        tax_rate_percent=quote.tax_rate_percent,
        deposit_percent=quote.deposit_percent,
    )
    policy = await services.policies.policy_for(payload.qbo_class_id)
    decision = services.gate.needs_approval(t, quote, policy)
    return ApprovalDecisionV1(
        required=decision.required,
        reasons=decision.reasons,
        approval_reason=decision.approval_reason,
        totals=QuoteTotalsV1.from_domain(t),
    )
