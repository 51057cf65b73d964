"""
Unit price calculation for a single SKU.

Order: community price override -> rate sheet item override -> rate sheet
default formula -> cost. The cost fallback never raises; bad upstream
formula data (margin target >= 100%, markup that turns the price negative)
raises ``InvalidPricingData`` so the caller can reject that one line.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Mapping, Optional

from fencequote.core.errors import InvalidPricingData
from fencequote.domain.models import (
    D,
    CommunityProduct,
    ItemPricingMethod,
    PriceSource,
    PricingMethod,
    RateSheet,
    RateSheetItem,
    ResolvedPrice,
    q2,
    to_decimal,
)

HUNDRED = D("100")
COMMUNITY_OVERRIDE_NAME = "Community Price Override"


def apply_markup(base_cost: D, markup_percent: D) -> D:
    """price = cost x (1 + markup/100)"""
    if markup_percent < -HUNDRED:
        raise InvalidPricingData(
            f"Markup {markup_percent}% would produce a negative price",
            meta={"markup_percent": str(markup_percent)},
        )
    return q2(base_cost * (D("1") + markup_percent / HUNDRED))


def apply_margin(base_cost: D, margin_target_percent: D) -> D:
    """price = cost / (1 - margin/100); margin is a share of the *price*."""
    if margin_target_percent >= HUNDRED:
        raise InvalidPricingData(
            f"Margin target {margin_target_percent}% must be below 100%",
            meta={"margin_target_percent": str(margin_target_percent)},
        )
    return q2(base_cost / (D("1") - margin_target_percent / HUNDRED))


def _cost_only(base_cost: D) -> ResolvedPrice:
    return ResolvedPrice(
        price=q2(base_cost),
        pricing_method=PricingMethod.COST_ONLY,
        source=PriceSource.NONE,
    )


def _from_item(base_cost: D, item: RateSheetItem, source: PriceSource) -> Optional[ResolvedPrice]:
    method = item.pricing_method

    if method is ItemPricingMethod.MARKUP and item.material_markup_percent is not None:
        return ResolvedPrice(
            price=apply_markup(base_cost, item.material_markup_percent),
            pricing_method=PricingMethod.MARKUP,
            source=source,
            rate_sheet_id=item.rate_sheet_id,
        )

    if method is ItemPricingMethod.MARGIN and item.margin_target_percent is not None:
        return ResolvedPrice(
            price=apply_margin(base_cost, item.margin_target_percent),
            pricing_method=PricingMethod.MARGIN,
            source=source,
            rate_sheet_id=item.rate_sheet_id,
        )

    # 'fixed', or a formula method whose field is null
    if item.fixed_price is not None:
        return ResolvedPrice(
            price=q2(item.fixed_price),
            pricing_method=PricingMethod.FIXED,
            source=source,
            labor_price=item.fixed_labor_price,
            material_price=item.fixed_material_price,
            rate_sheet_id=item.rate_sheet_id,
        )

    return None


def _from_sheet_defaults(base_cost: D, sheet: RateSheet, source: PriceSource) -> Optional[ResolvedPrice]:
    if not sheet.pricing_type.has_default_formula:
        return None

    if sheet.default_margin_target_percent is not None:
        price = apply_margin(base_cost, sheet.default_margin_target_percent)
    elif sheet.default_material_markup_percent is not None and sheet.default_material_markup_percent > 0:
        price = apply_markup(base_cost, sheet.default_material_markup_percent)
    else:
        return None

    return ResolvedPrice(
        price=price,
        pricing_method=PricingMethod.DEFAULT_FORMULA,
        source=source,
        rate_sheet_id=sheet.id,
        rate_sheet_name=sheet.name,
    )


def compute_price(
    base_cost: D,
    item: Optional[RateSheetItem],
    rate_sheet: Optional[RateSheet],
    source: PriceSource = PriceSource.NONE,
) -> ResolvedPrice:
    base_cost = to_decimal(base_cost) or D("0")

    if item is not None:
        resolved = _from_item(base_cost, item, source)
        if resolved is not None:
            return resolved

    if rate_sheet is not None:
        resolved = _from_sheet_defaults(base_cost, rate_sheet, source)
        if resolved is not None:
            return resolved

    return _cost_only(base_cost)


def resolve_price(
    sku_id: str,
    base_cost: D,
    items: Mapping[str, RateSheetItem],
    rate_sheet: Optional[RateSheet],
    source: PriceSource = PriceSource.NONE,
) -> ResolvedPrice:
    """Synchronous resolution when the effective sheet and its items are already loaded."""
    item = items.get(sku_id) if items else None
    result = compute_price(base_cost, item, rate_sheet, source)
    if result.pricing_method is PricingMethod.COST_ONLY:
        return result
    return _with_name(result, rate_sheet.name if rate_sheet else None)


def resolve_price_with_community_override(
    sku_id: str,
    base_cost: D,
    items: Mapping[str, RateSheetItem],
    rate_sheet: Optional[RateSheet],
    community_products: Optional[Mapping[str, CommunityProduct]],
    source: PriceSource = PriceSource.NONE,
) -> ResolvedPrice:
    product = community_products.get(sku_id) if community_products else None

    if product is not None and product.price_override is not None:
        return ResolvedPrice(
            price=q2(product.price_override),
            pricing_method=PricingMethod.COMMUNITY_OVERRIDE,
            source=PriceSource.COMMUNITY,
            rate_sheet_name=COMMUNITY_OVERRIDE_NAME,
            community_spec_code=product.spec_code,
        )

    result = resolve_price(sku_id, base_cost, items, rate_sheet, source)
    if product is not None and product.spec_code:
        return replace(result, community_spec_code=product.spec_code)
    return result


def _with_name(result: ResolvedPrice, name: Optional[str]) -> ResolvedPrice:
    if result.rate_sheet_name or not name:
        return result
    return replace(result, rate_sheet_name=name)


__all__ = [
    "apply_margin",
    "apply_markup",
    "compute_price",
    "resolve_price",
    "resolve_price_with_community_override",
]
