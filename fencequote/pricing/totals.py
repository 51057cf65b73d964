"""
Quote totals.

Pure: the same line items and rates always produce the same totals. Soft
deleted lines are ignored. Discount applies to the subtotal, tax to the
discounted amount, deposit and gross profit to the taxed total.
"""
from __future__ import annotations

from typing import Iterable

from fencequote.core.errors import InvalidPricingData
from fencequote.domain.models import D, ZERO, LineItem, Quote, QuoteTotals, q2, to_decimal

HUNDRED = D("100")
MARGIN_LIMIT = D("999.99")


def _pct(value) -> D:
    return (to_decimal(value) or ZERO) / HUNDRED


def clamp_margin(margin: D) -> D:
    # stored in a NUMERIC(5,2) column
    if margin > MARGIN_LIMIT:
        return MARGIN_LIMIT
    if margin < -MARGIN_LIMIT:
        return -MARGIN_LIMIT
    return margin


def compute_totals(
    line_items: Iterable[LineItem],
    discount_percent=ZERO,
    tax_rate_percent=ZERO,
    deposit_percent=ZERO,
) -> QuoteTotals:
    subtotal = ZERO
    material_cost = ZERO
    labor_cost = ZERO

    for li in line_items:
        if li.is_deleted:
            continue
        qty = li.quantity
        if qty < 0:
            raise InvalidPricingData(
                f"Line item {li.id} has a negative quantity",
                meta={"line_item_id": li.id, "quantity": str(qty)},
            )
        subtotal += qty * li.unit_price
        material_cost += qty * (li.material_unit_cost or ZERO)
        labor_cost += qty * (li.labor_unit_cost or ZERO)

    subtotal = q2(subtotal)
    material_cost = q2(material_cost)
    labor_cost = q2(labor_cost)

    discount_amount = q2(subtotal * _pct(discount_percent))
    after_discount = subtotal - discount_amount
    tax_amount = q2(after_discount * _pct(tax_rate_percent))
    total = after_discount + tax_amount
    deposit_amount = q2(total * _pct(deposit_percent))

    gross_profit = total - (material_cost + labor_cost)
    if total > 0:
        margin_percent = q2(clamp_margin(gross_profit / total * HUNDRED))
    else:
        margin_percent = ZERO

    return QuoteTotals(
        subtotal=subtotal,
        material_cost=material_cost,
        labor_cost=labor_cost,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=q2(total),
        deposit_amount=deposit_amount,
        gross_profit=q2(gross_profit),
        margin_percent=margin_percent,
    )


def totals_for_quote(quote: Quote) -> QuoteTotals:
    return compute_totals(
        quote.line_items,
        discount_percent=quote.discount_percent,
        tax_rate_percent=quote.tax_rate_percent,
        deposit_percent=quote.deposit_percent,
    )
