from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Any, Optional

from fencequote.core.errors import IllegalTransition, InvalidPricingData
from fencequote.domain.models import LineItem, LineType, Quote, QuoteTotals, q_qty, to_decimal
from fencequote.lifecycle.states import EDITABLE
from fencequote.pricing.totals import totals_for_quote

# LineItem fields that feed QuoteTotals
PRICING_FIELDS = frozenset(
    {"line_type", "quantity", "unit_price", "unit_cost", "material_unit_cost", "labor_unit_cost", "is_deleted"}
)
DECIMAL_FIELDS = frozenset({"quantity", "unit_price", "unit_cost", "material_unit_cost", "labor_unit_cost"})
# never nullable on a line item
REQUIRED_FIELDS = frozenset({"quantity", "unit_price", "unit_cost"})


class QuoteEditor:
    """
    Edits line items and rates on a working copy of a quote.

    Any change to a pricing input clears a prior manager approval, so an
    approval can never be shown against numbers it did not see.
    """

    def __init__(self, quote: Quote):
        self._quote = quote.copy()
        self.approval_invalidated = False

    @property
    def quote(self) -> Quote:
        return self._quote

    @property
    def totals(self) -> QuoteTotals:
        return totals_for_quote(self._quote)

    def _check_editable(self, action: str) -> None:
        if self._quote.status not in EDITABLE:
            raise IllegalTransition(
                f"Quote in status '{self._quote.status.value}' cannot be edited",
                status=self._quote.status.value,
                event=action,
                code="NOT_EDITABLE",
            )

    def _invalidate_approval(self) -> None:
        q = self._quote
        if q.manager_approved_at is not None or q.approved_fingerprint is not None:
            self.approval_invalidated = True
        q.manager_approved_at = None
        q.manager_approved_by = None
        q.approved_fingerprint = None

    def _index(self, line_item_id: str) -> int:
        for i, li in enumerate(self._quote.line_items):
            if li.id == line_item_id and not li.is_deleted:
                return i
        raise InvalidPricingData(
            f"Line item {line_item_id} not found on quote {self._quote.id}",
            code="LINE_ITEM_NOT_FOUND",
            meta={"line_item_id": line_item_id},
        )

    def add_line_item(self, item: LineItem) -> LineItem:
        self._check_editable("add_line_item")
        if item.quantity < 0:
            raise InvalidPricingData("Quantity must not be negative", meta={"line_item_id": item.id})
        item = replace(
            item,
            id=item.id or str(uuid.uuid4()),
            line_type=_line_type(item.line_type, item.id),
            quantity=q_qty(to_decimal(item.quantity)),
        )
        if any(li.id == item.id for li in self._quote.line_items):
            raise InvalidPricingData(f"Duplicate line item id {item.id}", meta={"line_item_id": item.id})
        self._quote.line_items.append(item)
        self._invalidate_approval()
        return item

    def update_line_item(self, line_item_id: str, **changes: Any) -> LineItem:
        self._check_editable("update_line_item")
        unknown = (set(changes) - set(LineItem.__dataclass_fields__)) | ({"id"} & set(changes))
        if unknown:
            raise InvalidPricingData(f"Cannot update fields: {sorted(unknown)}", meta={"fields": sorted(unknown)})

        missing = sorted(f for f in REQUIRED_FIELDS & set(changes) if changes[f] is None)
        if missing:
            raise InvalidPricingData(
                f"Fields cannot be cleared: {missing}",
                code="REQUIRED_FIELD",
                meta={"line_item_id": line_item_id, "fields": missing},
            )
        for name in DECIMAL_FIELDS & set(changes):
            changes[name] = to_decimal(changes[name])
        if "line_type" in changes:
            changes["line_type"] = _line_type(changes["line_type"], line_item_id)
        if "quantity" in changes:
            if changes["quantity"] < 0:
                raise InvalidPricingData("Quantity must not be negative", meta={"line_item_id": line_item_id})
            changes["quantity"] = q_qty(changes["quantity"])

        i = self._index(line_item_id)
        before = self._quote.line_items[i]
        after = replace(before, **changes)
        self._quote.line_items[i] = after

        if any(getattr(before, f) != getattr(after, f) for f in PRICING_FIELDS & set(changes)):
            self._invalidate_approval()
        return after

    def remove_line_item(self, line_item_id: str) -> None:
        """Soft delete; the row is kept and ignored by totals."""
        self._check_editable("remove_line_item")
        i = self._index(line_item_id)
        self._quote.line_items[i] = replace(self._quote.line_items[i], is_deleted=True)
        self._invalidate_approval()

    def set_rates(
        self,
        discount_percent: Optional[Any] = None,
        tax_rate_percent: Optional[Any] = None,
        deposit_percent: Optional[Any] = None,
    ) -> None:
        self._check_editable("set_rates")
        q = self._quote
        changed = False
        for name, value in (
            ("discount_percent", discount_percent),
            ("tax_rate_percent", tax_rate_percent),
            ("deposit_percent", deposit_percent),
        ):
            if value is None:
                continue
            value = to_decimal(value)
            if value < 0:
                raise InvalidPricingData(f"{name} must not be negative", meta={name: str(value)})
            if value != getattr(q, name):
                setattr(q, name, value)
                changed = True
        if changed:
            self._invalidate_approval()


def _line_type(value: Any, line_item_id: Optional[str]) -> LineType:
    try:
        return LineType(value)
    except ValueError:
        raise InvalidPricingData(
            f"Unknown line type '{value}'",
            code="INVALID_LINE_TYPE",
            meta={"line_item_id": line_item_id, "line_type": str(value)},
        ) from None
