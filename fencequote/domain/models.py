from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, List, Optional, Tuple

D = Decimal

CENT = D("0.01")
ZERO = D("0.00")
# line item quantities keep four places (partial feet, fractional units)
QTY = D("0.0001")


def to_decimal(value: Any) -> Optional[D]:
    """None-preserving Decimal coercion (floats go through str to avoid binary noise)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return D(str(value))


def q2(value: D) -> D:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def q_qty(value: D) -> D:
    return value.quantize(QTY, rounding=ROUND_HALF_UP)


# -----------------------------
# Closed vocabularies
# -----------------------------


class PriceSource(str, Enum):
    COMMUNITY = "community"
    CLIENT = "client"
    BUSINESS_UNIT = "business_unit"
    NONE = "none"


class RateSheetPricingType(str, Enum):
    FIXED_ONLY = "fixed_only"
    FORMULA = "formula"
    HYBRID = "hybrid"

    @classmethod
    def _missing_(cls, value: object) -> Optional["RateSheetPricingType"]:
        # backend column default is 'custom' (per-SKU prices only)
        if value == "custom":
            return cls.FIXED_ONLY
        return None

    @property
    def has_default_formula(self) -> bool:
        return self in (RateSheetPricingType.FORMULA, RateSheetPricingType.HYBRID)


class ItemPricingMethod(str, Enum):
    """Methods a rate sheet item may declare."""

    FIXED = "fixed"
    MARKUP = "markup"
    MARGIN = "margin"


class PricingMethod(str, Enum):
    """How a ResolvedPrice was produced."""

    FIXED = "fixed"
    MARKUP = "markup"
    MARGIN = "margin"
    DEFAULT_FORMULA = "default_formula"
    COST_ONLY = "cost_only"
    COMMUNITY_OVERRIDE = "community_override"

    @classmethod
    def _missing_(cls, value: object) -> Optional["PricingMethod"]:
        # older clients marked community overrides as 'cost_plus'; 'catalog' meant cost
        if value == "cost_plus":
            return cls.COMMUNITY_OVERRIDE
        if value == "catalog":
            return cls.COST_ONLY
        return None


class LineType(str, Enum):
    MATERIAL = "material"
    LABOR = "labor"
    SERVICE = "service"
    ADJUSTMENT = "adjustment"
    DISCOUNT = "discount"


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    SENT = "sent"
    AWAITING_RESPONSE = "awaiting_response"
    CHANGES_REQUESTED = "changes_requested"
    ACCEPTED = "accepted"
    LOST = "lost"
    CONVERTED = "converted"
    ARCHIVED = "archived"


class LostReason(str, Enum):
    PRICE = "price"
    COMPETITOR = "competitor"
    CANCELLED = "cancelled"
    BUDGET = "budget"
    TIMELINE = "timeline"
    REQUIREMENTS = "requirements"
    NO_RESPONSE = "no_response"
    OTHER = "other"


# -----------------------------
# Pricing inputs
# -----------------------------


@dataclass(frozen=True)
class PricingContext:
    community_id: Optional[str] = None
    client_id: Optional[str] = None
    business_unit_class_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.community_id or self.client_id or self.business_unit_class_id)

    def cache_key(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        return (self.community_id, self.client_id, self.business_unit_class_id)


@dataclass(frozen=True)
class RateSheet:
    id: str
    name: str
    is_active: bool = True
    pricing_type: RateSheetPricingType = RateSheetPricingType.FIXED_ONLY
    default_margin_target_percent: Optional[D] = None
    default_material_markup_percent: Optional[D] = None


@dataclass(frozen=True)
class RateSheetItem:
    rate_sheet_id: str
    sku_id: str
    pricing_method: ItemPricingMethod = ItemPricingMethod.FIXED
    fixed_price: Optional[D] = None
    fixed_labor_price: Optional[D] = None
    fixed_material_price: Optional[D] = None
    material_markup_percent: Optional[D] = None
    margin_target_percent: Optional[D] = None


@dataclass(frozen=True)
class CommunityRef:
    id: str
    rate_sheet_id: Optional[str] = None
    client_id: Optional[str] = None


@dataclass(frozen=True)
class CommunityProduct:
    community_id: str
    sku_id: str
    price_override: Optional[D] = None
    spec_code: Optional[str] = None
    is_default: bool = False


@dataclass(frozen=True)
class Sku:
    id: str
    sku_code: str
    sku_name: str
    standard_cost_per_foot: Optional[D] = None
    # catalog stores labor per 100 LF
    standard_labor_cost: Optional[D] = None


@dataclass(frozen=True)
class EffectiveRateSheet:
    rate_sheet_id: Optional[str]
    rate_sheet: Optional[RateSheet]
    source: PriceSource = PriceSource.NONE
    degraded: bool = False

    @classmethod
    def none(cls, degraded: bool = False) -> "EffectiveRateSheet":
        return cls(rate_sheet_id=None, rate_sheet=None, source=PriceSource.NONE, degraded=degraded)


@dataclass(frozen=True)
class ResolvedPrice:
    price: D
    pricing_method: PricingMethod
    source: PriceSource = PriceSource.NONE
    labor_price: Optional[D] = None
    material_price: Optional[D] = None
    rate_sheet_id: Optional[str] = None
    rate_sheet_name: Optional[str] = None
    community_spec_code: Optional[str] = None
    degraded: bool = False

    @property
    def is_cost_fallback(self) -> bool:
        """True when no rate sheet priced this SKU (the amber "pricing at cost" state)."""
        return self.pricing_method is PricingMethod.COST_ONLY

    @property
    def pricing_source_label(self) -> str:
        if self.pricing_method is PricingMethod.COMMUNITY_OVERRIDE:
            return "Community Price Override"
        if self.rate_sheet_name:
            return f"Rate Sheet: {self.rate_sheet_name}"
        return "Catalog (No Rate Sheet)"


# -----------------------------
# Quote
# -----------------------------


@dataclass(frozen=True)
class LineItem:
    id: str
    line_type: LineType = LineType.MATERIAL
    quantity: D = D("0")
    unit_price: D = ZERO
    unit_cost: D = ZERO
    material_unit_cost: Optional[D] = None
    labor_unit_cost: Optional[D] = None
    sku_id: Optional[str] = None
    pricing_source: Optional[str] = None
    description: str = ""
    is_deleted: bool = False
    converted_to_job_id: Optional[str] = None

    @property
    def total_price(self) -> D:
        return q2(self.quantity * self.unit_price)


@dataclass(frozen=True)
class QuoteTotals:
    subtotal: D
    material_cost: D
    labor_cost: D
    discount_amount: D
    tax_amount: D
    total: D
    deposit_amount: D
    gross_profit: D
    margin_percent: D

    @property
    def total_cost(self) -> D:
        return self.material_cost + self.labor_cost


@dataclass
class Quote:
    id: str
    status: QuoteStatus = QuoteStatus.DRAFT
    line_items: List[LineItem] = field(default_factory=list)
    discount_percent: D = ZERO
    deposit_percent: D = ZERO
    tax_rate_percent: D = ZERO

    quote_group: Optional[str] = None
    is_alternative: bool = False
    qbo_class_id: Optional[str] = None
    community_id: Optional[str] = None
    client_id: Optional[str] = None

    # Manager approval
    approval_requested_at: Optional[datetime] = None
    manager_approved_at: Optional[datetime] = None
    manager_approved_by: Optional[str] = None
    manager_approval_notes: Optional[str] = None
    approved_fingerprint: Optional[str] = None

    # Outcome
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    lost_reason: Optional[LostReason] = None
    lost_notes: Optional[str] = None
    lost_to_competitor: Optional[str] = None
    converted_to_job_id: Optional[str] = None
    status_changed_at: Optional[datetime] = None

    @property
    def active_line_items(self) -> List[LineItem]:
        return [li for li in self.line_items if not li.is_deleted]

    @property
    def pricing_context(self) -> PricingContext:
        return PricingContext(
            community_id=self.community_id,
            client_id=self.client_id,
            business_unit_class_id=self.qbo_class_id,
        )

    def copy(self) -> "Quote":
        # LineItem is frozen, a shallow list copy is enough
        return replace(self, line_items=list(self.line_items))

    def pricing_fingerprint(self) -> str:
        """Digest of every input the totals depend on."""
        h = hashlib.sha256()
        for rate in (self.discount_percent, self.tax_rate_percent, self.deposit_percent):
            h.update(f"{D(rate).normalize()}|".encode())
        for li in sorted(self.active_line_items, key=lambda x: x.id):
            parts = (
                li.id,
                li.line_type.value,
                li.quantity,
                li.unit_price,
                li.material_unit_cost,
                li.labor_unit_cost,
            )
            h.update(
                "|".join(
                    "" if p is None else (str(p.normalize()) if isinstance(p, Decimal) else str(p))
                    for p in parts
                ).encode()
            )
            h.update(b";")
        return h.hexdigest()

    @property
    def has_current_manager_approval(self) -> bool:
        return (
            self.manager_approved_at is not None
            and self.approved_fingerprint == self.pricing_fingerprint()
        )


@dataclass(frozen=True)
class Job:
    id: str
    quote_id: str
    line_item_ids: Tuple[str, ...]
    created_at: datetime


@dataclass(frozen=True)
class StatusChange:
    quote_id: str
    from_status: Optional[QuoteStatus]
    to_status: QuoteStatus
    event: str
    at: datetime
    actor: Optional[str] = None
    notes: Optional[str] = None
