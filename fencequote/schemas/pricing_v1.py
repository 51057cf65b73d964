# fencequote/schemas/pricing_v1.py
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr

from fencequote.domain.models import (
    LineItem,
    LineType,
    PriceSource,
    PricingContext,
    PricingMethod,
    QuoteTotals,
    ResolvedPrice,
)


class PricingContextV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    community_id: Optional[str] = None
    client_id: Optional[str] = None
    business_unit_class_id: Optional[str] = None

    def to_domain(self) -> PricingContext:
        return PricingContext(
            community_id=self.community_id,
            client_id=self.client_id,
            business_unit_class_id=self.business_unit_class_id,
        )


class ResolvePriceInputV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sku_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    base_cost: Optional[Decimal] = Field(default=None, ge=0)
    context: PricingContextV1 = Field(default_factory=PricingContextV1)


class ResolvedPriceV1(BaseModel):
    price: Decimal
    pricing_method: PricingMethod
    source: PriceSource
    labor_price: Optional[Decimal] = None
    material_price: Optional[Decimal] = None
    rate_sheet_id: Optional[str] = None
    rate_sheet_name: Optional[str] = None
    community_spec_code: Optional[str] = None
    pricing_source: str
    is_cost_fallback: bool
    degraded: bool = False

    @classmethod
    def from_domain(cls, r: ResolvedPrice) -> "ResolvedPriceV1":
        return cls(
            price=r.price,
            pricing_method=r.pricing_method,
            source=r.source,
            labor_price=r.labor_price,
            material_price=r.material_price,
            rate_sheet_id=r.rate_sheet_id,
            rate_sheet_name=r.rate_sheet_name,
            community_spec_code=r.community_spec_code,
            pricing_source=r.pricing_source_label,
            is_cost_fallback=r.is_cost_fallback,
            degraded=r.degraded,
        )


class LineItemV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    line_type: LineType = LineType.MATERIAL
    quantity: Decimal = Field(ge=0)
    # negative unit prices model ad hoc discounts
    unit_price: Decimal
    unit_cost: Decimal = Decimal("0")
    material_unit_cost: Optional[Decimal] = None
    labor_unit_cost: Optional[Decimal] = None
    sku_id: Optional[str] = None
    pricing_source: Optional[str] = None
    description: str = ""
    is_deleted: bool = False
    converted_to_job_id: Optional[str] = None

    def to_domain(self) -> LineItem:
        return LineItem(**self.model_dump())

    @classmethod
    def from_domain(cls, li: LineItem) -> "LineItemV1":
        return cls(
            id=li.id,
            line_type=li.line_type,
            quantity=li.quantity,
            unit_price=li.unit_price,
            unit_cost=li.unit_cost,
            material_unit_cost=li.material_unit_cost,
            labor_unit_cost=li.labor_unit_cost,
            sku_id=li.sku_id,
            pricing_source=li.pricing_source,
            description=li.description,
            is_deleted=li.is_deleted,
            converted_to_job_id=li.converted_to_job_id,
        )


class TotalsInputV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    line_items: List[LineItemV1] = Field(default_factory=list)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0)
    tax_rate_percent: Decimal = Field(default=Decimal("0"), ge=0)
    deposit_percent: Decimal = Field(default=Decimal("0"), ge=0)


class QuoteTotalsV1(BaseModel):
    subtotal: Decimal
    material_cost: Decimal
    labor_cost: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    deposit_amount: Decimal
    gross_profit: Decimal
    margin_percent: Decimal

    @classmethod
    def from_domain(cls, t: QuoteTotals) -> "QuoteTotalsV1":
        return cls(
            subtotal=t.subtotal,
            material_cost=t.material_cost,
            labor_cost=t.labor_cost,
            discount_amount=t.discount_amount,
            tax_amount=t.tax_amount,
            total=t.total,
            deposit_amount=t.deposit_amount,
            gross_profit=t.gross_profit,
            margin_percent=t.margin_percent,
        )


class ApprovalInputV1(TotalsInputV1):
    qbo_class_id: Optional[str] = None


class ApprovalDecisionV1(BaseModel):
    required: bool
    reasons: List[str]
    approval_reason: Optional[str] = None
    totals: QuoteTotalsV1
