from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

import fencequote.approval.rule_types  # noqa: F401 (register all rules)

from fencequote.approval.gate import ApprovalGate
from fencequote.domain.models import (
    CommunityRef,
    ItemPricingMethod,
    LineItem,
    Quote,
    RateSheet,
    RateSheetItem,
    RateSheetPricingType,
    Sku,
)
from fencequote.lifecycle.machine import QuoteStateMachine
from fencequote.pricing.resolver import RateSheetRepository, RateSheetResolver
from fencequote.pricing.service import PricingService
from fencequote.repositories.memory import InMemoryApprovalPolicyStore, InMemoryPricingData, InMemoryQuoteStore

D = Decimal


@pytest.fixture
def anyio_backend():
    # asyncio only (no trio needed)
    return "asyncio"


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def gate():
    return ApprovalGate.default()


@pytest.fixture
def machine(gate, fixed_now):
    ids = iter(f"job-{i}" for i in range(1, 100))
    return QuoteStateMachine(gate=gate, clock=lambda: fixed_now, id_factory=lambda: next(ids))


def make_line(
    line_id: str = "l1",
    qty: str = "100",
    price: str = "10.00",
    material: str | None = "4.00",
    labor: str | None = "2.00",
    **kw,
) -> LineItem:
    return LineItem(
        id=line_id,
        quantity=D(qty),
        unit_price=D(price),
        unit_cost=D(material or "0") + D(labor or "0"),
        material_unit_cost=D(material) if material is not None else None,
        labor_unit_cost=D(labor) if labor is not None else None,
        **kw,
    )


@pytest.fixture
def line_factory():
    return make_line


@pytest.fixture
def healthy_quote():
    """Draft quote that needs no approval: $1000 at 40% margin."""
    return Quote(id="q1", line_items=[make_line()], qbo_class_id="BU1")


@pytest.fixture
def pricing_data():
    """
    Community C1 (sheet CS, owned by client K1 with sheet KS), client K2
    without a sheet, BU1 with default sheet BS.
    """
    data = InMemoryPricingData()

    data.add_rate_sheet(
        RateSheet(id="CS", name="Oakwood Community"),
        RateSheetItem(rate_sheet_id="CS", sku_id="SKU1", fixed_price=D("21.00")),
    )
    data.add_rate_sheet(
        RateSheet(
            id="KS",
            name="Acme Builders",
            pricing_type=RateSheetPricingType.HYBRID,
            default_margin_target_percent=D("20"),
        ),
        RateSheetItem(
            rate_sheet_id="KS",
            sku_id="SKU1",
            pricing_method=ItemPricingMethod.MARKUP,
            material_markup_percent=D("15"),
        ),
    )
    data.add_rate_sheet(
        RateSheet(
            id="BS",
            name="Austin Residential",
            pricing_type=RateSheetPricingType.FORMULA,
            default_material_markup_percent=D("50"),
        )
    )

    data.communities["C1"] = CommunityRef(id="C1", rate_sheet_id="CS", client_id="K1")
    data.communities["C2"] = CommunityRef(id="C2", rate_sheet_id=None, client_id="K1")
    data.client_sheets["K1"] = "KS"
    data.client_sheets["K2"] = None
    data.business_unit_sheets["BU1"] = "BS"

    data.skus["SKU1"] = Sku(
        id="SKU1",
        sku_code="WD-6-PKT",
        sku_name="6' Wood Picket",
        standard_cost_per_foot=D("10.00"),
        standard_labor_cost=D("850"),
    )
    data.skus["SKU2"] = Sku(id="SKU2", sku_code="ALU-4", sku_name="4' Aluminum", standard_cost_per_foot=D("20.00"))
    return data


@pytest.fixture
def rate_sheets(pricing_data):
    return RateSheetRepository(RateSheetResolver(pricing_data), ttl_seconds=300)


@pytest.fixture
def pricing_service(pricing_data, rate_sheets):
    return PricingService(pricing_data, rate_sheets)


@pytest.fixture
def quote_store():
    return InMemoryQuoteStore()


@pytest.fixture
def policy_store():
    return InMemoryApprovalPolicyStore()
