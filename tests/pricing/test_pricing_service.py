from decimal import Decimal

import httpx
import pytest

from fencequote.core.errors import InvalidPricingData
from fencequote.domain.models import (
    CommunityProduct,
    ItemPricingMethod,
    PriceSource,
    PricingContext,
    PricingMethod,
    RateSheetItem,
)
from fencequote.pricing.rpc_client import RpcPriceClient
from fencequote.pricing.service import LineRequest, PricingService

D = Decimal


@pytest.mark.anyio
async def test_community_sheet_item_prices_sku(pricing_service):
    r = await pricing_service.resolve("SKU1", D("10.00"), PricingContext(community_id="C1"))
    assert r.price == D("21.00")
    assert r.source is PriceSource.COMMUNITY
    assert r.rate_sheet_name == "Oakwood Community"


@pytest.mark.anyio
async def test_client_markup_item(pricing_service):
    r = await pricing_service.resolve("SKU1", D("10.00"), PricingContext(client_id="K1"))
    assert r.price == D("11.50")
    assert r.pricing_method is PricingMethod.MARKUP
    assert r.source is PriceSource.CLIENT


@pytest.mark.anyio
async def test_client_sheet_default_margin_for_unlisted_sku(pricing_service):
    r = await pricing_service.resolve("SKU2", D("10.00"), PricingContext(client_id="K1"))
    assert r.price == D("12.50")
    assert r.pricing_method is PricingMethod.DEFAULT_FORMULA


@pytest.mark.anyio
async def test_community_override_beats_rate_sheet(pricing_data, pricing_service):
    pricing_data.add_community_product(
        CommunityProduct(community_id="C1", sku_id="SKU1", price_override=D("18.00"), spec_code="OAK-6")
    )
    r = await pricing_service.resolve("SKU1", D("10.00"), PricingContext(community_id="C1"))

    assert r.price == D("18.00")
    assert r.pricing_method is PricingMethod.COMMUNITY_OVERRIDE
    assert r.community_spec_code == "OAK-6"


@pytest.mark.anyio
async def test_no_context_prices_at_cost(pricing_service):
    r = await pricing_service.resolve("SKU1", D("10.00"), PricingContext())
    assert r.is_cost_fallback
    assert r.price == D("10.00")


@pytest.mark.anyio
async def test_sku_line_uses_business_unit_labor_cost(pricing_data, pricing_service):
    pricing_data.labor_costs[("SKU1", "BU1")] = D("7.25")

    li = await pricing_service.price_sku_line("SKU1", "120", PricingContext(business_unit_class_id="BU1"), "l1")

    assert li.unit_price == D("15.00")
    assert li.material_unit_cost == D("10.00")
    assert li.labor_unit_cost == D("7.25")
    assert li.unit_cost == D("17.25")
    assert li.pricing_source == "Rate Sheet: Austin Residential"
    assert li.description == "6' Wood Picket"


@pytest.mark.anyio
async def test_sku_line_falls_back_to_catalog_labor_per_100_feet(pricing_service):
    li = await pricing_service.price_sku_line("SKU1", "10", PricingContext())

    assert li.labor_unit_cost == D("8.50")
    assert li.pricing_source == "Catalog (No Rate Sheet)"


@pytest.mark.anyio
async def test_bad_formula_rejects_only_that_line(pricing_data, pricing_service):
    pricing_data.add_rate_sheet(
        pricing_data.rate_sheets["KS"],
        RateSheetItem(
            rate_sheet_id="KS",
            sku_id="SKU2",
            pricing_method=ItemPricingMethod.MARGIN,
            margin_target_percent=D("100"),
        ),
    )

    lines, errors = await pricing_service.price_lines(
        [LineRequest("SKU1", D("10")), LineRequest("SKU2", D("10")), LineRequest("SKU404", D("1"))],
        PricingContext(client_id="K1"),
    )

    assert [li.sku_id for li in lines] == ["SKU1"]
    assert [(e.sku_id, e.code) for e in errors] == [
        ("SKU2", "INVALID_PRICING_DATA"),
        ("SKU404", "UNKNOWN_SKU"),
    ]


@pytest.mark.anyio
async def test_rpc_result_is_used_when_configured(pricing_data, rate_sheets):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[
                {
                    "price": "13.00",
                    "labor_price": None,
                    "material_price": None,
                    "pricing_method": "fixed",
                    "pricing_source": "Client Rate Sheet",
                    "rate_sheet_id": "KS",
                    "rate_sheet_name": "Acme Builders",
                }
            ],
        )

    rpc = RpcPriceClient("https://db.example.test", "anon", transport=httpx.MockTransport(handler))
    service = PricingService(pricing_data, rate_sheets, rpc=rpc)

    r = await service.resolve("SKU1", D("10.00"), PricingContext(client_id="K1"))

    assert r.price == D("13.00")
    assert r.source is PriceSource.CLIENT
    assert pricing_data.calls == []


@pytest.mark.anyio
async def test_rpc_failure_falls_back_to_local_cascade(pricing_data, rate_sheets):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "bad key"})

    rpc = RpcPriceClient("https://db.example.test", "anon", transport=httpx.MockTransport(handler))
    service = PricingService(pricing_data, rate_sheets, rpc=rpc)

    r = await service.resolve("SKU1", D("10.00"), PricingContext(client_id="K1"))

    assert r.price == D("11.50")
    assert r.degraded


@pytest.mark.anyio
async def test_resolve_without_base_cost_is_rejected(pricing_service):
    with pytest.raises(InvalidPricingData) as e:
        await pricing_service.resolve("SKU1", None, PricingContext(client_id="K1"))
    assert e.value.code == "MISSING_BASE_COST"
