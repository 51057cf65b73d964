from dataclasses import replace

import pytest

from fencequote.domain.models import PriceSource, PricingContext
from fencequote.pricing.resolver import RateSheetRepository, RateSheetResolver


@pytest.mark.anyio
async def test_community_sheet_wins(pricing_data):
    r = await RateSheetResolver(pricing_data).resolve(PricingContext(community_id="C1", business_unit_class_id="BU1"))
    assert r.rate_sheet_id == "CS"
    assert r.source is PriceSource.COMMUNITY
    assert not r.degraded


@pytest.mark.anyio
async def test_community_without_sheet_uses_owning_client(pricing_data):
    r = await RateSheetResolver(pricing_data).resolve(PricingContext(community_id="C2", business_unit_class_id="BU1"))
    assert r.rate_sheet_id == "KS"
    assert r.source is PriceSource.CLIENT


@pytest.mark.anyio
async def test_inactive_community_sheet_falls_through_whole(pricing_data):
    pricing_data.rate_sheets["CS"] = replace(pricing_data.rate_sheets["CS"], is_active=False)

    r = await RateSheetResolver(pricing_data).resolve(PricingContext(community_id="C1"))

    assert r.rate_sheet_id == "KS"
    assert r.source is PriceSource.CLIENT


@pytest.mark.anyio
async def test_client_without_community(pricing_data):
    r = await RateSheetResolver(pricing_data).resolve(PricingContext(client_id="K1", business_unit_class_id="BU1"))
    assert r.rate_sheet_id == "KS"
    assert r.source is PriceSource.CLIENT


@pytest.mark.anyio
async def test_client_without_sheet_falls_to_business_unit(pricing_data):
    r = await RateSheetResolver(pricing_data).resolve(PricingContext(client_id="K2", business_unit_class_id="BU1"))
    assert r.rate_sheet_id == "BS"
    assert r.source is PriceSource.BUSINESS_UNIT


@pytest.mark.anyio
async def test_unknown_community_falls_to_business_unit(pricing_data):
    r = await RateSheetResolver(pricing_data).resolve(PricingContext(community_id="nope", business_unit_class_id="BU1"))
    assert r.source is PriceSource.BUSINESS_UNIT


@pytest.mark.anyio
async def test_nothing_found_is_none_not_error(pricing_data):
    r = await RateSheetResolver(pricing_data).resolve(PricingContext())
    assert r.rate_sheet_id is None
    assert r.rate_sheet is None
    assert r.source is PriceSource.NONE
    assert not r.degraded


@pytest.mark.anyio
async def test_lookup_failure_degrades_to_next_level(pricing_data):
    pricing_data.failing.add("get_community")

    r = await RateSheetResolver(pricing_data).resolve(PricingContext(community_id="C1", business_unit_class_id="BU1"))

    assert r.rate_sheet_id == "BS"
    assert r.degraded


@pytest.mark.anyio
async def test_cache_serves_repeat_lookups(pricing_data, rate_sheets):
    ctx = PricingContext(community_id="C1")
    first = await rate_sheets.resolve(ctx)
    calls = len(pricing_data.calls)

    again = await rate_sheets.resolve(ctx)

    assert again == first
    assert len(pricing_data.calls) == calls
    assert len(rate_sheets) == 1


@pytest.mark.anyio
async def test_cache_expires_after_ttl(pricing_data):
    now = [0.0]
    repo = RateSheetRepository(RateSheetResolver(pricing_data), ttl_seconds=10, clock=lambda: now[0])
    ctx = PricingContext(client_id="K1")

    await repo.resolve(ctx)
    calls = len(pricing_data.calls)
    now[0] = 11.0
    await repo.resolve(ctx)

    assert len(pricing_data.calls) > calls


@pytest.mark.anyio
async def test_invalidate_rate_sheet_drops_matching_entries(rate_sheets):
    await rate_sheets.resolve(PricingContext(community_id="C2"))
    await rate_sheets.resolve(PricingContext(client_id="K1"))
    await rate_sheets.resolve(PricingContext(business_unit_class_id="BU1"))

    assert rate_sheets.invalidate_rate_sheet("KS") == 2
    assert len(rate_sheets) == 1

    rate_sheets.invalidate()
    assert len(rate_sheets) == 0


@pytest.mark.anyio
async def test_degraded_results_are_not_cached(pricing_data, rate_sheets):
    pricing_data.failing.add("get_client_default_rate_sheet_id")
    r = await rate_sheets.resolve(PricingContext(client_id="K1"))

    assert r.degraded
    assert len(rate_sheets) == 0


@pytest.mark.anyio
async def test_zero_ttl_disables_cache(pricing_data):
    repo = RateSheetRepository(RateSheetResolver(pricing_data), ttl_seconds=0)
    await repo.resolve(PricingContext(client_id="K1"))
    assert len(repo) == 0


@pytest.mark.anyio
async def test_empty_context_skips_lookups(pricing_data):
    r = await RateSheetResolver(pricing_data).resolve(PricingContext())

    assert r.source is PriceSource.NONE
    assert not r.degraded
    assert pricing_data.calls == []
