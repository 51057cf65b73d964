from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fencequote import models
from fencequote.approval.policy import DEFAULT_POLICY
from fencequote.core.errors import QuoteNotFound
from fencequote.db import Base
from fencequote.domain.models import (
    Job,
    LostReason,
    Quote,
    QuoteStatus,
    StatusChange,
)
from fencequote.repositories.base import TransitionWrite
from fencequote.repositories.sql import SqlApprovalPolicyStore, SqlPricingDataSource, SqlQuoteStore

D = Decimal
S = QuoteStatus


@pytest.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add_all(
                [
                    models.RateSheetRow(id="BS", name="Austin Residential", pricing_type="formula",
                                        default_material_markup_percent=D("50")),
                    models.RateSheetRow(id="OLD", name="Retired 2023", is_active=False),
                    models.QboClassRow(id="BU1", name="Austin", default_rate_sheet_id="BS"),
                    models.ClientRow(id="K1", name="Acme Builders", default_rate_sheet_id="OLD"),
                    models.CommunityRow(id="C1", name="Oakwood", client_id="K1"),
                    models.SkuRow(id="SKU1", sku_code="CED-6", sku_name="6ft cedar",
                                  standard_cost_per_foot=D("10.00"), standard_labor_cost=D("850")),
                    models.SkuLaborCostRow(sku_id="SKU1", qbo_class_id="BU1", labor_cost_per_foot=D("7.25")),
                    models.RateSheetItemRow(rate_sheet_id="BS", sku_id="SKU1", pricing_method="markup",
                                            material_markup_percent=D("15")),
                    models.CommunityProductRow(community_id="C1", sku_id="SKU1", price_override=D("18.00"),
                                               spec_code="OAK-A"),
                    models.ApprovalSettingsRow(qbo_class_id=None, margin_below_percent=D("12")),
                    models.ApprovalSettingsRow(qbo_class_id="BU1", margin_below_percent=D("20"),
                                               total_above_amount=D("50000")),
                ]
            )
    return session_factory


@pytest.mark.anyio
async def test_pricing_lookups(seeded):
    data = SqlPricingDataSource(seeded)

    community = await data.get_community("C1")
    assert community.client_id == "K1"
    assert community.rate_sheet_id is None
    assert await data.get_business_unit_default_rate_sheet_id("BU1") == "BS"
    assert await data.get_client_default_rate_sheet_id("K1") == "OLD"

    assert (await data.get_active_rate_sheet("BS")).default_material_markup_percent == D("50")
    assert await data.get_active_rate_sheet("OLD") is None

    item = await data.get_rate_sheet_item("BS", "SKU1")
    assert item.material_markup_percent == D("15")

    products = await data.get_community_products("C1")
    assert products["SKU1"].price_override == D("18.00")
    assert products["SKU1"].spec_code == "OAK-A"

    assert (await data.get_sku("SKU1")).sku_name == "6ft cedar"
    assert await data.get_labor_cost("SKU1", "BU1") == D("7.25")
    assert await data.get_labor_cost("SKU1", "BU9") is None
    assert await data.get_community("nope") is None


@pytest.mark.anyio
async def test_policy_falls_back_from_business_unit_to_company_to_default(seeded, session_factory):
    store = SqlApprovalPolicyStore(seeded)

    bu = await store.policy_for("BU1")
    assert bu.margin_below_percent == D("20")
    assert bu.total_above_amount == D("50000")

    company = await store.policy_for("BU2")
    assert company.margin_below_percent == D("12")
    assert company.qbo_class_id is None

    await _clear_settings(session_factory)
    assert await store.policy_for("BU1") == DEFAULT_POLICY


async def _clear_settings(session_factory):
    async with session_factory() as session:
        async with session.begin():
            await session.execute(delete(models.ApprovalSettingsRow))


@pytest.mark.anyio
async def test_quote_round_trip_with_line_items(session_factory, line_factory):
    store = SqlQuoteStore(session_factory)
    quote = Quote(
        id="q1",
        qbo_class_id="BU1",
        quote_group="G",
        discount_percent=D("5"),
        tax_rate_percent=D("8.25"),
        line_items=[line_factory("l1"), line_factory("l2", qty="12", price="45.00", is_deleted=True)],
    )

    await store.save_quote(quote)
    loaded = await store.get_quote("q1")

    assert loaded.status is S.DRAFT
    assert loaded.discount_percent == D("5")
    assert loaded.tax_rate_percent == D("8.25")
    assert [li.id for li in loaded.line_items] == ["l1", "l2"]
    assert loaded.line_items[0].unit_price == D("10.00")
    assert loaded.line_items[1].is_deleted
    assert loaded.pricing_fingerprint() == quote.pricing_fingerprint()


@pytest.mark.anyio
async def test_saving_again_updates_lines_in_place(session_factory, line_factory):
    store = SqlQuoteStore(session_factory)
    quote = Quote(id="q1", line_items=[line_factory("l1")])
    await store.save_quote(quote)

    quote.line_items[0] = replace(quote.line_items[0], quantity=D("150"))
    quote.line_items.append(line_factory("l2"))
    await store.save_quote(quote)

    loaded = await store.get_quote("q1")
    assert [(li.id, li.quantity) for li in loaded.line_items] == [("l1", D("150")), ("l2", D("100"))]


@pytest.mark.anyio
async def test_transition_write_persists_everything(session_factory, line_factory, fixed_now):
    store = SqlQuoteStore(session_factory)
    await store.save_quote(Quote(id="a", status=S.ACCEPTED, quote_group="G", line_items=[line_factory("l1")]))
    await store.save_quote(Quote(id="b", status=S.SENT, quote_group="G"))

    converted = Quote(
        id="a",
        status=S.CONVERTED,
        quote_group="G",
        converted_to_job_id="job-1",
        line_items=[line_factory("l1", converted_to_job_id="job-1")],
    )
    sibling = Quote(id="b", status=S.ARCHIVED, quote_group="G", archived_at=fixed_now)
    await store.apply_transition(
        TransitionWrite(
            quote=converted,
            history=[
                StatusChange("a", S.ACCEPTED, S.CONVERTED, "convert_to_job", fixed_now, actor="ops"),
                StatusChange("b", S.SENT, S.ARCHIVED, "archive", fixed_now),
            ],
            siblings=[sibling],
            job=Job(id="job-1", quote_id="a", line_item_ids=("l1",), created_at=fixed_now),
        )
    )

    a = await store.get_quote("a")
    assert a.status is S.CONVERTED
    assert a.line_items[0].converted_to_job_id == "job-1"
    assert (await store.get_quote("b")).status is S.ARCHIVED
    assert (await store.get_job("job-1")).line_item_ids == ("l1",)

    history = await store.get_status_history("a")
    assert [(h.from_status, h.to_status, h.actor) for h in history] == [(S.ACCEPTED, S.CONVERTED, "ops")]
    assert [q.id for q in await store.get_group_members("G")] == ["a", "b"]


@pytest.mark.anyio
async def test_lost_reason_survives_round_trip(session_factory):
    store = SqlQuoteStore(session_factory)
    await store.save_quote(Quote(id="q1", status=S.LOST, lost_reason=LostReason.TIMELINE, lost_notes="spring build"))

    loaded = await store.get_quote("q1")
    assert loaded.lost_reason is LostReason.TIMELINE
    assert loaded.lost_notes == "spring build"


@pytest.mark.anyio
async def test_missing_quote_raises(session_factory):
    with pytest.raises(QuoteNotFound):
        await SqlQuoteStore(session_factory).get_quote("ghost")


@pytest.mark.anyio
async def test_fractional_quantity_is_not_truncated(session_factory, line_factory):
    store = SqlQuoteStore(session_factory)
    lines = [line_factory("l1", qty="12.375"), line_factory("l2", qty="0.3333")]
    await store.save_quote(Quote(id="q1", line_items=lines))

    loaded = await store.get_quote("q1")

    assert [li.quantity for li in loaded.line_items] == [D("12.375"), D("0.3333")]
