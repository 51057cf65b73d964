"""
SQLAlchemy (async) implementations of the repository protocols.

Driver errors are wrapped in ``PersistenceFailure``. Lifecycle writes run in
one transaction (``session.begin()``): the quote, its archived siblings, the
job and the history rows commit together or not at all.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fencequote.approval.policy import DEFAULT_POLICY, ApprovalPolicy
from fencequote.core.errors import PersistenceFailure, QuoteNotFound
from fencequote.domain.models import (
    D,
    CommunityProduct,
    CommunityRef,
    ItemPricingMethod,
    Job,
    LineItem,
    LineType,
    LostReason,
    Quote,
    QuoteStatus,
    RateSheet,
    RateSheetItem,
    RateSheetPricingType,
    Sku,
    StatusChange,
)
from fencequote.models import (
    ApprovalSettingsRow,
    ClientRow,
    CommunityProductRow,
    CommunityRow,
    JobRow,
    QboClassRow,
    QuoteLineItemRow,
    QuoteRow,
    QuoteStatusHistoryRow,
    RateSheetItemRow,
    RateSheetRow,
    SkuLaborCostRow,
    SkuRow,
)
from fencequote.repositories.base import TransitionWrite

# -----------------------------
# Row <-> domain mapping
# -----------------------------


def _rate_sheet(row: RateSheetRow) -> RateSheet:
    return RateSheet(
        id=row.id,
        name=row.name,
        is_active=bool(row.is_active),
        pricing_type=RateSheetPricingType(row.pricing_type or "custom"),
        default_margin_target_percent=row.default_margin_target_percent,
        default_material_markup_percent=row.default_material_markup_percent,
    )


def _rate_sheet_item(row: RateSheetItemRow) -> RateSheetItem:
    return RateSheetItem(
        rate_sheet_id=row.rate_sheet_id,
        sku_id=row.sku_id,
        pricing_method=ItemPricingMethod(row.pricing_method or "fixed"),
        fixed_price=row.fixed_price,
        fixed_labor_price=row.fixed_labor_price,
        fixed_material_price=row.fixed_material_price,
        material_markup_percent=row.material_markup_percent,
        margin_target_percent=row.margin_target_percent,
    )


def _line_item(row: QuoteLineItemRow) -> LineItem:
    return LineItem(
        id=row.id,
        line_type=LineType(row.line_type),
        quantity=D(row.quantity),
        unit_price=D(row.unit_price),
        unit_cost=D(row.unit_cost),
        material_unit_cost=row.material_unit_cost,
        labor_unit_cost=row.labor_unit_cost,
        sku_id=row.sku_id,
        pricing_source=row.pricing_source,
        description=row.description or "",
        is_deleted=bool(row.is_deleted),
        converted_to_job_id=row.converted_to_job_id,
    )


QUOTE_SCALARS = (
    "quote_group",
    "is_alternative",
    "qbo_class_id",
    "community_id",
    "client_id",
    "discount_percent",
    "tax_rate_percent",
    "deposit_percent",
    "approval_requested_at",
    "manager_approved_at",
    "manager_approved_by",
    "manager_approval_notes",
    "approved_fingerprint",
    "sent_at",
    "accepted_at",
    "archived_at",
    "lost_notes",
    "lost_to_competitor",
    "converted_to_job_id",
    "status_changed_at",
)

LINE_SCALARS = (
    "description",
    "sku_id",
    "quantity",
    "unit_price",
    "unit_cost",
    "material_unit_cost",
    "labor_unit_cost",
    "pricing_source",
    "is_deleted",
    "converted_to_job_id",
)


def quote_from_row(row: QuoteRow) -> Quote:
    quote = Quote(
        id=row.id,
        status=QuoteStatus(row.status),
        line_items=[_line_item(li) for li in row.line_items],
        lost_reason=LostReason(row.lost_reason) if row.lost_reason else None,
    )
    for name in QUOTE_SCALARS:
        setattr(quote, name, getattr(row, name))
    for name in ("discount_percent", "tax_rate_percent", "deposit_percent"):
        setattr(quote, name, D(getattr(quote, name) or 0))
    quote.is_alternative = bool(quote.is_alternative)
    return quote


def _apply_quote(row: QuoteRow, quote: Quote) -> None:
    row.status = quote.status.value
    row.lost_reason = quote.lost_reason.value if quote.lost_reason else None
    for name in QUOTE_SCALARS:
        setattr(row, name, getattr(quote, name))

    existing = {li.id: li for li in row.line_items}
    for order, li in enumerate(quote.line_items):
        li_row = existing.get(li.id)
        if li_row is None:
            li_row = QuoteLineItemRow(id=li.id)
            row.line_items.append(li_row)
        li_row.sort_order = order
        li_row.line_type = li.line_type.value
        for name in LINE_SCALARS:
            setattr(li_row, name, getattr(li, name))


def _status_change(row: QuoteStatusHistoryRow) -> StatusChange:
    return StatusChange(
        quote_id=row.quote_id,
        from_status=QuoteStatus(row.from_status) if row.from_status else None,
        to_status=QuoteStatus(row.to_status),
        event=row.event,
        at=row.at,
        actor=row.actor,
        notes=row.notes,
    )


def _job(row: JobRow) -> Job:
    ids = tuple(i for i in (row.line_item_ids or "").split(",") if i)
    return Job(id=row.id, quote_id=row.quote_id, line_item_ids=ids, created_at=row.created_at)


class _SqlRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _fail(what: str, e: Exception, **meta) -> PersistenceFailure:
        return PersistenceFailure(f"{what} failed: {e.__class__.__name__}", meta=meta)


# -----------------------------
# Pricing data
# -----------------------------


class SqlPricingDataSource(_SqlRepository):
    async def get_community(self, community_id: str) -> Optional[CommunityRef]:
        try:
            async with self.session_factory() as session:
                row = await session.get(CommunityRow, community_id)
        except SQLAlchemyError as e:
            raise self._fail("get_community", e, community_id=community_id) from e
        if row is None:
            return None
        return CommunityRef(id=row.id, rate_sheet_id=row.rate_sheet_id, client_id=row.client_id)

    async def get_client_default_rate_sheet_id(self, client_id: str) -> Optional[str]:
        try:
            async with self.session_factory() as session:
                row = await session.get(ClientRow, client_id)
        except SQLAlchemyError as e:
            raise self._fail("get_client_default_rate_sheet_id", e, client_id=client_id) from e
        return row.default_rate_sheet_id if row else None

    async def get_business_unit_default_rate_sheet_id(self, qbo_class_id: str) -> Optional[str]:
        try:
            async with self.session_factory() as session:
                row = await session.get(QboClassRow, qbo_class_id)
        except SQLAlchemyError as e:
            raise self._fail("get_business_unit_default_rate_sheet_id", e, qbo_class_id=qbo_class_id) from e
        return row.default_rate_sheet_id if row else None

    async def get_active_rate_sheet(self, rate_sheet_id: str) -> Optional[RateSheet]:
        stmt = select(RateSheetRow).where(RateSheetRow.id == rate_sheet_id, RateSheetRow.is_active.is_(True))
        try:
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("get_active_rate_sheet", e, rate_sheet_id=rate_sheet_id) from e
        return _rate_sheet(row) if row else None

    async def get_rate_sheet_item(self, rate_sheet_id: str, sku_id: str) -> Optional[RateSheetItem]:
        stmt = select(RateSheetItemRow).where(
            RateSheetItemRow.rate_sheet_id == rate_sheet_id, RateSheetItemRow.sku_id == sku_id
        )
        try:
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("get_rate_sheet_item", e, rate_sheet_id=rate_sheet_id, sku_id=sku_id) from e
        return _rate_sheet_item(row) if row else None

    async def get_community_products(self, community_id: str) -> Dict[str, CommunityProduct]:
        stmt = select(CommunityProductRow).where(CommunityProductRow.community_id == community_id)
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise self._fail("get_community_products", e, community_id=community_id) from e
        return {
            r.sku_id: CommunityProduct(
                community_id=r.community_id,
                sku_id=r.sku_id,
                price_override=r.price_override,
                spec_code=r.spec_code,
                is_default=bool(r.is_default),
            )
            for r in rows
        }

    async def get_sku(self, sku_id: str) -> Optional[Sku]:
        try:
            async with self.session_factory() as session:
                row = await session.get(SkuRow, sku_id)
        except SQLAlchemyError as e:
            raise self._fail("get_sku", e, sku_id=sku_id) from e
        if row is None:
            return None
        return Sku(
            id=row.id,
            sku_code=row.sku_code,
            sku_name=row.sku_name,
            standard_cost_per_foot=row.standard_cost_per_foot,
            standard_labor_cost=row.standard_labor_cost,
        )

    async def get_labor_cost(self, sku_id: str, qbo_class_id: str) -> Optional[D]:
        stmt = select(SkuLaborCostRow.labor_cost_per_foot).where(
            SkuLaborCostRow.sku_id == sku_id, SkuLaborCostRow.qbo_class_id == qbo_class_id
        )
        try:
            async with self.session_factory() as session:
                return (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("get_labor_cost", e, sku_id=sku_id, qbo_class_id=qbo_class_id) from e


class SqlApprovalPolicyStore(_SqlRepository):
    async def policy_for(self, qbo_class_id: Optional[str]) -> ApprovalPolicy:
        try:
            async with self.session_factory() as session:
                row = None
                if qbo_class_id:
                    stmt = select(ApprovalSettingsRow).where(ApprovalSettingsRow.qbo_class_id == qbo_class_id)
                    row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    stmt = select(ApprovalSettingsRow).where(ApprovalSettingsRow.qbo_class_id.is_(None))
                    row = (await session.execute(stmt)).scalars().first()
        except SQLAlchemyError as e:
            raise self._fail("policy_for", e, qbo_class_id=qbo_class_id) from e

        if row is None:
            return DEFAULT_POLICY
        return ApprovalPolicy.from_mapping({c.key: getattr(row, c.key) for c in ApprovalSettingsRow.__table__.columns})


# -----------------------------
# Quotes
# -----------------------------


class SqlQuoteStore(_SqlRepository):
    async def get_quote(self, quote_id: str) -> Quote:
        try:
            async with self.session_factory() as session:
                row = await session.get(QuoteRow, quote_id)
                quote = quote_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("get_quote", e, quote_id=quote_id) from e
        if quote is None:
            raise QuoteNotFound(quote_id)
        return quote

    async def get_group_members(self, quote_group: str) -> List[Quote]:
        stmt = select(QuoteRow).where(QuoteRow.quote_group == quote_group).order_by(QuoteRow.id)
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [quote_from_row(r) for r in rows]
        except SQLAlchemyError as e:
            raise self._fail("get_group_members", e, quote_group=quote_group) from e

    async def _upsert(self, session: AsyncSession, quote: Quote) -> None:
        row = await session.get(QuoteRow, quote.id)
        if row is None:
            row = QuoteRow(id=quote.id, line_items=[])
            session.add(row)
        _apply_quote(row, quote)

    async def save_quote(self, quote: Quote) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._upsert(session, quote)
        except SQLAlchemyError as e:
            raise self._fail("save_quote", e, quote_id=quote.id) from e

    async def apply_transition(self, write: TransitionWrite) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._upsert(session, write.quote)
                    for sibling in write.siblings:
                        await self._upsert(session, sibling)
                    if write.job is not None:
                        session.add(
                            JobRow(
                                id=write.job.id,
                                quote_id=write.job.quote_id,
                                line_item_ids=",".join(write.job.line_item_ids),
                                created_at=write.job.created_at,
                            )
                        )
                    for change in write.history:
                        session.add(
                            QuoteStatusHistoryRow(
                                quote_id=change.quote_id,
                                from_status=change.from_status.value if change.from_status else None,
                                to_status=change.to_status.value,
                                event=change.event,
                                at=change.at,
                                actor=change.actor,
                                notes=change.notes,
                            )
                        )
        except SQLAlchemyError as e:
            raise self._fail("apply_transition", e, quote_id=write.quote.id) from e

    async def get_status_history(self, quote_id: str) -> Sequence[StatusChange]:
        stmt = (
            select(QuoteStatusHistoryRow)
            .where(QuoteStatusHistoryRow.quote_id == quote_id)
            .order_by(QuoteStatusHistoryRow.id)
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise self._fail("get_status_history", e, quote_id=quote_id) from e
        return [_status_change(r) for r in rows]

    async def get_job(self, job_id: str) -> Optional[Job]:
        try:
            async with self.session_factory() as session:
                row = await session.get(JobRow, job_id)
        except SQLAlchemyError as e:
            raise self._fail("get_job", e, job_id=job_id) from e
        return _job(row) if row else None
