from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fencequote.db import Base


class QuoteRow(Base):
    __tablename__ = "quotes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(30), default="draft", index=True)

    quote_group: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    is_alternative: Mapped[bool] = mapped_column(Boolean, default=False)
    qbo_class_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    community_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    tax_rate_percent: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=Decimal("0"))
    deposit_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))

    approval_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    manager_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    manager_approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    manager_approval_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_fingerprint: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    lost_reason: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    lost_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lost_to_competitor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    converted_to_job_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    line_items: Mapped[list["QuoteLineItemRow"]] = relationship(
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteLineItemRow.sort_order",
        lazy="selectin",
    )


class QuoteLineItemRow(Base):
    __tablename__ = "quote_line_items"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quotes.id"), index=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    line_type: Mapped[str] = mapped_column(String(20), default="material")
    description: Mapped[str] = mapped_column(Text, default="")
    sku_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("0"))
    material_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4), nullable=True)
    labor_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4), nullable=True)
    pricing_source: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    converted_to_job_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    quote: Mapped[QuoteRow] = relationship(back_populates="line_items")


class JobRow(Base):
    __tablename__ = "jobs"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quotes.id"), index=True)
    # comma separated line item ids, in selection order
    line_item_ids: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class QuoteStatusHistoryRow(Base):
    __tablename__ = "quote_status_history"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quotes.id"), index=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30))
    event: Mapped[str] = mapped_column(String(40))
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    actor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
