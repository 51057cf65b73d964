from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fencequote.db import Base


class QboClassRow(Base):
    """Business unit (QuickBooks class)."""

    __tablename__ = "qbo_classes"
    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    default_rate_sheet_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("rate_sheets.id"), nullable=True)


class ClientRow(Base):
    __tablename__ = "clients"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    default_rate_sheet_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("rate_sheets.id"), nullable=True)


class CommunityRow(Base):
    __tablename__ = "communities"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    client_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("clients.id"), nullable=True)
    rate_sheet_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("rate_sheets.id"), nullable=True)


class RateSheetRow(Base):
    __tablename__ = "rate_sheets"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    pricing_type: Mapped[str] = mapped_column(String(20), default="custom")
    default_margin_target_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    default_material_markup_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)


class RateSheetItemRow(Base):
    __tablename__ = "rate_sheet_items"
    __table_args__ = (UniqueConstraint("rate_sheet_id", "sku_id", name="uq_rate_sheet_items_sheet_sku"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    rate_sheet_id: Mapped[str] = mapped_column(String(36), ForeignKey("rate_sheets.id"), index=True)
    sku_id: Mapped[str] = mapped_column(String(36), ForeignKey("skus.id"))
    pricing_method: Mapped[str] = mapped_column(String(20), default="fixed")
    fixed_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    fixed_labor_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    fixed_material_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    material_markup_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    margin_target_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)


class CommunityProductRow(Base):
    __tablename__ = "community_products"
    __table_args__ = (UniqueConstraint("community_id", "sku_id", name="uq_community_products_community_sku"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    community_id: Mapped[str] = mapped_column(String(36), ForeignKey("communities.id"), index=True)
    sku_id: Mapped[str] = mapped_column(String(36), ForeignKey("skus.id"))
    price_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    spec_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)


class SkuRow(Base):
    __tablename__ = "skus"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sku_code: Mapped[str] = mapped_column(String(50), index=True)
    sku_name: Mapped[str] = mapped_column(String(255))
    standard_cost_per_foot: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), nullable=True)
    standard_labor_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)


class SkuLaborCostRow(Base):
    __tablename__ = "sku_labor_costs"
    __table_args__ = (UniqueConstraint("sku_id", "qbo_class_id", name="uq_sku_labor_costs_sku_bu"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sku_id: Mapped[str] = mapped_column(String(36), ForeignKey("skus.id"))
    qbo_class_id: Mapped[str] = mapped_column(String(50), ForeignKey("qbo_classes.id"))
    labor_cost_per_foot: Mapped[Decimal] = mapped_column(Numeric(10, 4))


class ApprovalSettingsRow(Base):
    __tablename__ = "quote_approval_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # NULL = company-wide fallback
    qbo_class_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    margin_below_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("15"))
    discount_above_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("10"))
    discount_min_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    total_above_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("25000"))
    deposit_min_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    deposit_max_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("100"))
