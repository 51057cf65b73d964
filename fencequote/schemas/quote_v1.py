# fencequote/schemas/quote_v1.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fencequote.domain.models import LostReason, Quote, QuoteStatus
from fencequote.pricing.totals import totals_for_quote
from fencequote.schemas.pricing_v1 import LineItemV1, QuoteTotalsV1


class QuoteV1(BaseModel):
    id: str
    status: QuoteStatus
    quote_group: Optional[str] = None
    is_alternative: bool = False
    qbo_class_id: Optional[str] = None
    community_id: Optional[str] = None
    client_id: Optional[str] = None

    discount_percent: Decimal
    tax_rate_percent: Decimal
    deposit_percent: Decimal

    approval_requested_at: Optional[datetime] = None
    manager_approved_at: Optional[datetime] = None
    manager_approved_by: Optional[str] = None
    manager_approval_notes: Optional[str] = None
    has_current_manager_approval: bool = False

    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    lost_reason: Optional[LostReason] = None
    lost_notes: Optional[str] = None
    lost_to_competitor: Optional[str] = None
    converted_to_job_id: Optional[str] = None

    line_items: List[LineItemV1] = Field(default_factory=list)
    totals: QuoteTotalsV1
    allowed_actions: List[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, q: Quote, allowed_actions: Iterable[str] = ()) -> "QuoteV1":
        return cls(
            id=q.id,
            status=q.status,
            quote_group=q.quote_group,
            is_alternative=q.is_alternative,
            qbo_class_id=q.qbo_class_id,
            community_id=q.community_id,
            client_id=q.client_id,
            discount_percent=q.discount_percent,
            tax_rate_percent=q.tax_rate_percent,
            deposit_percent=q.deposit_percent,
            approval_requested_at=q.approval_requested_at,
            manager_approved_at=q.manager_approved_at,
            manager_approved_by=q.manager_approved_by,
            manager_approval_notes=q.manager_approval_notes,
            has_current_manager_approval=q.has_current_manager_approval,
            sent_at=q.sent_at,
            accepted_at=q.accepted_at,
            archived_at=q.archived_at,
            lost_reason=q.lost_reason,
            lost_notes=q.lost_notes,
            lost_to_competitor=q.lost_to_competitor,
            converted_to_job_id=q.converted_to_job_id,
            line_items=[LineItemV1.from_domain(li) for li in q.line_items],
            totals=QuoteTotalsV1.from_domain(totals_for_quote(q)),
            allowed_actions=list(allowed_actions),
        )


class QuoteCreateInputV1(BaseModel):
    """Payload for POST /api/quotes. Rates left out stay at zero."""

    model_config = ConfigDict(extra="forbid")

    qbo_class_id: Optional[str] = None
    community_id: Optional[str] = None
    client_id: Optional[str] = None
    discount_percent: Optional[Decimal] = Field(default=None, ge=0)
    tax_rate_percent: Optional[Decimal] = Field(default=None, ge=0)
    deposit_percent: Optional[Decimal] = Field(default=None, ge=0)
    line_items: List[LineItemV1] = Field(default_factory=list)
    actor: Optional[str] = None


class AlternativeInputV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    actor: Optional[str] = None


class QuoteActionInputV1(BaseModel):
    """
    Payload for POST /api/quotes/{id}/{action}. Every field is optional;
    guards decide which ones an action needs.
    """

    model_config = ConfigDict(extra="forbid")

    actor: Optional[str] = None
    notes: Optional[str] = None
    lost_reason: Optional[str] = None
    competitor: Optional[str] = None
    line_item_ids: Optional[List[str]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"actor": self.actor, "notes": self.notes}
        if self.lost_reason is not None or self.competitor is not None:
            payload["lost_reason"] = self.lost_reason
            payload["lost_to_competitor"] = self.competitor
        if self.line_item_ids is not None:
            payload["line_item_ids"] = self.line_item_ids
        return payload


class TransitionOutputV1(BaseModel):
    event: str
    previous_status: QuoteStatus
    quote: QuoteV1
    archived_quote_ids: List[str] = Field(default_factory=list)
    job_id: Optional[str] = None
