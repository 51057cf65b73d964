"""
Interfaces of the external collaborator (hosted database / RPC layer).

Every method is async. Implementations must raise ``PersistenceFailure``
(chaining the driver error) instead of returning substitute values.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from fencequote.approval.policy import ApprovalPolicy
from fencequote.domain.models import (
    D,
    CommunityProduct,
    CommunityRef,
    Job,
    Quote,
    RateSheet,
    RateSheetItem,
    Sku,
    StatusChange,
)


class PricingDataSource(Protocol):
    async def get_community(self, community_id: str) -> Optional[CommunityRef]: ...

    async def get_client_default_rate_sheet_id(self, client_id: str) -> Optional[str]: ...

    async def get_business_unit_default_rate_sheet_id(self, qbo_class_id: str) -> Optional[str]: ...

    async def get_active_rate_sheet(self, rate_sheet_id: str) -> Optional[RateSheet]:
        """Return the sheet only if ``is_active``; inactive sheets read as missing."""
        ...

    async def get_rate_sheet_item(self, rate_sheet_id: str, sku_id: str) -> Optional[RateSheetItem]: ...

    async def get_community_products(self, community_id: str) -> Dict[str, CommunityProduct]: ...

    async def get_sku(self, sku_id: str) -> Optional[Sku]: ...

    async def get_labor_cost(self, sku_id: str, qbo_class_id: str) -> Optional[D]:
        """BU-specific labor cost per LF, or None when the BU has no row for the SKU."""
        ...


class ApprovalPolicyStore(Protocol):
    async def policy_for(self, qbo_class_id: Optional[str]) -> ApprovalPolicy: ...


@dataclass
class TransitionWrite:
    """
    Everything one lifecycle transition persists. Implementations write it
    in a single transaction: all rows or none.
    """

    quote: Quote
    history: List[StatusChange] = field(default_factory=list)
    siblings: List[Quote] = field(default_factory=list)
    job: Optional[Job] = None


class QuoteStore(Protocol):
    async def get_quote(self, quote_id: str) -> Quote:
        """Raise ``QuoteNotFound`` when missing."""
        ...

    async def get_group_members(self, quote_group: str) -> List[Quote]: ...

    async def save_quote(self, quote: Quote) -> None: ...

    async def apply_transition(self, write: TransitionWrite) -> None: ...

    async def get_status_history(self, quote_id: str) -> Sequence[StatusChange]: ...

    async def get_job(self, job_id: str) -> Optional[Job]: ...
