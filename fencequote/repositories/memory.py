"""
In-process implementations of the repository protocols. Used by tests and
local runs without a database; quotes are stored as copies so callers can
never reach into the store's state.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple

from fencequote.approval.policy import DEFAULT_POLICY, ApprovalPolicy
from fencequote.core.errors import PersistenceFailure, QuoteNotFound
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
from fencequote.repositories.base import TransitionWrite


class InMemoryPricingData:
    def __init__(self) -> None:
        self.communities: Dict[str, CommunityRef] = {}
        self.client_sheets: Dict[str, Optional[str]] = {}
        self.business_unit_sheets: Dict[str, Optional[str]] = {}
        self.rate_sheets: Dict[str, RateSheet] = {}
        self.items: Dict[Tuple[str, str], RateSheetItem] = {}
        self.community_products: Dict[str, Dict[str, CommunityProduct]] = defaultdict(dict)
        self.skus: Dict[str, Sku] = {}
        self.labor_costs: Dict[Tuple[str, str], D] = {}
        # method names that should raise PersistenceFailure
        self.failing: Set[str] = set()
        self.calls: List[str] = []

    # seeding helpers
    def add_rate_sheet(self, sheet: RateSheet, *items: RateSheetItem) -> RateSheet:
        self.rate_sheets[sheet.id] = sheet
        for item in items:
            self.items[(item.rate_sheet_id, item.sku_id)] = item
        return sheet

    def add_community_product(self, product: CommunityProduct) -> None:
        self.community_products[product.community_id][product.sku_id] = product

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise PersistenceFailure(f"{name} unavailable", meta={"method": name})

    async def get_community(self, community_id: str) -> Optional[CommunityRef]:
        self._call("get_community")
        return self.communities.get(community_id)

    async def get_client_default_rate_sheet_id(self, client_id: str) -> Optional[str]:
        self._call("get_client_default_rate_sheet_id")
        return self.client_sheets.get(client_id)

    async def get_business_unit_default_rate_sheet_id(self, qbo_class_id: str) -> Optional[str]:
        self._call("get_business_unit_default_rate_sheet_id")
        return self.business_unit_sheets.get(qbo_class_id)

    async def get_active_rate_sheet(self, rate_sheet_id: str) -> Optional[RateSheet]:
        self._call("get_active_rate_sheet")
        sheet = self.rate_sheets.get(rate_sheet_id)
        return sheet if sheet is not None and sheet.is_active else None

    async def get_rate_sheet_item(self, rate_sheet_id: str, sku_id: str) -> Optional[RateSheetItem]:
        self._call("get_rate_sheet_item")
        return self.items.get((rate_sheet_id, sku_id))

    async def get_community_products(self, community_id: str) -> Dict[str, CommunityProduct]:
        self._call("get_community_products")
        return dict(self.community_products.get(community_id, {}))

    async def get_sku(self, sku_id: str) -> Optional[Sku]:
        self._call("get_sku")
        return self.skus.get(sku_id)

    async def get_labor_cost(self, sku_id: str, qbo_class_id: str) -> Optional[D]:
        self._call("get_labor_cost")
        return self.labor_costs.get((sku_id, qbo_class_id))


class InMemoryApprovalPolicyStore:
    def __init__(self, *policies: ApprovalPolicy):
        self.policies: Dict[Optional[str], ApprovalPolicy] = {p.qbo_class_id: p for p in policies}

    async def policy_for(self, qbo_class_id: Optional[str]) -> ApprovalPolicy:
        if qbo_class_id and qbo_class_id in self.policies:
            return self.policies[qbo_class_id]
        return self.policies.get(None, DEFAULT_POLICY)


class InMemoryQuoteStore:
    def __init__(self, *quotes: Quote):
        self.quotes: Dict[str, Quote] = {q.id: q.copy() for q in quotes}
        self.history: List[StatusChange] = []
        self.jobs: Dict[str, Job] = {}
        self.fail_writes = False

    async def get_quote(self, quote_id: str) -> Quote:
        quote = self.quotes.get(quote_id)
        if quote is None:
            raise QuoteNotFound(quote_id)
        return quote.copy()

    async def get_group_members(self, quote_group: str) -> List[Quote]:
        return [q.copy() for q in self.quotes.values() if q.quote_group == quote_group]

    async def save_quote(self, quote: Quote) -> None:
        if self.fail_writes:
            raise PersistenceFailure("write rejected", meta={"quote_id": quote.id})
        self.quotes[quote.id] = quote.copy()

    async def apply_transition(self, write: TransitionWrite) -> None:
        if self.fail_writes:
            raise PersistenceFailure("write rejected", meta={"quote_id": write.quote.id})
        # single assignment pass: nothing is written if building the batch fails
        staged = {q.id: q.copy() for q in [write.quote, *write.siblings]}
        self.quotes.update(staged)
        if write.job is not None:
            self.jobs[write.job.id] = write.job
        self.history.extend(write.history)

    async def get_status_history(self, quote_id: str) -> Sequence[StatusChange]:
        return [h for h in self.history if h.quote_id == quote_id]

    async def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)
