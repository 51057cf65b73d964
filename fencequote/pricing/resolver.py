"""
Rate sheet resolution.

Walks community -> owning client -> client -> business unit and returns the
first *active* sheet. Levels are never merged: a community without a sheet
falls through to the client sheet as a whole. A failed lookup counts as
"not found" at that level; the result is flagged ``degraded`` so callers can
tell a genuine miss from a backend hiccup.
"""
from __future__ import annotations

import time
from typing import Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from fencequote.core.errors import PersistenceFailure
from fencequote.core.logging_config import logger
from fencequote.domain.models import EffectiveRateSheet, PriceSource, PricingContext, RateSheet
from fencequote.repositories.base import PricingDataSource

T = TypeVar("T")


class RateSheetResolver:
    def __init__(self, data: PricingDataSource):
        self.data = data

    async def _lookup(self, step: str, fn: Callable[[], Awaitable[T]]) -> Tuple[Optional[T], bool]:
        try:
            return await fn(), False
        except PersistenceFailure as e:
            logger.warning("rate_sheet_lookup_failed", step=step, error=e.message)
            return None, True

    async def _active_sheet(self, step: str, rate_sheet_id: Optional[str]) -> Tuple[Optional[RateSheet], bool]:
        if not rate_sheet_id:
            return None, False
        sheet, failed = await self._lookup(step, lambda: self.data.get_active_rate_sheet(rate_sheet_id))
        # implementations filter inactive rows already; keep the invariant local too
        if sheet is not None and not sheet.is_active:
            return None, failed
        return sheet, failed

    async def resolve(self, context: PricingContext) -> EffectiveRateSheet:
        if context.is_empty:
            return EffectiveRateSheet.none()
        degraded = False

        # 1 + 2: community sheet, then the owning client's default
        if context.community_id:
            community, failed = await self._lookup(
                "community", lambda: self.data.get_community(context.community_id)
            )
            degraded |= failed
            if community is not None:
                sheet, failed = await self._active_sheet("community_sheet", community.rate_sheet_id)
                degraded |= failed
                if sheet is not None:
                    return EffectiveRateSheet(sheet.id, sheet, PriceSource.COMMUNITY, degraded)

                if community.client_id:
                    found, failed = await self._client_sheet(community.client_id)
                    degraded |= failed
                    if found is not None:
                        return EffectiveRateSheet(found.id, found, PriceSource.CLIENT, degraded)

        # 3: client given directly (no community supplied)
        elif context.client_id:
            found, failed = await self._client_sheet(context.client_id)
            degraded |= failed
            if found is not None:
                return EffectiveRateSheet(found.id, found, PriceSource.CLIENT, degraded)

        # 4: business unit default
        if context.business_unit_class_id:
            bu_id = context.business_unit_class_id
            sheet_id, failed = await self._lookup(
                "business_unit", lambda: self.data.get_business_unit_default_rate_sheet_id(bu_id)
            )
            degraded |= failed
            sheet, failed = await self._active_sheet("business_unit_sheet", sheet_id)
            degraded |= failed
            if sheet is not None:
                return EffectiveRateSheet(sheet.id, sheet, PriceSource.BUSINESS_UNIT, degraded)

        # 5: price at cost
        return EffectiveRateSheet.none(degraded=degraded)

    async def _client_sheet(self, client_id: str) -> Tuple[Optional[RateSheet], bool]:
        sheet_id, failed = await self._lookup(
            "client", lambda: self.data.get_client_default_rate_sheet_id(client_id)
        )
        sheet, failed_sheet = await self._active_sheet("client_sheet", sheet_id)
        return sheet, failed or failed_sheet


class RateSheetRepository:
    """
    Explicit cache in front of the resolver.

    Only *which* sheet governs a context is cached; prices are always
    recomputed. Degraded results are never cached.
    """

    def __init__(
        self,
        resolver: RateSheetResolver,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = resolver
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple, Tuple[float, EffectiveRateSheet]] = {}

    async def resolve(self, context: PricingContext) -> EffectiveRateSheet:
        key = context.cache_key()
        hit = self._entries.get(key)
        now = self._clock()
        if hit is not None and now - hit[0] < self.ttl_seconds:
            return hit[1]

        result = await self.resolver.resolve(context)
        if result.degraded:
            self._entries.pop(key, None)
        elif self.ttl_seconds > 0:
            self._entries[key] = (now, result)
        return result

    def invalidate(self, context: Optional[PricingContext] = None) -> None:
        if context is None:
            self._entries.clear()
        else:
            self._entries.pop(context.cache_key(), None)

    def invalidate_rate_sheet(self, rate_sheet_id: str) -> int:
        stale = [k for k, (_, r) in self._entries.items() if r.rate_sheet_id == rate_sheet_id]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
