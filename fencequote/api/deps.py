from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from fencequote.approval.gate import ApprovalGate
from fencequote.core.settings import Settings
from fencequote.lifecycle.machine import QuoteStateMachine
from fencequote.lifecycle.service import QuoteLifecycleService
from fencequote.pricing.resolver import RateSheetRepository, RateSheetResolver
from fencequote.pricing.rpc_client import RpcPriceClient
from fencequote.pricing.service import PricingService
from fencequote.repositories.base import ApprovalPolicyStore, PricingDataSource, QuoteStore


@dataclass
class Services:
    pricing: PricingService
    lifecycle: QuoteLifecycleService
    gate: ApprovalGate
    policies: ApprovalPolicyStore
    rate_sheets: RateSheetRepository


def build_services(
    data: PricingDataSource,
    quotes: QuoteStore,
    policies: ApprovalPolicyStore,
    settings: Settings,
    rpc: Optional[RpcPriceClient] = None,
) -> Services:
    if settings.APPROVAL_RULESET_PATH:
        gate = ApprovalGate.from_yaml_file(settings.APPROVAL_RULESET_PATH)
    else:
        gate = ApprovalGate.default()

    rate_sheets = RateSheetRepository(
        RateSheetResolver(data),
        ttl_seconds=settings.RATE_SHEET_CACHE_TTL_SECONDS,
    )
    return Services(
        pricing=PricingService(data, rate_sheets, rpc=rpc),
        lifecycle=QuoteLifecycleService(quotes, policies, QuoteStateMachine(gate=gate)),
        gate=gate,
        policies=policies,
        rate_sheets=rate_sheets,
    )


def build_sql_services(settings: Settings) -> Services:
    from fencequote.db import AsyncSessionLocal
    from fencequote.repositories.sql import SqlApprovalPolicyStore, SqlPricingDataSource, SqlQuoteStore

    return build_services(
        SqlPricingDataSource(AsyncSessionLocal),
        SqlQuoteStore(AsyncSessionLocal),
        SqlApprovalPolicyStore(AsyncSessionLocal),
        settings,
        rpc=RpcPriceClient.from_settings(settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_pricing_service(request: Request) -> PricingService:
    return get_services(request).pricing


def get_lifecycle_service(request: Request) -> QuoteLifecycleService:
    return get_services(request).lifecycle
