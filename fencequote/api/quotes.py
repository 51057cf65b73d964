from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Body, Depends

from fencequote.api.deps import get_lifecycle_service
from fencequote.lifecycle.service import QuoteLifecycleService
from fencequote.schemas.quote_v1 import (
    AlternativeInputV1,
    QuoteActionInputV1,
    QuoteCreateInputV1,
    QuoteV1,
    TransitionOutputV1,
)

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


@router.post("", response_model=QuoteV1, status_code=201)
async def create_quote(
    payload: QuoteCreateInputV1, lifecycle: QuoteLifecycleService = Depends(get_lifecycle_service)
) -> QuoteV1:
    quote = await lifecycle.create_quote(
        qbo_class_id=payload.qbo_class_id,
        community_id=payload.community_id,
        client_id=payload.client_id,
        discount_percent=payload.discount_percent,
        tax_rate_percent=payload.tax_rate_percent,
        deposit_percent=payload.deposit_percent,
        line_items=[li.to_domain() for li in payload.line_items],
        actor=payload.actor,
    )
    return QuoteV1.from_domain(quote, await lifecycle.allowed_actions(quote))


@router.get("/{quote_id}", response_model=QuoteV1)
async def get_quote(quote_id: str, lifecycle: QuoteLifecycleService = Depends(get_lifecycle_service)) -> QuoteV1:
    quote = await lifecycle.get(quote_id)
    return QuoteV1.from_domain(quote, await lifecycle.allowed_actions(quote))


@router.get("/{quote_id}/history")
async def get_history(
    quote_id: str, lifecycle: QuoteLifecycleService = Depends(get_lifecycle_service)
) -> List[dict]:
    await lifecycle.get(quote_id)
    history = await lifecycle.store.get_status_history(quote_id)
    return [
        {
            "from_status": h.from_status.value if h.from_status else None,
            "to_status": h.to_status.value,
            "event": h.event,
            "at": h.at.isoformat(),
            "actor": h.actor,
            "notes": h.notes,
        }
        for h in history
    ]


# declared before /{quote_id}/{action} so "alternatives" is not read as an action
@router.post("/{quote_id}/alternatives", response_model=QuoteV1, status_code=201)
async def create_alternative(
    quote_id: str,
    payload: Optional[AlternativeInputV1] = Body(default=None),
    lifecycle: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> QuoteV1:
    payload = payload or AlternativeInputV1()
    alt = await lifecycle.create_alternative(quote_id, actor=payload.actor)
    return QuoteV1.from_domain(alt, await lifecycle.allowed_actions(alt))


@router.post("/{quote_id}/{action}", response_model=TransitionOutputV1)
async def perform_action(
    quote_id: str,
    action: str,
    payload: Optional[QuoteActionInputV1] = Body(default=None),
    lifecycle: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> TransitionOutputV1:
    payload = payload or QuoteActionInputV1()
    result = await lifecycle.perform(quote_id, action, **payload.to_payload())
    return TransitionOutputV1(
        event=result.event.value,
        previous_status=result.previous_status,
        quote=QuoteV1.from_domain(result.quote, await lifecycle.allowed_actions(result.quote)),
        archived_quote_ids=[s.id for s in result.siblings],
        job_id=result.job.id if result.job else None,
    )
