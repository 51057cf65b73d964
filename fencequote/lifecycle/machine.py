"""
Quote lifecycle state machine.

One entry point, ``QuoteStateMachine.transition``. Guards run before any
change; on success the caller gets a *new* Quote plus everything that must
be persisted with it (archived siblings, created job, history rows). The
input quote is never mutated.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence, Union

from fencequote.approval.gate import ApprovalGate, get_default_gate
from fencequote.approval.policy import ApprovalPolicy
from fencequote.core.errors import IllegalTransition
from fencequote.domain.models import Job, LostReason, Quote, QuoteStatus, StatusChange
from fencequote.lifecycle.states import TERMINAL, TRANSITIONS, QuoteEvent, allowed_events
from fencequote.pricing.totals import totals_for_quote


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TransitionResult:
    quote: Quote
    event: QuoteEvent
    previous_status: QuoteStatus
    history: List[StatusChange] = field(default_factory=list)
    siblings: List[Quote] = field(default_factory=list)
    job: Optional[Job] = None


class QuoteStateMachine:
    def __init__(
        self,
        gate: Optional[ApprovalGate] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.gate = gate or get_default_gate()
        self.clock = clock
        self.id_factory = id_factory

    def can(self, quote: Quote, event: Union[QuoteEvent, str]) -> bool:
        """Source-state check only; payload guards are not evaluated."""
        event = QuoteEvent(event)
        sources, _ = TRANSITIONS[event]
        return quote.status in sources

    def allowed_actions(self, quote: Quote, policy: Optional[ApprovalPolicy] = None) -> List[str]:
        """
        Actions the quote can take right now. Unlike ``can`` this runs the
        guards that depend only on the quote itself: send is withheld while
        approval is outstanding and convert once a job exists.
        """
        actions: List[str] = []
        for event in allowed_events(quote.status):
            if event is QuoteEvent.SEND and self.gate.needs_approval(totals_for_quote(quote), quote, policy).required:
                continue
            if event is QuoteEvent.CONVERT_TO_JOB and quote.converted_to_job_id:
                continue
            actions.append(event.value)
        return actions

    def transition(
        self,
        quote: Quote,
        event: Union[QuoteEvent, str],
        *,
        policy: Optional[ApprovalPolicy] = None,
        group_members: Iterable[Quote] = (),
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        lost_reason: Optional[Union[LostReason, str]] = None,
        lost_to_competitor: Optional[str] = None,
        line_item_ids: Optional[Sequence[str]] = None,
    ) -> TransitionResult:
        try:
            event = QuoteEvent(event)
        except ValueError:
            raise IllegalTransition(
                f"Unknown lifecycle action '{event}'",
                status=quote.status.value,
                event=str(event),
                code="UNKNOWN_EVENT",
            ) from None

        sources, target = TRANSITIONS[event]
        if quote.status not in sources:
            raise IllegalTransition(
                f"Cannot {event.value} a quote in status '{quote.status.value}'",
                status=quote.status.value,
                event=event.value,
            )

        now = self.clock()
        new = quote.copy()
        result = TransitionResult(quote=new, event=event, previous_status=quote.status)

        handler = getattr(self, f"_on_{event.value}")
        handler(
            new,
            result,
            now=now,
            policy=policy,
            group_members=group_members,
            actor=actor,
            notes=notes,
            lost_reason=lost_reason,
            lost_to_competitor=lost_to_competitor,
            line_item_ids=line_item_ids,
        )

        if target is not None and target is not quote.status:
            new.status = target
            new.status_changed_at = now

        result.history.insert(
            0,
            StatusChange(
                quote_id=new.id,
                from_status=quote.status,
                to_status=new.status,
                event=event.value,
                at=now,
                actor=actor,
                notes=notes,
            ),
        )
        return result

    # -----------------------------
    # Guards and side effects per event
    # -----------------------------

    def _on_request_approval(self, new: Quote, result: TransitionResult, *, now, **_) -> None:
        new.approval_requested_at = now
        _clear_manager_approval(new)

    def _on_approve(self, new: Quote, result: TransitionResult, *, now, actor, notes, **_) -> None:
        new.manager_approved_at = now
        new.manager_approved_by = actor
        new.manager_approval_notes = notes
        new.approved_fingerprint = new.pricing_fingerprint()

    def _on_reject(self, new: Quote, result: TransitionResult, *, notes, **_) -> None:
        _clear_manager_approval(new)
        new.approval_requested_at = None
        new.manager_approval_notes = notes

    def _on_send(self, new: Quote, result: TransitionResult, *, now, policy, **_) -> None:
        decision = self.gate.needs_approval(totals_for_quote(new), new, policy)
        if decision.required:
            raise IllegalTransition(
                "Manager approval is required before sending",
                status=new.status.value,
                event=QuoteEvent.SEND.value,
                code="APPROVAL_REQUIRED",
                meta={"reasons": decision.reasons},
            )
        new.sent_at = now

    def _on_mark_awaiting_response(self, new: Quote, result: TransitionResult, **_) -> None:
        pass

    def _on_request_changes(self, new: Quote, result: TransitionResult, **_) -> None:
        pass

    def _on_reopen(self, new: Quote, result: TransitionResult, **_) -> None:
        pass

    def _on_mark_accepted(
        self, new: Quote, result: TransitionResult, *, now, group_members, actor, **_
    ) -> None:
        new.accepted_at = now
        if not new.quote_group:
            return

        for member in group_members:
            if member.id == new.id or member.quote_group != new.quote_group:
                continue
            if member.status in TERMINAL:
                continue
            archived = member.copy()
            archived.status = QuoteStatus.ARCHIVED
            archived.archived_at = now
            archived.status_changed_at = now
            result.siblings.append(archived)
            result.history.append(
                StatusChange(
                    quote_id=archived.id,
                    from_status=member.status,
                    to_status=QuoteStatus.ARCHIVED,
                    event=QuoteEvent.ARCHIVE.value,
                    at=now,
                    actor=actor,
                    notes=f"Alternative {new.id} accepted",
                )
            )

    def _on_mark_lost(
        self, new: Quote, result: TransitionResult, *, notes, lost_reason, lost_to_competitor, **_
    ) -> None:
        try:
            reason = LostReason(lost_reason) if lost_reason is not None else None
        except ValueError:
            reason = None
        if reason is None:
            raise IllegalTransition(
                "A valid lost reason is required",
                status=new.status.value,
                event=QuoteEvent.MARK_LOST.value,
                code="LOST_REASON_REQUIRED",
                meta={"lost_reason": None if lost_reason is None else str(lost_reason)},
            )
        new.lost_reason = reason
        new.lost_notes = notes
        new.lost_to_competitor = lost_to_competitor

    def _on_convert_to_job(self, new: Quote, result: TransitionResult, *, now, line_item_ids, **_) -> None:
        if new.converted_to_job_id:
            raise IllegalTransition(
                "Quote has already been converted",
                status=new.status.value,
                event=QuoteEvent.CONVERT_TO_JOB.value,
                code="ALREADY_CONVERTED",
                meta={"job_id": new.converted_to_job_id},
            )

        selected = list(dict.fromkeys(line_item_ids or ()))
        if not selected:
            raise IllegalTransition(
                "Select at least one line item to convert",
                status=new.status.value,
                event=QuoteEvent.CONVERT_TO_JOB.value,
                code="EMPTY_SELECTION",
            )

        active = {li.id for li in new.active_line_items}
        unknown = [i for i in selected if i not in active]
        if unknown:
            raise IllegalTransition(
                "Selected line items are not on this quote",
                status=new.status.value,
                event=QuoteEvent.CONVERT_TO_JOB.value,
                code="UNKNOWN_LINE_ITEMS",
                meta={"line_item_ids": unknown},
            )

        job = Job(id=self.id_factory(), quote_id=new.id, line_item_ids=tuple(selected), created_at=now)
        chosen = set(selected)
        new.line_items = [
            replace(li, converted_to_job_id=job.id) if li.id in chosen else li for li in new.line_items
        ]
        new.converted_to_job_id = job.id
        result.job = job

    def _on_archive(self, new: Quote, result: TransitionResult, *, now, **_) -> None:
        new.archived_at = now


def _clear_manager_approval(quote: Quote) -> None:
    quote.manager_approved_at = None
    quote.manager_approved_by = None
    quote.approved_fingerprint = None
