from __future__ import annotations

import time
import uuid
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

from fencequote.approval.gate import ApprovalDecision
from fencequote.core.errors import IllegalTransition
from fencequote.core.logging_config import logger
from fencequote.domain.models import LineItem, LostReason, Quote, QuoteStatus, QuoteTotals, StatusChange, to_decimal
from fencequote.lifecycle.editor import QuoteEditor
from fencequote.lifecycle.machine import QuoteStateMachine, TransitionResult
from fencequote.lifecycle.states import QuoteEvent
from fencequote.pricing.totals import totals_for_quote
from fencequote.repositories.base import ApprovalPolicyStore, QuoteStore, TransitionWrite


class QuoteLifecycleService:
    """
    Loads a quote, runs one lifecycle action through the state machine and
    persists the outcome in a single write. The quote object handed back is
    a fresh copy; nothing the caller holds is changed.
    """

    def __init__(
        self,
        store: QuoteStore,
        policies: ApprovalPolicyStore,
        machine: Optional[QuoteStateMachine] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.store = store
        self.policies = policies
        self.machine = machine or QuoteStateMachine()
        self.id_factory = id_factory

    async def get(self, quote_id: str) -> Quote:
        return await self.store.get_quote(quote_id)

    async def allowed_actions(self, quote: Quote) -> List[str]:
        policy = await self.policies.policy_for(quote.qbo_class_id)
        return self.machine.allowed_actions(quote, policy)

    async def evaluate(self, quote_id: str) -> Tuple[Quote, QuoteTotals, ApprovalDecision]:
        quote = await self.store.get_quote(quote_id)
        policy = await self.policies.policy_for(quote.qbo_class_id)
        totals = totals_for_quote(quote)
        return quote, totals, self.machine.gate.needs_approval(totals, quote, policy)

    async def _run(self, quote_id: str, event: QuoteEvent, **payload) -> TransitionResult:
        t0 = time.perf_counter()
        quote = await self.store.get_quote(quote_id)
        log = logger.bind(quote_id=quote_id, event=event.value, from_status=quote.status.value)

        policy = None
        if event is QuoteEvent.SEND:
            policy = await self.policies.policy_for(quote.qbo_class_id)

        members: Sequence[Quote] = ()
        if event is QuoteEvent.MARK_ACCEPTED and quote.quote_group:
            members = await self.store.get_group_members(quote.quote_group)

        try:
            result = self.machine.transition(quote, event, policy=policy, group_members=members, **payload)
        except IllegalTransition as e:
            log.info("quote_transition_rejected", code=e.code, reason=e.message)
            raise

        await self.store.apply_transition(
            TransitionWrite(
                quote=result.quote,
                history=list(result.history),
                siblings=list(result.siblings),
                job=result.job,
            )
        )

        log.info(
            "quote_transition",
            to_status=result.quote.status.value,
            siblings_archived=len(result.siblings),
            job_id=result.job.id if result.job else None,
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        return result

    async def request_approval(self, quote_id: str, *, actor: Optional[str] = None, notes: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.REQUEST_APPROVAL, actor=actor, notes=notes)

    async def approve(self, quote_id: str, *, actor: Optional[str] = None, notes: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.APPROVE, actor=actor, notes=notes)

    async def reject(self, quote_id: str, *, actor: Optional[str] = None, notes: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.REJECT, actor=actor, notes=notes)

    async def send(self, quote_id: str, *, actor: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.SEND, actor=actor)

    async def mark_awaiting_response(self, quote_id: str, *, actor: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.MARK_AWAITING_RESPONSE, actor=actor)

    async def request_changes(self, quote_id: str, *, actor: Optional[str] = None, notes: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.REQUEST_CHANGES, actor=actor, notes=notes)

    async def reopen(self, quote_id: str, *, actor: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.REOPEN, actor=actor)

    async def mark_accepted(self, quote_id: str, *, actor: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.MARK_ACCEPTED, actor=actor)

    async def mark_lost(
        self,
        quote_id: str,
        reason: Union[LostReason, str, None],
        *,
        notes: Optional[str] = None,
        competitor: Optional[str] = None,
        actor: Optional[str] = None,
    ):
        return await self._run(
            quote_id,
            QuoteEvent.MARK_LOST,
            lost_reason=reason,
            lost_to_competitor=competitor,
            notes=notes,
            actor=actor,
        )

    async def convert_to_job(self, quote_id: str, line_item_ids: Sequence[str], *, actor: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.CONVERT_TO_JOB, line_item_ids=list(line_item_ids), actor=actor)

    async def archive(self, quote_id: str, *, actor: Optional[str] = None):
        return await self._run(quote_id, QuoteEvent.ARCHIVE, actor=actor)

    async def perform(self, quote_id: str, action: Union[QuoteEvent, str], **payload) -> TransitionResult:
        """Dispatch by action name (used by the HTTP layer)."""
        try:
            event = QuoteEvent(action)
        except ValueError:
            raise IllegalTransition(f"Unknown lifecycle action '{action}'", event=str(action), code="UNKNOWN_EVENT") from None
        return await self._run(quote_id, event, **payload)

    def _new_draft(self, **fields: Any) -> Quote:
        return Quote(id=self.id_factory(), status=QuoteStatus.DRAFT, status_changed_at=self.machine.clock(), **fields)

    @staticmethod
    def _created(quote: Quote, actor: Optional[str], notes: Optional[str] = None) -> StatusChange:
        return StatusChange(
            quote_id=quote.id,
            from_status=None,
            to_status=QuoteStatus.DRAFT,
            event="create",
            at=quote.status_changed_at,
            actor=actor,
            notes=notes,
        )

    async def create_quote(
        self,
        *,
        qbo_class_id: Optional[str] = None,
        community_id: Optional[str] = None,
        client_id: Optional[str] = None,
        discount_percent: Optional[Any] = None,
        tax_rate_percent: Optional[Any] = None,
        deposit_percent: Optional[Any] = None,
        line_items: Iterable[LineItem] = (),
        actor: Optional[str] = None,
    ) -> Quote:
        """New draft; lines and rates go through the editor's checks before the first write."""
        editor = QuoteEditor(
            self._new_draft(qbo_class_id=qbo_class_id, community_id=community_id, client_id=client_id)
        )
        editor.set_rates(discount_percent, tax_rate_percent, deposit_percent)
        for item in line_items:
            editor.add_line_item(item)

        quote = editor.quote
        await self.store.apply_transition(TransitionWrite(quote=quote, history=[self._created(quote, actor)]))
        logger.bind(quote_id=quote.id).info(
            "quote_created", qbo_class_id=qbo_class_id, line_items=len(quote.active_line_items)
        )
        return quote.copy()

    async def create_alternative(self, original_id: str, *, actor: Optional[str] = None) -> Quote:
        """
        Start an alternative draft next to ``original_id``. The group id is
        the original's ``quote_group`` or, for a first alternative, the
        original's own id, which is then stamped on the original in the same
        write. Context and rates are copied; line items are not.
        """
        original = await self.store.get_quote(original_id)
        group = original.quote_group or original.id

        siblings: List[Quote] = []
        if not original.quote_group:
            grouped = original.copy()
            grouped.quote_group = group
            siblings.append(grouped)

        alt = self._new_draft(
            quote_group=group,
            is_alternative=True,
            qbo_class_id=original.qbo_class_id,
            community_id=original.community_id,
            client_id=original.client_id,
            discount_percent=to_decimal(original.discount_percent),
            tax_rate_percent=to_decimal(original.tax_rate_percent),
            deposit_percent=to_decimal(original.deposit_percent),
        )
        await self.store.apply_transition(
            TransitionWrite(
                quote=alt,
                siblings=siblings,
                history=[self._created(alt, actor, notes=f"Alternative to {original.id}")],
            )
        )
        logger.bind(quote_id=alt.id, quote_group=group).info("quote_alternative_created", original_id=original.id)
        return alt.copy()

    async def edit(self, quote_id: str) -> QuoteEditor:
        return QuoteEditor(await self.store.get_quote(quote_id))

    async def save_edits(self, editor: QuoteEditor) -> Quote:
        quote = editor.quote
        await self.store.save_quote(quote)
        logger.bind(quote_id=quote.id).info(
            "quote_edited",
            approval_invalidated=editor.approval_invalidated,
            line_items=len(quote.active_line_items),
        )
        return quote.copy()
