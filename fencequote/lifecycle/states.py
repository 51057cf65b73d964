from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from fencequote.domain.models import QuoteStatus

S = QuoteStatus


class QuoteEvent(str, Enum):
    REQUEST_APPROVAL = "request_approval"
    APPROVE = "approve"
    REJECT = "reject"
    SEND = "send"
    MARK_AWAITING_RESPONSE = "mark_awaiting_response"
    REQUEST_CHANGES = "request_changes"
    REOPEN = "reopen"
    MARK_ACCEPTED = "mark_accepted"
    MARK_LOST = "mark_lost"
    CONVERT_TO_JOB = "convert_to_job"
    ARCHIVE = "archive"


TERMINAL: FrozenSet[QuoteStatus] = frozenset({S.LOST, S.CONVERTED, S.ARCHIVED})

# Only these states accept line item / rate edits
EDITABLE: FrozenSet[QuoteStatus] = frozenset({S.DRAFT, S.CHANGES_REQUESTED})

OPEN: FrozenSet[QuoteStatus] = frozenset(
    {S.DRAFT, S.PENDING_APPROVAL, S.SENT, S.AWAITING_RESPONSE, S.CHANGES_REQUESTED}
)

# event -> (allowed from, target). Target None keeps the current status.
TRANSITIONS: Dict[QuoteEvent, Tuple[FrozenSet[QuoteStatus], Optional[QuoteStatus]]] = {
    QuoteEvent.REQUEST_APPROVAL: (frozenset({S.DRAFT}), S.PENDING_APPROVAL),
    QuoteEvent.APPROVE: (frozenset({S.PENDING_APPROVAL}), None),
    QuoteEvent.REJECT: (frozenset({S.PENDING_APPROVAL}), S.DRAFT),
    QuoteEvent.SEND: (frozenset({S.DRAFT, S.PENDING_APPROVAL}), S.SENT),
    QuoteEvent.MARK_AWAITING_RESPONSE: (frozenset({S.SENT}), S.AWAITING_RESPONSE),
    QuoteEvent.REQUEST_CHANGES: (frozenset({S.SENT, S.AWAITING_RESPONSE}), S.CHANGES_REQUESTED),
    QuoteEvent.REOPEN: (frozenset({S.CHANGES_REQUESTED}), S.DRAFT),
    QuoteEvent.MARK_ACCEPTED: (frozenset({S.SENT, S.AWAITING_RESPONSE}), S.ACCEPTED),
    QuoteEvent.MARK_LOST: (OPEN, S.LOST),
    QuoteEvent.CONVERT_TO_JOB: (frozenset({S.ACCEPTED}), S.CONVERTED),
    QuoteEvent.ARCHIVE: (frozenset(set(S) - TERMINAL), S.ARCHIVED),
}


def allowed_events(status: QuoteStatus) -> Tuple[QuoteEvent, ...]:
    """Events whose source set contains ``status`` (guards not evaluated)."""
    return tuple(e for e, (sources, _) in TRANSITIONS.items() if status in sources)
