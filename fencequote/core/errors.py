"""
Error taxonomy for the pricing and quote lifecycle engine.

A rate-sheet miss is not an exception: it resolves to
cost-only pricing (``PriceSource.NONE``) and the UI shows the
"no rate sheet - pricing at cost" state.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class QuoteEngineError(Exception):
    """Base class; carries a stable code and an explainability payload."""

    default_code = "QUOTE_ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ):
        self.code = str(code or self.default_code)
        self.message = str(message)
        self.meta = meta or {}
        super().__init__(f"{self.code}: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "meta": self.meta}


class InvalidPricingData(QuoteEngineError, ValueError):
    """Upstream pricing data that cannot produce a sane price (e.g. margin >= 100%)."""

    default_code = "INVALID_PRICING_DATA"


class IllegalTransition(QuoteEngineError):
    """A lifecycle action that violates a guard. Raised before any side effect."""

    default_code = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        message: str,
        *,
        status: Optional[str] = None,
        event: Optional[str] = None,
        code: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ):
        self.status = status
        self.event = event
        merged = {"status": status, "event": event}
        merged.update(meta or {})
        super().__init__(message, code=code, meta=merged)


class PersistenceFailure(QuoteEngineError):
    """The external collaborator failed to fetch or save. Chain the cause with ``raise ... from``."""

    default_code = "PERSISTENCE_FAILURE"


class QuoteNotFound(PersistenceFailure):
    default_code = "QUOTE_NOT_FOUND"

    def __init__(self, quote_id: str):
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} not found", meta={"quote_id": quote_id})
