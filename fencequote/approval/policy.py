from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from fencequote.domain.models import D, to_decimal


@dataclass(frozen=True)
class ApprovalPolicy:
    """
    Approval thresholds for one business unit (``qbo_class_id``) or, when
    ``qbo_class_id`` is None, the company-wide fallback.
    """

    qbo_class_id: Optional[str] = None
    enabled: bool = True
    margin_below_percent: D = D("15")
    discount_above_percent: D = D("10")
    discount_min_percent: D = D("0")
    total_above_amount: D = D("25000")
    deposit_min_percent: D = D("0")
    deposit_max_percent: D = D("100")

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "ApprovalPolicy":
        """Build from a settings row; missing or null columns keep the defaults."""
        kwargs = {}
        for f in fields(cls):
            if f.name not in row or row[f.name] is None:
                continue
            value = row[f.name]
            if f.name == "enabled":
                kwargs[f.name] = bool(value)
            elif f.name == "qbo_class_id":
                kwargs[f.name] = str(value)
            else:
                kwargs[f.name] = to_decimal(value)
        return cls(**kwargs)


DEFAULT_POLICY = ApprovalPolicy()
