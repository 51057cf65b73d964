from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Type, TYPE_CHECKING

D = Decimal

# Outcomes (avoid string typos)
OUTCOME_PASS = "PASS"
OUTCOME_APPROVAL = "APPROVAL"

if TYPE_CHECKING:
    from fencequote.approval.policy import ApprovalPolicy
    from fencequote.domain.models import Quote, QuoteTotals


@dataclass(frozen=True)
class RuleOutcome:
    """
    Result of evaluating one approval rule.
    - outcome: PASS / APPROVAL
    - reason: human readable, only set when approval is needed
    - meta: values the rule compared, for logs and the API
    """

    rule_id: str
    outcome: str
    reason: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    @property
    def requires_approval(self) -> bool:
        return self.outcome == OUTCOME_APPROVAL

    @staticmethod
    def ok(rule_id: str, meta: Optional[Dict[str, Any]] = None) -> "RuleOutcome":
        return RuleOutcome(rule_id=rule_id, outcome=OUTCOME_PASS, meta=meta or {})

    @staticmethod
    def needs_approval(rule_id: str, reason: str, meta: Optional[Dict[str, Any]] = None) -> "RuleOutcome":
        return RuleOutcome(rule_id=rule_id, outcome=OUTCOME_APPROVAL, reason=reason, meta=meta or {})


class ApprovalRule:
    """
    Base class for approval rules. Thresholds come from the business unit's
    ApprovalPolicy; ``params`` carries rule set options.
    """

    type_name: str = "base"

    def __init__(self, rule_id: str, title: str, params: Optional[Dict[str, Any]] = None):
        self.rule_id = str(rule_id)
        self.title = str(title)
        self.params = params or {}

    def threshold(self, policy: "ApprovalPolicy", name: str) -> D:
        """Rule set ``params`` pin a threshold; otherwise the policy value applies."""
        if self.params.get(name) is not None:
            return D(str(self.params[name]))
        return D(getattr(policy, name))

    def evaluate(self, totals: "QuoteTotals", quote: "Quote", policy: "ApprovalPolicy") -> RuleOutcome:
        raise NotImplementedError


# Registry: rule type -> rule class
rule_registry: Dict[str, Type[ApprovalRule]] = {}


def register(rule_cls: Type[ApprovalRule]) -> Type[ApprovalRule]:
    """
    Decorator to register a rule by its type_name.
    Fails fast on duplicate registrations.
    """
    key = getattr(rule_cls, "type_name", None)
    if not key or key == "base":
        raise ValueError(f"Rule class {rule_cls.__name__} has no type_name")

    if key in rule_registry and rule_registry[key] is not rule_cls:
        raise ValueError(
            f"Duplicate rule registration for type '{key}': "
            f"{rule_registry[key].__name__} vs {rule_cls.__name__}"
        )

    rule_registry[key] = rule_cls
    return rule_cls


def fmt_percent(value: D) -> str:
    # 10.00 -> "10", 12.5 -> "12.5"
    return format(D(value).normalize(), "f")


def fmt_money(value: D) -> str:
    return f"${D(value):,.2f}".replace(".00", "")
