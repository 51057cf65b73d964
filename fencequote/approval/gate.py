"""
Manager approval gate.

Rules are declared in a YAML rule set (validated against
``schemas/rule_set.schema.json``) and run in ``executionOrder``. Each
violated rule contributes one reason. A manager approval that still matches
the quote's pricing inputs waives the thresholds.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from jsonschema import validate

from fencequote.approval.policy import DEFAULT_POLICY, ApprovalPolicy
from fencequote.approval.rule_types import ApprovalRule, RuleOutcome, rule_registry
from fencequote.domain.models import Quote, QuoteTotals

DEFAULT_RULESET_PATH = Path(__file__).parent / "rules" / "approval_v1.yaml"


@dataclass(frozen=True)
class RuleSpec:
    id: str
    type: str
    title: str
    enabled: bool = True
    params: Dict[str, Any] | None = None

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "RuleSpec":
        return RuleSpec(
            id=str(d["id"]),
            type=str(d["type"]),
            title=str(d.get("title") or d["id"]),
            enabled=bool(d.get("enabled", True)),
            params=dict(d.get("params") or {}),
        )


@dataclass(frozen=True)
class RuleSet:
    rule_set_version: str
    execution_order: List[str]
    rules: List[RuleSpec]

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "RuleSet":
        rules = [RuleSpec.from_dict(x) for x in d.get("rules", [])]
        ids = [r.id for r in rules]
        execution_order = list(d.get("executionOrder") or ids)

        dups = sorted({rid for rid in ids if ids.count(rid) > 1})
        if dups:
            raise ValueError(f"Duplicate rule ids in ruleset: {dups}")

        dups = sorted({rid for rid in execution_order if execution_order.count(rid) > 1})
        if dups:
            raise ValueError(f"Duplicate rule ids in executionOrder: {dups}")

        missing = sorted(set(execution_order) - set(ids))
        if missing:
            raise ValueError(f"executionOrder references unknown rules: {missing}")

        unknown = sorted({r.type for r in rules} - set(rule_registry))
        if unknown:
            raise ValueError(f"Unknown rule types: {unknown}")

        return RuleSet(
            rule_set_version=str(d.get("ruleSetVersion") or "v1"),
            execution_order=execution_order,
            rules=rules,
        )


@dataclass(frozen=True)
class ApprovalDecision:
    required: bool
    reasons: List[str] = field(default_factory=list)
    outcomes: Tuple[RuleOutcome, ...] = ()
    waived_by_manager: bool = False

    @property
    def approval_reason(self) -> Optional[str]:
        """Single string as stored on the quote row."""
        return "; ".join(self.reasons) if self.reasons else None


class ApprovalGate:
    def __init__(self, ruleset_dict: Dict[str, Any]):
        self.ruleset = RuleSet.from_dict(ruleset_dict)
        by_id = {r.id: r for r in self.ruleset.rules}
        self.rules: List[ApprovalRule] = []
        for rid in self.ruleset.execution_order:
            spec = by_id[rid]
            if not spec.enabled:
                continue
            self.rules.append(rule_registry[spec.type](spec.id, spec.title, spec.params))

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> "ApprovalGate":
        ruleset_path = Path(path)

        with ruleset_path.open("r", encoding="utf-8") as f:
            d = yaml.safe_load(f)

        schema_path = Path(__file__).parent / "schemas" / "rule_set.schema.json"
        with schema_path.open("r", encoding="utf-8") as f:
            schema = json.load(f)

        validate(instance=d, schema=schema)
        return cls(d)

    @classmethod
    def default(cls) -> "ApprovalGate":
        return cls.from_yaml_file(DEFAULT_RULESET_PATH)

    def evaluate(self, totals: QuoteTotals, quote: Quote, policy: Optional[ApprovalPolicy] = None) -> List[RuleOutcome]:
        policy = policy or DEFAULT_POLICY
        return [rule.evaluate(totals, quote, policy) for rule in self.rules]

    def needs_approval(
        self,
        totals: QuoteTotals,
        quote: Quote,
        policy: Optional[ApprovalPolicy] = None,
    ) -> ApprovalDecision:
        policy = policy or DEFAULT_POLICY

        if quote.has_current_manager_approval:
            return ApprovalDecision(required=False, waived_by_manager=True)

        if not policy.enabled:
            return ApprovalDecision(required=False)

        outcomes = tuple(self.evaluate(totals, quote, policy))
        reasons = [o.reason for o in outcomes if o.requires_approval and o.reason]
        return ApprovalDecision(required=bool(reasons), reasons=reasons, outcomes=outcomes)


_default_gate: Optional[ApprovalGate] = None


def get_default_gate() -> ApprovalGate:
    global _default_gate
    if _default_gate is None:
        _default_gate = ApprovalGate.default()
    return _default_gate


def needs_approval(
    totals: QuoteTotals,
    quote: Quote,
    policy: Optional[ApprovalPolicy] = None,
) -> ApprovalDecision:
    return get_default_gate().needs_approval(totals, quote, policy)
