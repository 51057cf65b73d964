from __future__ import annotations

from .base import ApprovalRule, RuleOutcome, fmt_money, register


@register
class MaxTotalRule(ApprovalRule):
    type_name = "max_total"

    def evaluate(self, totals, quote, policy) -> RuleOutcome:
        ceiling = self.threshold(policy, "total_above_amount")
        meta = {"total": str(totals.total), "total_above_amount": str(ceiling)}

        if totals.total > ceiling:
            return RuleOutcome.needs_approval(
                self.rule_id,
                f"Total ({fmt_money(totals.total)}) exceeds {fmt_money(ceiling)}",
                meta,
            )
        return RuleOutcome.ok(self.rule_id, meta)
