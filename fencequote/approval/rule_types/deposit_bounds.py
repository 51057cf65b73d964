from __future__ import annotations

from .base import D, ApprovalRule, RuleOutcome, fmt_percent, register


@register
class DepositBoundsRule(ApprovalRule):
    type_name = "deposit_bounds"

    def evaluate(self, totals, quote, policy) -> RuleOutcome:
        deposit = D(quote.deposit_percent)
        low = self.threshold(policy, "deposit_min_percent")
        high = self.threshold(policy, "deposit_max_percent")
        meta = {
            "deposit_percent": str(deposit),
            "deposit_min_percent": str(low),
            "deposit_max_percent": str(high),
        }

        if deposit < low:
            return RuleOutcome.needs_approval(
                self.rule_id,
                f"Deposit ({fmt_percent(deposit)}%) below {fmt_percent(low)}%",
                meta,
            )
        if deposit > high:
            return RuleOutcome.needs_approval(
                self.rule_id,
                f"Deposit ({fmt_percent(deposit)}%) exceeds {fmt_percent(high)}%",
                meta,
            )
        return RuleOutcome.ok(self.rule_id, meta)
