from __future__ import annotations

from .base import ApprovalRule, RuleOutcome, fmt_percent, register


@register
class MinMarginRule(ApprovalRule):
    """
    Margin floor. An empty quote has no margin to judge, so it passes.
    """

    type_name = "min_margin"

    def evaluate(self, totals, quote, policy) -> RuleOutcome:
        floor = self.threshold(policy, "margin_below_percent")
        margin = totals.margin_percent
        meta = {"margin_percent": str(margin), "margin_below_percent": str(floor)}

        if not quote.active_line_items:
            return RuleOutcome.ok(self.rule_id, {**meta, "skipped": "no_line_items"})

        if margin < floor:
            return RuleOutcome.needs_approval(
                self.rule_id,
                f"Margin ({margin:.1f}%) below {fmt_percent(floor)}%",
                meta,
            )
        return RuleOutcome.ok(self.rule_id, meta)
