from __future__ import annotations

from .base import D, ApprovalRule, RuleOutcome, fmt_percent, register


@register
class DiscountBoundsRule(ApprovalRule):
    """
    Discount percent must stay within [discount_min_percent, discount_above_percent].
    """

    type_name = "discount_bounds"

    def evaluate(self, totals, quote, policy) -> RuleOutcome:
        discount = D(quote.discount_percent)
        low = self.threshold(policy, "discount_min_percent")
        high = self.threshold(policy, "discount_above_percent")
        meta = {
            "discount_percent": str(discount),
            "discount_min_percent": str(low),
            "discount_above_percent": str(high),
        }

        if discount > high:
            return RuleOutcome.needs_approval(
                self.rule_id,
                f"Discount ({fmt_percent(discount)}%) exceeds {fmt_percent(high)}%",
                meta,
            )
        if discount < low:
            return RuleOutcome.needs_approval(
                self.rule_id,
                f"Discount ({fmt_percent(discount)}%) below {fmt_percent(low)}%",
                meta,
            )
        return RuleOutcome.ok(self.rule_id, meta)
