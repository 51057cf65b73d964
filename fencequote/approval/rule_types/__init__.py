# Ensure registration happens by importing modules
from .base import ApprovalRule, RuleOutcome, rule_registry  # noqa
from . import (  # noqa
    min_margin,
    max_total,
    discount_bounds,
    deposit_bounds,
)
