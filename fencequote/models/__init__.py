# ORM tables; importing this package registers them on Base.metadata

from .pricing import (
    ApprovalSettingsRow,
    ClientRow,
    CommunityProductRow,
    CommunityRow,
    QboClassRow,
    RateSheetItemRow,
    RateSheetRow,
    SkuLaborCostRow,
    SkuRow,
)
from .quote import JobRow, QuoteLineItemRow, QuoteRow, QuoteStatusHistoryRow

__all__ = [
    "ApprovalSettingsRow",
    "ClientRow",
    "CommunityProductRow",
    "CommunityRow",
    "QboClassRow",
    "RateSheetItemRow",
    "RateSheetRow",
    "SkuLaborCostRow",
    "SkuRow",
    "JobRow",
    "QuoteLineItemRow",
    "QuoteRow",
    "QuoteStatusHistoryRow",
]
