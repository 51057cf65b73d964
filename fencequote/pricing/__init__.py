from .calculator import compute_price, resolve_price, resolve_price_with_community_override  # noqa
from .resolver import RateSheetRepository, RateSheetResolver  # noqa
from .totals import compute_totals, totals_for_quote  # noqa
