"""Utility modules for cross-cutting concerns."""

from utils.timezone import BUSINESS_TIMEZONE, now_utc, to_local, business_date
from utils.merchant_context import (
    get_current_shop,
    set_current_shop,
    clear_current_shop,
    merchant_context,
)
