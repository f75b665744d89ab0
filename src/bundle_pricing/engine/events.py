"""
Canonical pricing event types and the order they are applied in.
"""
import re
from enum import Enum
from typing import Optional

from .models import RuleCategory


class EventType(str, Enum):
    SET_BASE_PRICE = "set-base-price"
    APPLY_MARKUP = "apply-markup"
    APPLY_UNUSED_DAYS_DISCOUNT = "apply-unused-days-discount"
    APPLY_PROCESSING_FEE = "apply-processing-fee"
    APPLY_PROFIT_CONSTRAINT = "apply-profit-constraint"
    APPLY_PSYCHOLOGICAL_ROUNDING = "apply-psychological-rounding"
    APPLY_REGION_ROUNDING = "apply-region-rounding"
    APPLY_FIXED_PRICE = "apply-fixed-price"


# Never derived from rule priority
STAGE_ORDER: tuple[EventType, ...] = (
    EventType.SET_BASE_PRICE,
    EventType.APPLY_MARKUP,
    EventType.APPLY_UNUSED_DAYS_DISCOUNT,
    EventType.APPLY_PROCESSING_FEE,
    EventType.APPLY_PROFIT_CONSTRAINT,
    EventType.APPLY_PSYCHOLOGICAL_ROUNDING,
    EventType.APPLY_REGION_ROUNDING,
    EventType.APPLY_FIXED_PRICE,
)

STEP_NAMES: dict[EventType, str] = {
    EventType.SET_BASE_PRICE: "Base Price",
    EventType.APPLY_MARKUP: "Markup Application",
    EventType.APPLY_UNUSED_DAYS_DISCOUNT: "Multi-day Discount",
    EventType.APPLY_PROCESSING_FEE: "Processing Fee",
    EventType.APPLY_PROFIT_CONSTRAINT: "Profit Adjustment",
    EventType.APPLY_PSYCHOLOGICAL_ROUNDING: "Price Rounding",
    EventType.APPLY_REGION_ROUNDING: "Regional Rounding",
    EventType.APPLY_FIXED_PRICE: "Fixed Price",
}

CATEGORIES: dict[EventType, RuleCategory] = {
    EventType.SET_BASE_PRICE: RuleCategory.BUNDLE_ADJUSTMENT,
    EventType.APPLY_MARKUP: RuleCategory.BUNDLE_ADJUSTMENT,
    EventType.APPLY_UNUSED_DAYS_DISCOUNT: RuleCategory.DISCOUNT,
    EventType.APPLY_PROCESSING_FEE: RuleCategory.FEE,
    EventType.APPLY_PROFIT_CONSTRAINT: RuleCategory.CONSTRAINT,
    EventType.APPLY_PSYCHOLOGICAL_ROUNDING: RuleCategory.CONSTRAINT,
    EventType.APPLY_REGION_ROUNDING: RuleCategory.CONSTRAINT,
    EventType.APPLY_FIXED_PRICE: RuleCategory.CONSTRAINT,
}

_SEPARATORS = re.compile(r"[\s_\-]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def normalize_token(value: str) -> str:
    """Lower-case, dash-separated form of a free-form identifier.

    Accepts snake_case, SCREAMING_CASE, camelCase and spaced variants.
    """
    value = _CAMEL_BOUNDARY.sub("-", str(value).strip())
    return _SEPARATORS.sub("-", value).lower().strip("-")


def normalize_event_type(raw_type: str) -> Optional[EventType]:
    """Map a configured event type string to its canonical stage, or None."""
    try:
        return EventType(normalize_token(raw_type))
    except ValueError:
        return None

