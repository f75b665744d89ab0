"""
Event processors - one pure price transform per canonical event type.

Each processor takes ``(price, params, context)`` and returns
``(new_price, description, details)``. Processors never raise for missing
configuration; they record a soft warning and leave the price unchanged.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..catalog.fees import FeeMatrix
from ..errors import ErrorCode, SoftWarning
from .events import EventType
from .markup import MarkupMatrix
from .models import Bundle

if TYPE_CHECKING:
    from ..rules.schemas import EventParams

logger = logging.getLogger(__name__)

ProcessorResult = tuple[float, str, dict]


def round_half_up(value: float, places: int = 0) -> float:
    """Round halves away from zero on the decimal representation."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass
class PricingContext:
    """Run-level inputs shared by every processor."""
    selected_bundle: Optional[Bundle]
    previous_bundle: Optional[Bundle]
    unused_days: int
    payment_method: Optional[str] = None
    requested_group: Optional[str] = None
    markup_matrix: MarkupMatrix = field(default_factory=MarkupMatrix)
    fee_matrix: FeeMatrix = field(default_factory=FeeMatrix)
    warnings: list[SoftWarning] = field(default_factory=list)

    def warn(self, code: ErrorCode, message: str, **context: Any):
        logger.warning(message)
        self.warnings.append(SoftWarning(code=code, message=message, context=context))


def set_base_price(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    bundle = context.selected_bundle or context.previous_bundle
    base_price = bundle.price if bundle else 0.0
    source = 'selected' if context.selected_bundle else 'previous'
    return base_price, f"Base price set from {source} bundle", {
        "bundle_name": bundle.name if bundle else None,
        "original_price": base_price,
    }


def apply_markup(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    bundle = context.selected_bundle
    if bundle is None:
        return price, "Markup skipped - no selected bundle", {}

    matrix = params.matrix
    if matrix is None and params.value is not None:
        markup = float(params.value)
        return price + markup, f"Applied fixed markup of ${markup:.2f}", {"markup_amount": markup}

    matrix = matrix or context.markup_matrix
    lookup = matrix.lookup(bundle, context.requested_group)
    days = bundle.validity_in_days
    group = bundle.group or bundle.provider
    if not lookup.found:
        context.warn(
            ErrorCode.MISSING_MARKUP,
            f"No markup configured for {bundle.provider}/{bundle.group} ({days} days)",
            provider=bundle.provider, group=bundle.group, days=days,
        )
    return price + lookup.amount, f"Applied markup of ${lookup.amount:.2f} for {group} ({days} days)", {
        "group_name": group,
        "days": days,
        "markup_amount": lookup.amount,
        "matrix_key": list(lookup.key) if lookup.key else None,
    }


def apply_unused_days_discount(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    bundle = context.selected_bundle
    unused_days = context.unused_days
    if unused_days <= 0 or bundle is None or not bundle.price or bundle.validity_in_days <= 0:
        return price, "No unused days to discount", {"unused_days": unused_days}

    daily_rate = bundle.price / bundle.validity_in_days
    discount = daily_rate * unused_days * params.refund_ratio
    return price - discount, f"Applied unused days discount for {unused_days} days", {
        "unused_days": unused_days,
        "daily_rate": daily_rate,
        "discount_amount": discount,
    }


def apply_processing_fee(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    fees = params.fee_matrix or context.fee_matrix
    method = context.payment_method
    entry = fees.get(method)
    if entry is None:
        context.warn(
            ErrorCode.MISSING_FEE,
            f"No processing fee configured for payment method {method}",
            payment_method=method,
        )
        return price, f"No processing fee for payment method: {method}", {"method": method, "fee_amount": 0}

    percentage_fee = price * entry.percentage_fee / 100
    total_fee = percentage_fee + entry.fixed_fee
    return price + total_fee, f"Applied processing fee of ${total_fee:.2f} for {method}", {
        "method": method,
        "rate": entry.percentage_fee,
        "percentage_fee": percentage_fee,
        "fixed_fee": entry.fixed_fee,
        "total_fee": total_fee,
    }


def apply_profit_constraint(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    min_profit = float(params.value)
    cost = context.selected_bundle.price if context.selected_bundle else 0.0
    if price - cost < min_profit:
        new_price = cost + min_profit
        return new_price, f"Adjusted price to ensure minimum profit of ${min_profit:.2f}", {
            "min_profit": min_profit,
            "cost": cost,
            "adjustment": new_price - price,
        }
    return price, f"Minimum profit of ${min_profit:.2f} already met", {"min_profit": min_profit, "cost": cost}


def apply_psychological_rounding(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    strategy = params.strategy
    if strategy != "nearest-whole":
        context.warn(
            ErrorCode.UNSUPPORTED_ROUNDING,
            f"Rounding strategy '{strategy}' is not supported",
            strategy=strategy,
        )
        return price, f"Rounding strategy '{strategy}' not applied", {"strategy": strategy}

    rounded = round_half_up(price)
    return rounded, "Applied psychological rounding to nearest whole number", {
        "strategy": strategy,
        "adjustment": rounded - price,
    }


def apply_region_rounding(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    ending = float(params.value)
    new_price = math.floor(price) + ending
    return new_price, f"Applied region rounding to .{round(ending * 100):02d}", {"rounding_value": ending}


def apply_fixed_price(price: float, params: EventParams, context: PricingContext) -> ProcessorResult:
    fixed = float(params.value)
    return fixed, f"Set fixed price to ${fixed:.2f}", {"fixed_price": fixed}


PROCESSORS: dict[EventType, Callable[[float, Any, PricingContext], ProcessorResult]] = {
    EventType.SET_BASE_PRICE: set_base_price,
    EventType.APPLY_MARKUP: apply_markup,
    EventType.APPLY_UNUSED_DAYS_DISCOUNT: apply_unused_days_discount,
    EventType.APPLY_PROCESSING_FEE: apply_processing_fee,
    EventType.APPLY_PROFIT_CONSTRAINT: apply_profit_constraint,
    EventType.APPLY_PSYCHOLOGICAL_ROUNDING: apply_psychological_rounding,
    EventType.APPLY_REGION_ROUNDING: apply_region_rounding,
    EventType.APPLY_FIXED_PRICE: apply_fixed_price,
}
