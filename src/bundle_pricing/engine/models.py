"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Optional

from ..errors import ValidationError, ErrorCode


class PaymentMethod(str, Enum):
    AMEX = "AMEX"
    BIT = "BIT"
    DINERS = "DINERS"
    FOREIGN_CARD = "FOREIGN_CARD"
    ISRAELI_CARD = "ISRAELI_CARD"


class Provider(str, Enum):
    ESIM_GO = "ESIM_GO"
    MAYA = "MAYA"


class RuleCategory(str, Enum):
    BUNDLE_ADJUSTMENT = "BUNDLE_ADJUSTMENT"
    CONSTRAINT = "CONSTRAINT"
    DISCOUNT = "DISCOUNT"
    FEE = "FEE"
    PROVIDER_SELECTION = "PROVIDER_SELECTION"


@dataclass(frozen=True)
class Bundle:
    """An immutable catalog offer snapshot."""
    name: str
    provider: str
    validity_in_days: int
    price: float
    is_unlimited: bool = True
    groups: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()
    region: Optional[str] = None

    @property
    def group(self) -> Optional[str]:
        """Primary group, or None for providers that do not group bundles."""
        return self.groups[0] if self.groups else None

    def has_group(self, name: Optional[str]) -> bool:
        """Case-insensitive group membership."""
        if not name:
            return False
        wanted = name.strip().casefold()
        return any(g.strip().casefold() == wanted for g in self.groups)

    def as_fact(self) -> dict:
        """Plain mapping view used by condition paths."""
        return {
            "name": self.name,
            "provider": self.provider,
            "group": self.group,
            "groups": list(self.groups),
            "validity_in_days": self.validity_in_days,
            "price": self.price,
            "is_unlimited": self.is_unlimited,
            "countries": list(self.countries),
            "region": self.region,
        }


@dataclass
class RequestFacts:
    """A pricing request: duration, geography and payment context."""
    days: int
    group: str
    country: Optional[str] = None
    region: Optional[str] = None
    payment_method: str = PaymentMethod.ISRAELI_CARD.value
    strategy_id: Optional[str] = None
    include_debug_info: bool = False

    def __post_init__(self):
        if isinstance(self.payment_method, PaymentMethod):
            self.payment_method = self.payment_method.value
        if self.payment_method:
            self.payment_method = str(self.payment_method).strip().upper()

        if not isinstance(self.days, int) or isinstance(self.days, bool) or self.days < 1:
            raise ValidationError(
                f"Requested days must be a positive integer, got {self.days!r}",
                code=ErrorCode.INVALID_REQUEST,
            )
        if bool(self.country) == bool(self.region):
            raise ValidationError(
                "Exactly one of country or region is required",
                code=ErrorCode.INVALID_REQUEST,
            )


@dataclass
class AppliedRule:
    """A price-changing event with its monetary impact."""
    id: str
    name: str
    category: RuleCategory
    impact: float


@dataclass
class PricingStep:
    """A single step in the pricing audit trail."""
    order: int
    name: str
    price_before: float
    price_after: float
    impact: float
    rule_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    timestamp: int = 0


@dataclass
class CustomerDiscount:
    """A customer-facing explanation of a discount."""
    name: str
    amount: float
    percentage: float
    reason: str


@dataclass
class PricingBreakdown:
    """Complete result of a pricing calculation."""
    cost: float
    markup: float
    currency: str
    unused_days: int
    processing_cost: float
    discount_per_day: float
    discount_value: float
    price_after_discount: float
    discount_rate: float
    total_cost: float
    processing_rate: float
    final_revenue: float
    revenue_after_processing: float
    net_profit: float
    total_cost_before_processing: float
    final_price: float
    applied_rules: list[AppliedRule] = field(default_factory=list)
    pricing_steps: list[PricingStep] = field(default_factory=list)
    customer_discounts: list[CustomerDiscount] = field(default_factory=list)
    savings_amount: float = 0.0
    savings_percentage: float = 0.0
    calculation_time_ms: float = 0.0
    rules_evaluated: int = 0

    # Request context
    bundle: Optional[Bundle] = None
    duration: Optional[int] = None
    debug_info: Optional[dict] = None

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dict."""
        return _jsonable(asdict(self))


@dataclass
class PricingStepUpdate:
    """One message of a streamed pricing calculation."""
    correlation_id: str
    step: Optional[PricingStep]
    is_complete: bool
    total_steps: int
    completed_steps: int
    final_breakdown: Optional[PricingBreakdown] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
