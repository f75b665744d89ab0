"""
Audit & Discount Summarizer.

Derives the breakdown totals from the applied rules of a pipeline run and
turns negative-impact rules into customer-facing discount explanations.
"""
from dataclasses import dataclass
from typing import Optional

from .models import AppliedRule, Bundle, CustomerDiscount, RuleCategory
from .processors import round_half_up

# Ordered: the first matching substring wins
DISCOUNT_LABELS = (
    ("unused days", "Multi-day Savings", "Save more with longer validity periods"),
    ("volume", "Volume Discount", "Bulk purchase savings"),
    ("loyalty", "Loyalty Reward", "Thank you for being a valued customer"),
    ("promotional", "Special Promotion", "Limited time offer"),
)


@dataclass
class PricingMetrics:
    cost: float
    markup: float
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
    savings_amount: float
    savings_percentage: float


def _money(value: float) -> float:
    return round_half_up(value, 2)


def _named(rule: AppliedRule, word: str) -> bool:
    return word in rule.name.lower()


def markup_total(applied_rules: list[AppliedRule]) -> float:
    """Unrounded sum of markup impacts."""
    return sum(r.impact for r in applied_rules if _named(r, "markup"))


def generate_customer_discounts(
    applied_rules: list[AppliedRule],
    base_cost: float,
    markup: float,
) -> list[CustomerDiscount]:
    """One customer-facing discount per negative-impact rule."""
    discounts = []
    base_price = base_cost + markup
    for rule in applied_rules:
        if rule.impact >= 0:
            continue

        amount = abs(rule.impact)
        percentage = amount / base_price * 100 if base_price > 0 else 0.0

        name, reason = rule.name, "Special discount applied"
        for keyword, label, explanation in DISCOUNT_LABELS:
            if _named(rule, keyword):
                name, reason = label, explanation
                break

        discounts.append(CustomerDiscount(
            name=name,
            amount=_money(amount),
            percentage=round_half_up(percentage, 1),
            reason=reason,
        ))
    return discounts


def summarize(
    applied_rules: list[AppliedRule],
    final_price: float,
    selected_bundle: Optional[Bundle],
    unused_days: int,
) -> PricingMetrics:
    """
    Compute totals, ratios and revenue figures for a breakdown.

    Markup sums impacts of rules named "markup"; discounts are DISCOUNT rules
    or rules named "discount"; processing is FEE rules or rules named
    "processing". Money is rounded half-up to cents, savings percentage to
    one decimal.
    """
    cost = selected_bundle.price if selected_bundle else 0.0

    markup = markup_total(applied_rules)
    discount_value = abs(sum(
        r.impact for r in applied_rules
        if r.category == RuleCategory.DISCOUNT or _named(r, "discount")
    ))
    processing_cost = sum(
        r.impact for r in applied_rules
        if r.category == RuleCategory.FEE or _named(r, "processing")
    )

    net_of_fee = final_price - processing_cost
    processing_rate = processing_cost / net_of_fee * 100 if processing_cost > 0 and net_of_fee != 0 else 0.0

    original_price = cost + markup
    discount_per_day = discount_value / unused_days if unused_days > 0 else 0.0
    discount_rate = discount_value / original_price * 100 if discount_value > 0 and original_price > 0 else 0.0
    savings_percentage = discount_value / original_price * 100 if original_price > 0 else 0.0

    return PricingMetrics(
        cost=_money(cost),
        markup=_money(markup),
        unused_days=unused_days,
        processing_cost=_money(processing_cost),
        discount_per_day=_money(discount_per_day),
        discount_value=_money(discount_value),
        price_after_discount=_money(original_price - discount_value),
        discount_rate=_money(discount_rate),
        total_cost=_money(cost + processing_cost),
        processing_rate=_money(processing_rate),
        final_revenue=_money(net_of_fee),
        revenue_after_processing=_money(net_of_fee),
        net_profit=_money(final_price - (cost + processing_cost)),
        total_cost_before_processing=_money(cost + processing_cost),
        final_price=_money(final_price),
        savings_amount=_money(discount_value),
        savings_percentage=round_half_up(savings_percentage, 1),
    )
