import pytest

from bundle_pricing.engine.processors import (
    PricingContext,
    apply_fixed_price,
    apply_markup,
    apply_processing_fee,
    apply_profit_constraint,
    apply_psychological_rounding,
    apply_region_rounding,
    apply_unused_days_discount,
    round_half_up,
    set_base_price,
)
from bundle_pricing.errors import ErrorCode
from bundle_pricing.rules.schemas import (
    BasePriceParams,
    FixedPriceParams,
    MarkupParams,
    ProcessingFeeParams,
    ProfitConstraintParams,
    PsychologicalRoundingParams,
    RegionRoundingParams,
    UnusedDaysDiscountParams,
)

from conftest import AU_BUNDLES, GROUP


@pytest.fixture
def context(markup_matrix, fee_matrix):
    return PricingContext(
        selected_bundle=AU_BUNDLES[2],
        previous_bundle=AU_BUNDLES[1],
        unused_days=2,
        payment_method="ISRAELI_CARD",
        requested_group=GROUP,
        markup_matrix=markup_matrix,
        fee_matrix=fee_matrix,
    )


@pytest.mark.parametrize("value, places, expected", [
    (2.5, 0, 3.0),
    (3.5, 0, 4.0),
    (27.97, 0, 28.0),
    (1.005, 2, 1.01),
    (7.518, 1, 7.5),
    (-2.5, 0, -3.0),
])
def test_round_half_up(value, places, expected):
    assert round_half_up(value, places) == expected


def test_base_price_from_selected(context):
    price, description, details = set_base_price(0.0, BasePriceParams(), context)
    assert price == 14.72
    assert details["bundle_name"] == "esim_UL_7D_AU_V2"


def test_base_price_falls_back_to_previous_then_zero(context):
    context.selected_bundle = None
    assert set_base_price(0.0, BasePriceParams(), context)[0] == 3.47
    context.previous_bundle = None
    assert set_base_price(0.0, BasePriceParams(), context)[0] == 0.0


def test_markup_from_configured_matrix(context):
    price, description, details = apply_markup(14.72, MarkupParams(), context)
    assert price == pytest.approx(27.97)
    assert "markup" in description.lower()
    assert details["markup_amount"] == 13.25


def test_markup_from_event_matrix(context):
    params = MarkupParams.model_validate({"markupMatrix": {f"ESIM_GO-{GROUP}": {"7": 10}}})
    assert apply_markup(14.72, params, context)[0] == pytest.approx(24.72)


def test_flat_markup_value(context):
    assert apply_markup(10.0, MarkupParams(value=2.5), context)[0] == 12.5


def test_missing_markup_warns_and_adds_zero(context):
    context.selected_bundle = AU_BUNDLES[4]
    context.markup_matrix.entries.clear()
    price, _, _ = apply_markup(38.0, MarkupParams(), context)
    assert price == 38.0
    assert [w.code for w in context.warnings] == [ErrorCode.MISSING_MARKUP]


def test_unused_days_discount_half_refund(context):
    price, description, details = apply_unused_days_discount(27.97, UnusedDaysDiscountParams(), context)
    assert details["discount_amount"] == pytest.approx(14.72 / 7 * 2 * 0.5)
    assert price == pytest.approx(27.97 - 14.72 / 7)
    assert "unused days" in description.lower()


def test_unused_days_discount_noop_on_exact_match(context):
    context.unused_days = 0
    assert apply_unused_days_discount(27.97, UnusedDaysDiscountParams(), context)[0] == 27.97


def test_processing_fee(context):
    price, description, details = apply_processing_fee(100.0, ProcessingFeeParams(), context)
    assert price == pytest.approx(101.4)
    assert "processing fee" in description.lower()


def test_processing_fee_from_event_params(context):
    params = ProcessingFeeParams.model_validate({"fees_matrix": {"ISRAELI_CARD": {"percentage_fee": 2, "fixed_fee": 0.5}}})
    assert apply_processing_fee(100.0, params, context)[0] == pytest.approx(102.5)


def test_processing_fee_skipped_for_unknown_method(context):
    context.payment_method = "BIT"
    price, _, _ = apply_processing_fee(100.0, ProcessingFeeParams(), context)
    assert price == 100.0
    assert context.warnings[0].code == ErrorCode.MISSING_FEE


def test_profit_constraint_raises_low_price(context):
    price, _, details = apply_profit_constraint(15.0, ProfitConstraintParams(value=1.5), context)
    assert price == pytest.approx(16.22)
    assert apply_profit_constraint(30.0, ProfitConstraintParams(value=1.5), context)[0] == 30.0


def test_psychological_rounding_is_idempotent(context):
    once = apply_psychological_rounding(28.36158, PsychologicalRoundingParams(), context)[0]
    twice = apply_psychological_rounding(once, PsychologicalRoundingParams(), context)[0]
    assert once == twice == 28.0


def test_unsupported_rounding_strategy_is_noop(context):
    price, _, _ = apply_psychological_rounding(28.4, PsychologicalRoundingParams(strategy="charm"), context)
    assert price == 28.4
    assert context.warnings[0].code == ErrorCode.UNSUPPORTED_ROUNDING


def test_region_rounding(context):
    assert apply_region_rounding(28.36, RegionRoundingParams(), context)[0] == pytest.approx(28.99)
    assert apply_region_rounding(28.36, RegionRoundingParams(value=0.49), context)[0] == pytest.approx(28.49)


def test_fixed_price(context):
    assert apply_fixed_price(28.36, FixedPriceParams(value=19), context)[0] == 19.0
