import pytest

from bundle_pricing.engine.conditions import (
    MISSING,
    AllCondition,
    FactRef,
    LeafCondition,
    Operator,
    apply_operator,
    evaluate,
    parse_condition,
    parse_path,
    resolve_path,
)
from bundle_pricing.engine.facts import Almanac

from conftest import AU_BUNDLES


def almanac(**facts):
    return Almanac(facts)


def test_parse_path_dotted_and_indexed():
    assert parse_path("$.bundles[0].price") == ("bundles", 0, "price")
    assert parse_path("$.price") == ("price",)
    assert parse_path(None) == ()


def test_resolve_path_through_bundle_fact_view():
    assert resolve_path({"bundles": AU_BUNDLES}, ("bundles", 2, "price")) == 14.72
    assert resolve_path(AU_BUNDLES[0], ("provider",)) == "ESIM_GO"
    assert resolve_path({"a": [1]}, ("a", 3)) is MISSING
    assert resolve_path({"a": 1}, ("b",)) is MISSING


@pytest.mark.parametrize("raw, expected", [
    ("greaterThan", Operator.GREATER_THAN),
    ("greaterThanInclusive", Operator.GREATER_THAN_INCLUSIVE),
    ("notIn", Operator.NOT_IN),
    ("NOT_EQUAL", Operator.NOT_EQUAL),
    ("gte", Operator.GREATER_THAN_INCLUSIVE),
])
def test_operator_names_are_normalized(raw, expected):
    leaf = parse_condition({"fact": "x", "operator": raw, "value": [1] if "in" in raw.lower() else 1})
    assert leaf.operator == expected


def test_empty_conditions_parse_to_true_all():
    assert parse_condition({}) == AllCondition(())
    assert parse_condition(None) == AllCondition(())


def test_fact_name_taken_from_path():
    leaf = parse_condition({"path": "$.selected_bundle.price", "operator": "lessThan", "value": 5})
    assert leaf == LeafCondition(fact="selected_bundle", path=("price",), operator=Operator.LESS_THAN, value=5)


def test_fact_reference_value():
    leaf = parse_condition({"fact": "days", "operator": "equal", "value": {"fact": "other", "path": "$.days"}})
    assert leaf.value == FactRef(fact="other", path=("days",))


@pytest.mark.parametrize("data", [
    {"fact": "x"},
    {"fact": "x", "operator": "bogus", "value": 1},
    {"fact": "x", "operator": "between", "value": [1]},
    {"fact": "x", "operator": "in", "value": 3},
    {"operator": "equal", "value": 1},
    "not a condition",
])
def test_malformed_conditions_raise(data):
    with pytest.raises(ValueError):
        parse_condition(data)


@pytest.mark.parametrize("operator, actual, expected, result", [
    (Operator.EQUAL, "AU", "AU", True),
    (Operator.NOT_EQUAL, "AU", "TH", True),
    (Operator.GREATER_THAN, 2, 0, True),
    (Operator.GREATER_THAN, 0, 0, False),
    (Operator.GREATER_THAN_INCLUSIVE, 0, 0, True),
    (Operator.LESS_THAN, "5", 10, False),
    (Operator.LESS_THAN_INCLUSIVE, 10, 10, True),
    (Operator.IN, "AU", ["AU", "NZ"], True),
    (Operator.NOT_IN, "AU", ["NZ"], True),
    (Operator.CONTAINS, ["ESIM_GO", "MAYA"], "MAYA", True),
    (Operator.DOES_NOT_CONTAIN, ["ESIM_GO"], "MAYA", True),
    (Operator.BETWEEN, 5, (1, 7), True),
    (Operator.BETWEEN, 8, (1, 7), False),
    (Operator.EXISTS, MISSING, None, False),
    (Operator.EXISTS, 0, None, True),
    (Operator.NOT_EXISTS, None, None, True),
    (Operator.GREATER_THAN, MISSING, 1, False),
])
def test_apply_operator(operator, actual, expected, result):
    assert apply_operator(operator, actual, expected) is result


@pytest.mark.asyncio
async def test_nested_all_any_not():
    condition = parse_condition({
        "all": [
            {"fact": "unused_days", "operator": "greaterThan", "value": 0},
            {"any": [
                {"fact": "country", "operator": "equal", "value": "NZ"},
                {"not": {"fact": "payment_method", "operator": "equal", "value": "AMEX"}},
            ]},
        ]
    })
    assert await evaluate(condition, almanac(unused_days=2, country="AU", payment_method="ISRAELI_CARD"))
    assert not await evaluate(condition, almanac(unused_days=2, country="AU", payment_method="AMEX"))
    assert not await evaluate(condition, almanac(unused_days=0, country="NZ", payment_method="AMEX"))


@pytest.mark.asyncio
async def test_empty_all_is_true():
    assert await evaluate(parse_condition({}), almanac())


@pytest.mark.asyncio
async def test_undefined_fact_is_missing_not_error():
    condition = parse_condition({"fact": "coupon", "operator": "notExists"})
    assert await evaluate(condition, almanac())


@pytest.mark.asyncio
async def test_compare_against_another_fact():
    condition = parse_condition({
        "fact": "selected_bundle", "path": "$.price",
        "operator": "greaterThan",
        "value": {"fact": "previous_bundle", "path": "$.price"},
    })
    facts = almanac(selected_bundle=AU_BUNDLES[2], previous_bundle=AU_BUNDLES[1])
    assert await evaluate(condition, facts)


@pytest.mark.asyncio
async def test_any_short_circuits_lazy_facts():
    calls = []

    async def boom(a):
        calls.append(1)
        raise RuntimeError("should not be resolved")

    facts = almanac(country="AU")
    facts.add_fact("expensive", boom)
    condition = parse_condition({"any": [
        {"fact": "country", "operator": "equal", "value": "AU"},
        {"fact": "expensive", "operator": "exists"},
    ]})

    assert await evaluate(condition, facts)
    assert calls == []
