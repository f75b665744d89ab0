"""
Condition trees - data-described boolean logic evaluated against facts.

A rule's conditions are parsed once at load time into a tagged-variant tree
(all / any / not / leaf). Leaves resolve a dotted or indexed path into a
fact value and apply an operator to it.

Example rule conditions:
    {"all": [
        {"fact": "unused_days", "operator": "greaterThan", "value": 0},
        {"not": {"fact": "selected_bundle", "path": "$.provider", "operator": "equal", "value": "MAYA"}}
    ]}
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Union

from .events import normalize_token


class Operator(str, Enum):
    EQUAL = "equal"
    NOT_EQUAL = "not-equal"
    GREATER_THAN = "greater-than"
    GREATER_THAN_INCLUSIVE = "greater-than-inclusive"
    LESS_THAN = "less-than"
    LESS_THAN_INCLUSIVE = "less-than-inclusive"
    IN = "in"
    NOT_IN = "not-in"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "does-not-contain"
    BETWEEN = "between"
    EXISTS = "exists"
    NOT_EXISTS = "not-exists"


OPERATOR_ALIASES = {
    "equals": Operator.EQUAL,
    "eq": Operator.EQUAL,
    "not-equals": Operator.NOT_EQUAL,
    "neq": Operator.NOT_EQUAL,
    "gt": Operator.GREATER_THAN,
    "gte": Operator.GREATER_THAN_INCLUSIVE,
    "lt": Operator.LESS_THAN,
    "lte": Operator.LESS_THAN_INCLUSIVE,
}


class FactSource(Protocol):
    """Anything that can resolve named facts for a single run."""

    def has(self, name: str) -> bool: ...

    async def value(self, name: str) -> Any: ...


class _Missing:
    def __repr__(self):
        return "<missing>"


MISSING = _Missing()


@dataclass(frozen=True)
class FactRef:
    """A leaf value that points at another fact instead of a literal."""
    fact: str
    path: tuple = ()


@dataclass(frozen=True)
class LeafCondition:
    fact: str
    path: tuple
    operator: Operator
    value: Any = None


@dataclass(frozen=True)
class AllCondition:
    children: tuple = ()


@dataclass(frozen=True)
class AnyCondition:
    children: tuple = ()


@dataclass(frozen=True)
class NotCondition:
    child: 'Condition'


Condition = Union[AllCondition, AnyCondition, NotCondition, LeafCondition]

_SEGMENT = re.compile(r"\[(\d+)\]|([^.\[\]]+)")


def parse_path(path: Optional[str]) -> tuple:
    """Split ``$.a.b[0].c`` into ('a', 'b', 0, 'c')."""
    if not path:
        return ()
    path = str(path).strip()
    if path.startswith("$"):
        path = path[1:]
    segments = []
    for index, key in _SEGMENT.findall(path):
        segments.append(int(index) if index else key)
    return tuple(segments)


def parse_operator(raw: str) -> Operator:
    token = normalize_token(raw)
    if token in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[token]
    try:
        return Operator(token)
    except ValueError:
        raise ValueError(f"unknown operator '{raw}'")


def _parse_fact_and_path(data: dict) -> tuple[str, tuple]:
    path = parse_path(data.get("path"))
    fact = data.get("fact")
    if not fact:
        # Fact name taken from the first path segment
        if not path or not isinstance(path[0], str):
            raise ValueError(f"condition needs a 'fact' or a path starting with a fact name: {data}")
        fact, path = path[0], path[1:]
    return str(fact), path


def parse_condition(data: Any) -> Condition:
    """Parse a JSON-style condition tree. Raises ValueError on malformed input."""
    if data is None or data == {} or data == []:
        return AllCondition(())

    if isinstance(data, list):
        return AllCondition(tuple(parse_condition(c) for c in data))

    if not isinstance(data, dict):
        raise ValueError(f"condition must be an object, got {type(data).__name__}")

    if "all" in data:
        children = data["all"] or []
        if not isinstance(children, list):
            raise ValueError("'all' must be a list")
        return AllCondition(tuple(parse_condition(c) for c in children))

    if "any" in data:
        children = data["any"] or []
        if not isinstance(children, list):
            raise ValueError("'any' must be a list")
        return AnyCondition(tuple(parse_condition(c) for c in children))

    if "not" in data:
        return NotCondition(parse_condition(data["not"]))

    if "operator" not in data:
        raise ValueError(f"leaf condition is missing 'operator': {data}")

    fact, path = _parse_fact_and_path(data)
    operator = parse_operator(data["operator"])
    value = data.get("value")

    if isinstance(value, dict) and "fact" in value:
        value = FactRef(fact=str(value["fact"]), path=parse_path(value.get("path")))

    if operator == Operator.BETWEEN:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValueError("'between' needs a [low, high] value")
        value = tuple(value)
    elif operator in (Operator.IN, Operator.NOT_IN) and not isinstance(value, (list, tuple, FactRef)):
        raise ValueError(f"'{operator.value}' needs a list value")

    return LeafCondition(fact=fact, path=path, operator=operator, value=value)


def resolve_path(value: Any, path: tuple) -> Any:
    """Walk path segments through mappings, sequences and fact views."""
    current = value
    for segment in path:
        if hasattr(current, "as_fact"):
            current = current.as_fact()
        if isinstance(segment, int):
            if isinstance(current, (list, tuple)) and -len(current) <= segment < len(current):
                current = current[segment]
            else:
                return MISSING
        elif isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        else:
            return MISSING
    if hasattr(current, "as_fact"):
        current = current.as_fact()
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _comparable(a: Any, b: Any) -> bool:
    return (_is_number(a) and _is_number(b)) or (isinstance(a, str) and isinstance(b, str))


def apply_operator(operator: Operator, actual: Any, expected: Any) -> bool:
    """Apply a leaf operator. ``actual`` may be MISSING."""
    if operator == Operator.EXISTS:
        return actual is not MISSING and actual is not None
    if operator == Operator.NOT_EXISTS:
        return actual is MISSING or actual is None

    if actual is MISSING:
        actual = None

    if operator == Operator.EQUAL:
        return actual == expected
    if operator == Operator.NOT_EQUAL:
        return actual != expected

    if operator in (Operator.GREATER_THAN, Operator.GREATER_THAN_INCLUSIVE,
                    Operator.LESS_THAN, Operator.LESS_THAN_INCLUSIVE):
        if not _comparable(actual, expected):
            return False
        if operator == Operator.GREATER_THAN:
            return actual > expected
        if operator == Operator.GREATER_THAN_INCLUSIVE:
            return actual >= expected
        if operator == Operator.LESS_THAN:
            return actual < expected
        return actual <= expected

    if operator == Operator.IN:
        return isinstance(expected, (list, tuple)) and actual in expected
    if operator == Operator.NOT_IN:
        return isinstance(expected, (list, tuple)) and actual not in expected

    if operator in (Operator.CONTAINS, Operator.DOES_NOT_CONTAIN):
        if not isinstance(actual, (list, tuple, str)):
            return False
        found = expected in actual
        return found if operator == Operator.CONTAINS else not found

    if operator == Operator.BETWEEN:
        low, high = expected
        return _comparable(actual, low) and _comparable(actual, high) and low <= actual <= high

    return False


async def _fact_value(facts: FactSource, name: str, path: tuple) -> Any:
    if not facts.has(name):
        return MISSING
    return resolve_path(await facts.value(name), path)


async def evaluate(condition: Condition, facts: FactSource) -> bool:
    """Recursively evaluate a condition tree against a fact source."""
    if isinstance(condition, AllCondition):
        for child in condition.children:
            if not await evaluate(child, facts):
                return False
        return True

    if isinstance(condition, AnyCondition):
        for child in condition.children:
            if await evaluate(child, facts):
                return True
        return False

    if isinstance(condition, NotCondition):
        return not await evaluate(condition.child, facts)

    actual = await _fact_value(facts, condition.fact, condition.path)
    expected = condition.value
    if isinstance(expected, FactRef):
        expected = await _fact_value(facts, expected.fact, expected.path)
        if expected is MISSING:
            expected = None
    return apply_operator(condition.operator, actual, expected)
