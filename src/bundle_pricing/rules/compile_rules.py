"""
Rule Compiler - Validates pricing blocks and materializes them as rules.

A pricing block is a JSON object::

    {"id": "unused-days", "name": "Unused days discount", "priority": 80,
     "is_active": true,
     "conditions": {"all": [{"fact": "unused_days", "operator": "greaterThan", "value": 0}]},
     "event_type": "APPLY_UNUSED_DAYS_DISCOUNT",
     "params": {}}

Event types are normalized to their canonical stage and params are validated
against the stage schema. A block that fails is rejected, never applied.
"""
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pydantic

from ..engine.conditions import Condition, parse_condition
from ..engine.events import EventType, normalize_event_type
from ..errors import ValidationError
from .schemas import EVENT_PARAM_SCHEMAS, EventParams


@dataclass(frozen=True)
class Event:
    """The event a rule fires: canonical type plus validated params."""
    type: EventType
    params: EventParams
    raw_type: str = ""

    @property
    def rule_id(self) -> Optional[str]:
        return self.params.rule_id


@dataclass(frozen=True)
class Rule:
    """A compiled pricing rule."""
    rule_id: str
    name: str
    priority: int
    conditions: Condition
    event: Event


def _format_pydantic_errors(error: pydantic.ValidationError) -> list[str]:
    messages = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get('loc', ())) or "params"
        messages.append(f"{location}: {err.get('msg')}")
    return messages


def compile_block(
    block: dict,
    overrides: Optional[dict] = None,
    priority: Optional[int] = None,
) -> Rule:
    """
    Validate a pricing block and build a Rule.

    Args:
        block: Raw pricing block
        overrides: Strategy config overrides merged over the block's params
        priority: Strategy-specific priority replacing the block's own

    Raises:
        ValidationError: unknown event type, malformed conditions or invalid params
    """
    name = str(block.get('name') or block.get('id') or '').strip()
    rule_id = str(block.get('id') or name).strip()
    if not name:
        raise ValidationError("Pricing block is missing a name", errors=["name is required"])

    event_spec = block.get('event') or {}
    raw_type = block.get('event_type') or event_spec.get('type') or ''
    event_type = normalize_event_type(raw_type)
    if event_type is None:
        raise ValidationError(
            f"Rule '{name}': unknown event type '{raw_type}'",
            errors=[f"event_type '{raw_type}' must be one of {[t.value for t in EventType]}"],
        )

    params = {**(block.get('params') or event_spec.get('params') or {}), **(overrides or {})}
    try:
        validated = EVENT_PARAM_SCHEMAS[event_type].model_validate(params)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Rule '{name}': invalid params for {event_type.value}",
            errors=_format_pydantic_errors(e),
        ) from e

    try:
        conditions = parse_condition(block.get('conditions'))
    except ValueError as e:
        raise ValidationError(f"Rule '{name}': invalid conditions", errors=[str(e)]) from e

    if priority is None:
        priority = block.get('priority') or 0
    try:
        priority = int(priority)
    except (TypeError, ValueError):
        raise ValidationError(f"Rule '{name}': priority must be an integer", errors=[f"priority={priority!r}"])

    return Rule(
        rule_id=rule_id,
        name=name,
        priority=priority,
        conditions=conditions,
        event=Event(type=event_type, params=validated, raw_type=str(raw_type)),
    )


def compile_blocks(blocks: list[dict]) -> tuple[list[Rule], list[str]]:
    """
    Compile active blocks, collecting errors for rejected ones.

    Returns (rules, errors) - rules sorted by priority, highest first.
    """
    rules = []
    errors = []
    for block in blocks:
        if not block.get('is_active', True):
            continue
        try:
            rules.append(compile_block(block))
        except ValidationError as e:
            errors.append(e.message)
            errors.extend(f"  {detail}" for detail in e.errors)

    rules.sort(key=lambda r: r.priority, reverse=True)
    return rules, errors


def validate_rules_file(path: Path, verbose: bool = True) -> tuple[bool, list[Rule], list[str]]:
    """Validate every block of a rules file. Returns (success, rules, errors)."""
    if not path.exists():
        return False, [], [f"Rules file not found: {path}"]

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    rules, errors = compile_blocks(data.get('blocks', []))

    if verbose:
        if errors:
            print("Validation errors:")
            for err in errors:
                print(f"  ❌ {err}")
        print(f"✅ {len(rules)} valid rules in {path}")

    return not errors, rules, errors


def main():
    """CLI entry point."""
    from ..config.settings import get_settings

    path = Path(sys.argv[1]) if len(sys.argv) > 1 else get_settings().rules_file

    print("Validating pricing rules...")
    success, rules, errors = validate_rules_file(path)

    if not success:
        print(f"\n❌ Validation failed with {len(errors)} errors")
        sys.exit(1)


if __name__ == "__main__":
    main()
