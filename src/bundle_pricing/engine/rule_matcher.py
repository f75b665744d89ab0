"""
Rule Matcher - Evaluates compiled rules against the facts of one request.

Rules are evaluated in descending priority (stable for equal priorities).
Priority only orders evaluation and diagnostics; the price stage order is
fixed by the pipeline.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from .conditions import FactSource, evaluate

if TYPE_CHECKING:
    from ..rules.compile_rules import Event, Rule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FiredEvent:
    """An event emitted by a rule whose conditions held."""
    event: Event
    rule_id: str
    rule_name: str
    priority: int = 0


@dataclass
class RuleResult:
    """Diagnostic record for one evaluated rule."""
    rule_id: str
    name: str
    priority: int
    result: bool
    event_type: str

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "priority": self.priority,
            "result": self.result,
            "event_type": self.event_type,
        }


@dataclass
class MatchOutcome:
    events: list[FiredEvent] = field(default_factory=list)
    results: list[RuleResult] = field(default_factory=list)


class RuleMatcher:
    """Matches rules against an almanac and collects the events they fire."""

    def __init__(self, rules: Optional[list[Rule]] = None):
        self.rules = list(rules or [])

    async def run(self, facts: FactSource, rules: Optional[list[Rule]] = None) -> MatchOutcome:
        """
        Evaluate every rule and return fired events in firing order.

        Fact resolution failures (e.g. no bundle for the request) propagate.
        """
        candidates = self.rules if rules is None else list(rules)
        ordered = sorted(candidates, key=lambda r: r.priority, reverse=True)

        outcome = MatchOutcome()
        for rule in ordered:
            matched = await evaluate(rule.conditions, facts)
            outcome.results.append(RuleResult(
                rule_id=rule.rule_id,
                name=rule.name,
                priority=rule.priority,
                result=matched,
                event_type=rule.event.type.value,
            ))
            if matched:
                logger.debug("Rule %s fired %s", rule.rule_id, rule.event.type.value)
                outcome.events.append(FiredEvent(
                    event=rule.event,
                    rule_id=rule.rule_id,
                    rule_name=rule.name,
                    priority=rule.priority,
                ))

        logger.info("Evaluated %d rules, %d fired", len(ordered), len(outcome.events))
        return outcome
