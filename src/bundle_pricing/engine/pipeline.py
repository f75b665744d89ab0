"""
Pricing Pipeline - applies fired events in the canonical stage order.

Stage order is fixed (see ``events.STAGE_ORDER``) and never derived from
rule priority. Within a stage, events keep the order they fired in.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..errors import ErrorCode, SoftWarning
from .events import CATEGORIES, STAGE_ORDER, STEP_NAMES
from .models import AppliedRule, PricingStep
from .processors import PROCESSORS, PricingContext
from .rule_matcher import FiredEvent

logger = logging.getLogger(__name__)

StepCallback = Callable[[PricingStep, int], Awaitable[None]]


@dataclass
class PipelineResult:
    """Final price plus the audit trail of one pipeline run."""
    final_price: float
    initial_price: float
    applied_rules: list[AppliedRule] = field(default_factory=list)
    steps: list[PricingStep] = field(default_factory=list)
    warnings: list[SoftWarning] = field(default_factory=list)


def order_events(fired: list[FiredEvent]) -> list[FiredEvent]:
    """Group fired events by canonical stage, keeping firing order within a stage."""
    ordered = []
    for stage in STAGE_ORDER:
        ordered.extend(f for f in fired if f.event.type == stage)
    return ordered


class PricingPipeline:
    """Applies pricing events to a running price, recording every step."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def _timestamp(self) -> int:
        return int(self.clock() * 1000)

    async def run(
        self,
        fired: list[FiredEvent],
        context: PricingContext,
        on_step: Optional[StepCallback] = None,
    ) -> PipelineResult:
        """
        Apply fired events in canonical order.

        Args:
            fired: Events in the order the matcher fired them
            context: Selected bundle, unused days, payment method and matrices
            on_step: Awaited with (step, total_steps) as each step is produced

        Returns:
            PipelineResult with final price, applied rules and steps
        """
        ordered = order_events(fired)
        skipped = [f for f in fired if f not in ordered or f.event.type not in PROCESSORS]
        for f in skipped:
            context.warn(
                ErrorCode.UNKNOWN_EVENT,
                f"Unknown event type: {f.event.raw_type or f.event.type}",
                rule=f.rule_name,
            )
        ordered = [f for f in ordered if f.event.type in PROCESSORS]
        total_steps = len(ordered) + 1

        bundle = context.selected_bundle or context.previous_bundle
        current_price = bundle.price if bundle else 0.0
        result = PipelineResult(final_price=current_price, initial_price=current_price)

        bootstrap = PricingStep(
            order=0,
            name="Bundle Selection",
            price_before=0.0,
            price_after=current_price,
            impact=current_price,
            rule_id=None,
            metadata={
                "bundle": bundle.name if bundle else None,
                "provider": bundle.provider if bundle else None,
                "days": bundle.validity_in_days if bundle else None,
                "selection_reason": _selection_reason(context),
            },
            timestamp=self._timestamp(),
        )
        result.steps.append(bootstrap)
        if on_step is not None:
            await on_step(bootstrap, total_steps)

        for f in ordered:
            event = f.event
            previous_price = current_price
            step_timestamp = self._timestamp()

            processor = PROCESSORS[event.type]
            current_price, description, details = processor(current_price, event.params, context)

            impact = current_price - previous_price
            if current_price != previous_price:
                result.applied_rules.append(AppliedRule(
                    id=event.rule_id or event.type.value,
                    name=description,
                    category=CATEGORIES[event.type],
                    impact=impact,
                ))

            step = PricingStep(
                order=len(result.steps),
                name=STEP_NAMES.get(event.type, event.raw_type),
                price_before=previous_price,
                price_after=current_price,
                impact=impact,
                rule_id=event.rule_id or f.rule_id,
                metadata={
                    "rule": f.rule_name,
                    "event_type": event.type.value,
                    "description": description,
                    "params": event.params.metadata(),
                    "details": details,
                },
                timestamp=step_timestamp,
            )
            result.steps.append(step)
            logger.info(
                "Step %d: %s changed price from %s to %s",
                step.order, step.name, previous_price, current_price,
            )
            if on_step is not None:
                await on_step(step, total_steps)

        result.final_price = current_price
        result.warnings = list(context.warnings)
        return result


def _selection_reason(context: PricingContext) -> str:
    if context.selected_bundle is None:
        return "fallback"
    return "exact_match" if context.unused_days == 0 else "next_longer"
