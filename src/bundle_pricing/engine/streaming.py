"""
Streaming Step Emitter - pushes pricing steps to a listener as they happen.

The sink may be a plain function or a coroutine function. Delivery is
sequential and in pipeline order. A failing sink never aborts the
calculation: the failure is logged and the computation continues.
"""
import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional, Union

from .models import PricingBreakdown, PricingStep, PricingStepUpdate

logger = logging.getLogger(__name__)

StepSink = Callable[[PricingStepUpdate], Union[None, Awaitable[None]]]


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class StepEmitter:
    """Wraps a sink and turns pipeline progress into PricingStepUpdate messages."""

    def __init__(self, sink: Optional[StepSink], correlation_id: Optional[str] = None):
        self.sink = sink
        self.correlation_id = correlation_id or new_correlation_id()
        self.completed_steps = 0
        self.total_steps = 0
        self.delivered = 0
        self.failed_deliveries = 0

    async def _deliver(self, update: PricingStepUpdate):
        if self.sink is None:
            return
        try:
            result: Any = self.sink(update)
            if inspect.isawaitable(result):
                await result
            self.delivered += 1
        except Exception:
            self.failed_deliveries += 1
            logger.exception("Step sink failed for %s", self.correlation_id)

    async def emit_step(self, step: PricingStep, total_steps: int):
        self.completed_steps += 1
        self.total_steps = total_steps
        await self._deliver(PricingStepUpdate(
            correlation_id=self.correlation_id,
            step=step,
            is_complete=False,
            total_steps=total_steps,
            completed_steps=self.completed_steps,
        ))

    async def complete(self, breakdown: PricingBreakdown):
        steps = len(breakdown.pricing_steps)
        await self._deliver(PricingStepUpdate(
            correlation_id=self.correlation_id,
            step=None,
            is_complete=True,
            total_steps=steps,
            completed_steps=steps,
            final_breakdown=breakdown,
        ))
        self._log_deliveries()

    async def fail(self, message: str):
        await self._deliver(PricingStepUpdate(
            correlation_id=self.correlation_id,
            step=None,
            is_complete=True,
            total_steps=self.total_steps,
            completed_steps=self.completed_steps,
            error=message,
        ))
        self._log_deliveries()

    def _log_deliveries(self):
        if self.failed_deliveries:
            logger.warning(
                "Stream %s: %d of %d updates not delivered",
                self.correlation_id, self.failed_deliveries, self.delivered + self.failed_deliveries,
            )
