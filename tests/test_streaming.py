"""
Tests for streamed calculations: sink delivery, terminal updates, sink
failures and the async-iterator adapter.
"""
import asyncio
import gc
import logging

import pytest

from bundle_pricing.engine import pricing_engine
from bundle_pricing.engine.models import PricingStep, RequestFacts
from bundle_pricing.engine.streaming import StepEmitter
from bundle_pricing.errors import NotFoundError, USER_MESSAGES, ErrorCode

from conftest import GROUP


def request(days=5, **kwargs):
    return RequestFacts(days=days, group=GROUP, country="AU", **kwargs)


@pytest.mark.asyncio
async def test_sink_receives_steps_then_terminal_update(engine):
    updates = []
    breakdown = await engine.stream(request(), updates.append, correlation_id="corr-1")

    steps = [u for u in updates if not u.is_complete]
    terminal = updates[-1]

    assert len(steps) == len(breakdown.pricing_steps)
    assert [u.step for u in steps] == breakdown.pricing_steps
    assert [u.completed_steps for u in steps] == list(range(1, len(steps) + 1))
    assert all(u.total_steps == len(steps) for u in steps)
    assert all(u.correlation_id == "corr-1" for u in updates)

    assert terminal.is_complete
    assert terminal.step is None
    assert terminal.final_breakdown is breakdown
    assert terminal.total_steps == terminal.completed_steps == len(breakdown.pricing_steps)
    assert terminal.error is None


@pytest.mark.asyncio
async def test_streamed_steps_match_non_streaming(engine):
    updates = []
    streamed = await engine.stream(request(), updates.append)
    plain = await engine.calculate(request())
    assert streamed.to_dict() == plain.to_dict()


@pytest.mark.asyncio
async def test_async_sink(engine):
    received = []

    async def sink(update):
        received.append(update)

    await engine.stream(request(7), sink)
    assert received[-1].is_complete


@pytest.mark.asyncio
async def test_failing_sink_does_not_abort(engine):
    calls = []

    def sink(update):
        calls.append(update)
        raise ConnectionError("listener went away")

    breakdown = await engine.stream(request(), sink)

    assert breakdown.final_price == 26.0
    assert len(calls) == len(breakdown.pricing_steps) + 1


@pytest.mark.asyncio
async def test_no_listener_still_computes(engine):
    breakdown = await engine.stream(request(), None)
    assert breakdown.final_price == 26.0


@pytest.mark.asyncio
async def test_error_update_then_reraise(engine):
    updates = []
    with pytest.raises(NotFoundError):
        await engine.stream(request(days=45), updates.append)

    assert len(updates) == 1
    assert updates[0].is_complete
    assert updates[0].error == USER_MESSAGES[ErrorCode.BUNDLE_NOT_FOUND]
    assert updates[0].final_breakdown is None


@pytest.mark.asyncio
async def test_iter_updates(engine):
    updates = [u async for u in engine.iter_updates(request(), correlation_id="corr-2")]

    assert updates[0].step.name == "Bundle Selection"
    assert updates[-1].is_complete
    assert updates[-1].final_breakdown.final_price == 26.0
    assert {u.correlation_id for u in updates} == {"corr-2"}


@pytest.mark.asyncio
async def test_iter_updates_ends_with_error_update(engine):
    updates = [u async for u in engine.iter_updates(request(days=45))]
    assert len(updates) == 1
    assert updates[0].error


@pytest.mark.asyncio
async def test_calculation_finishes_after_consumer_stops(engine, caplog):
    caplog.set_level(logging.INFO, logger=pricing_engine.__name__)

    updates = engine.iter_updates(request())
    first = await updates.__anext__()
    await updates.aclose()
    gc.collect()

    await asyncio.wait_for(asyncio.gather(*pricing_engine._background_tasks), timeout=5)

    assert first.step.name == "Bundle Selection"
    assert not pricing_engine._background_tasks
    assert any(r.getMessage().startswith("Priced ") for r in caplog.records)


@pytest.mark.asyncio
async def test_emitter_counts_and_reports_failed_deliveries(caplog):
    received = []

    def sink(update):
        if update.is_complete:
            raise ConnectionError("listener went away")
        received.append(update)

    emitter = StepEmitter(sink, correlation_id="corr-3")
    step = PricingStep(order=0, name="Bundle Selection", price_before=0.0, price_after=14.72,
                       impact=14.72, rule_id=None, metadata={}, timestamp=0)
    await emitter.emit_step(step, 1)
    await emitter.fail("boom")

    assert len(received) == 1
    assert emitter.delivered == 1
    assert emitter.failed_deliveries == 1
    assert "1 of 2 updates not delivered" in caplog.text
