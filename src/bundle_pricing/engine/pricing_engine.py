"""
Pricing Engine - orchestrates one pricing calculation.

Flow for a request:
1. Load rules for the requested strategy (default strategy otherwise)
2. Build the request almanac (static + derived facts)
3. Match rules against the almanac, collecting fired events
4. Run the pricing pipeline in canonical stage order
5. Summarize the applied rules into a PricingBreakdown

Nothing is persisted. Each call is one cooperative asyncio task; the
almanac and the pipeline state are discarded when it returns.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict
from typing import TYPE_CHECKING, AsyncIterator, Callable, Optional

from ..config.settings import Settings, get_settings
from ..errors import USER_MESSAGES, ErrorCode, InitializationError, PricingEngineError
from ..catalog.fees import FeeMatrix
from ..catalog.ports import CatalogProvider, ProviderSelectionSource
from .facts import FactResolver
from .markup import MarkupMatrix
from .models import PricingBreakdown, PricingStepUpdate, RequestFacts
from .pipeline import PricingPipeline
from .processors import PricingContext, round_half_up
from .rule_matcher import RuleMatcher
from .streaming import StepEmitter, StepSink
from .summary import generate_customer_discounts, markup_total, summarize

if TYPE_CHECKING:
    from ..rules.compile_rules import Rule
    from ..services.rules_service import RuleRepository

logger = logging.getLogger(__name__)

# Strong references to streamed calculations still running
_background_tasks: set[asyncio.Task] = set()


class PricingEngine:
    """
    Computes a price and its audit trail for a RequestFacts.

    Collaborators are injected: a catalog, a rule repository, the fee and
    markup matrices, and a clock used for step timestamps and timing.
    """

    def __init__(
        self,
        catalog: CatalogProvider,
        rule_repository: RuleRepository,
        settings: Optional[Settings] = None,
        fee_matrix: Optional[FeeMatrix] = None,
        markup_matrix: Optional[MarkupMatrix] = None,
        provider_source: Optional[ProviderSelectionSource] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.rule_repository = rule_repository
        self.fee_matrix = fee_matrix or FeeMatrix()
        self.markup_matrix = markup_matrix or MarkupMatrix()
        self.clock = clock

        self.fact_resolver = FactResolver(
            catalog=catalog,
            markup_matrix=self.markup_matrix,
            provider_preference=tuple(self.settings.provider_preference),
            provider_source=provider_source,
        )
        self.pipeline = PricingPipeline(clock=clock)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> 'PricingEngine':
        """Engine wired to the configured CSV catalog, JSON rules and matrices."""
        from ..catalog.csv_catalog import CsvCatalog
        from ..services.rules_service import CachedRuleRepository, JsonRuleRepository

        settings = settings or get_settings()
        repository = CachedRuleRepository(
            JsonRuleRepository(settings.rules_file),
            ttl_seconds=settings.rules_cache_ttl_seconds,
        )
        return cls(
            catalog=CsvCatalog(settings.bundles_csv),
            rule_repository=repository,
            settings=settings,
            fee_matrix=FeeMatrix.from_csv(settings.fees_csv),
            markup_matrix=MarkupMatrix.from_csv(settings.markups_csv),
            **kwargs,
        )

    def invalidate_rules(self):
        """Drop cached rules so the next request reloads them."""
        self.rule_repository.invalidate()

    async def _load_rules(self, strategy_id: Optional[str]) -> list[Rule]:
        try:
            return list(await self.rule_repository.load_rules(strategy_id))
        except PricingEngineError:
            raise
        except Exception as e:
            raise InitializationError(f"Failed to load pricing rules: {e}") from e

    async def calculate(self, request: RequestFacts) -> PricingBreakdown:
        """
        Price a request.

        Raises:
            InitializationError: rules or strategy could not be loaded
            NotFoundError: no bundle covers the requested duration
        """
        return await self._calculate(request, emitter=None)

    async def stream(
        self,
        request: RequestFacts,
        sink: Optional[StepSink],
        correlation_id: Optional[str] = None,
    ) -> PricingBreakdown:
        """
        Price a request, pushing each step to ``sink`` as it is produced.

        The sink then receives a terminal update carrying the breakdown, or
        an error update if the calculation fails (the error is re-raised).
        """
        emitter = StepEmitter(sink, correlation_id)
        try:
            breakdown = await self._calculate(request, emitter)
        except PricingEngineError as e:
            await emitter.fail(e.user_message)
            raise
        except Exception:
            logger.exception("Pricing calculation %s failed", emitter.correlation_id)
            await emitter.fail(USER_MESSAGES[ErrorCode.INTERNAL_ERROR])
            raise

        await emitter.complete(breakdown)
        return breakdown

    async def iter_updates(
        self,
        request: RequestFacts,
        correlation_id: Optional[str] = None,
    ) -> AsyncIterator[PricingStepUpdate]:
        """
        Async iterator over streamed updates, ending with the terminal one.

        The calculation runs as its own task and completes even if the
        consumer stops iterating early.
        """
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self.stream(request, queue.put_nowait, correlation_id))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        task.add_done_callback(_log_task_failure)

        while True:
            update = await queue.get()
            yield update
            if update.is_complete:
                break

    async def _calculate(self, request: RequestFacts, emitter: Optional[StepEmitter]) -> PricingBreakdown:
        start = self.clock()

        rules = await self._load_rules(request.strategy_id)
        almanac = self.fact_resolver.build_almanac(request)

        outcome = await RuleMatcher().run(almanac, rules)

        # An unresolved bundle is fatal even when no rule asked for it
        selected = await almanac.value("selected_bundle")
        previous = await almanac.value("previous_bundle")
        unused_days = await almanac.value("unused_days")

        context = PricingContext(
            selected_bundle=selected,
            previous_bundle=previous,
            unused_days=unused_days,
            payment_method=request.payment_method,
            requested_group=request.group,
            markup_matrix=self.markup_matrix,
            fee_matrix=self.fee_matrix,
        )
        result = await self.pipeline.run(
            outcome.events,
            context,
            on_step=emitter.emit_step if emitter is not None else None,
        )

        metrics = summarize(result.applied_rules, result.final_price, selected, unused_days)
        discounts = generate_customer_discounts(
            result.applied_rules,
            selected.price,
            markup_total(result.applied_rules),
        )
        elapsed_ms = round_half_up((self.clock() - start) * 1000, 2)

        breakdown = PricingBreakdown(
            **asdict(metrics),
            currency=self.settings.currency,
            applied_rules=result.applied_rules,
            pricing_steps=result.steps,
            customer_discounts=discounts,
            calculation_time_ms=elapsed_ms,
            rules_evaluated=len(rules),
            bundle=selected,
            duration=request.days,
        )

        if request.include_debug_info:
            breakdown.debug_info = {
                "rule_results": [r.to_dict() for r in outcome.results],
                "event_count": len(outcome.events),
                "warnings": [w.to_dict() for w in result.warnings],
                "resolved_facts": almanac.resolved(),
            }

        logger.info(
            "Priced %s for %d days: %s %s (%d rules, %d events)",
            selected.name, request.days, breakdown.final_price, breakdown.currency,
            len(rules), len(outcome.events),
        )
        return breakdown


def _log_task_failure(task: asyncio.Future):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.info("Streamed calculation ended with %s: %s", type(error).__name__, error)
