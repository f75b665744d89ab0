"""
Fact Resolver - static and derived facts for rule evaluation.

Pure selection helpers (bundle selection, previous bundle, unused days,
markup, provider ranking) plus a request-scoped ``Almanac`` that resolves
each named fact at most once per run.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

from ..catalog.ports import CatalogProvider, ProviderSelectionSource
from ..errors import NotFoundError
from .markup import MarkupMatrix
from .models import Bundle, RequestFacts

logger = logging.getLogger(__name__)

FactFunction = Callable[['Almanac'], Awaitable[Any]]


# --- Pure helpers ---------------------------------------------------------

def _pick(candidates: list[Bundle], preferred_provider: Optional[str]) -> Bundle:
    """Candidate matching the preferred provider, else the first one."""
    if preferred_provider:
        for bundle in candidates:
            if bundle.provider.upper() == preferred_provider.upper():
                return bundle
    return candidates[0]


def _known(known_durations: Iterable[int], candidates: list[Bundle]) -> list[int]:
    durations = sorted({int(d) for d in known_durations})
    if not durations:
        durations = sorted({b.validity_in_days for b in candidates})
    return durations


def resolve_selected_bundle(
    requested_days: int,
    known_durations: Iterable[int],
    candidates: list[Bundle],
    preferred_provider: Optional[str] = None,
) -> Bundle:
    """
    Select the bundle for a requested duration.

    Exact duration match first; otherwise the smallest known duration
    strictly greater than the request that has a candidate.

    Raises:
        NotFoundError: no candidate covers the requested duration
    """
    durations = _known(known_durations, candidates)

    if requested_days in durations:
        exact = [b for b in candidates if b.validity_in_days == requested_days]
        if exact:
            return _pick(exact, preferred_provider)

    for days in durations:
        if days <= requested_days:
            continue
        at_duration = [b for b in candidates if b.validity_in_days == days]
        if at_duration:
            return _pick(at_duration, preferred_provider)

    raise NotFoundError(
        f"No bundle available for {requested_days} days "
        f"({len(candidates)} candidates, durations {durations})"
    )


def resolve_previous_bundle(
    selected: Optional[Bundle],
    known_durations: Iterable[int],
    candidates: list[Bundle],
    preferred_provider: Optional[str] = None,
) -> Optional[Bundle]:
    """Candidate at the largest known duration strictly below the selected one."""
    if selected is None:
        return None
    durations = _known(known_durations, candidates)
    for days in reversed(durations):
        if days >= selected.validity_in_days:
            continue
        at_duration = [b for b in candidates if b.validity_in_days == days]
        if at_duration:
            return _pick(at_duration, preferred_provider)
    return None


def resolve_unused_days(selected: Bundle, requested_days: int) -> int:
    """Validity left over after the requested days. Never negative for a valid selection."""
    return selected.validity_in_days - requested_days


def resolve_markup(bundle: Optional[Bundle], matrix: MarkupMatrix, group: Optional[str] = None) -> float:
    """Margin for a bundle by key precedence; 0 when nothing matches. Never raises."""
    if bundle is None or matrix is None:
        return 0.0
    return matrix.lookup(bundle, group).amount


async def resolve_available_bundles(
    catalog: CatalogProvider,
    group: Optional[str] = None,
    country: Optional[str] = None,
    region: Optional[str] = None,
) -> list[Bundle]:
    """Unlimited bundles for the geography, filtered by group membership.

    A bundle that declares no groups matches any requested group.
    """
    bundles = await catalog.get_available_bundles(group=group, country=country, region=region)
    result = []
    for bundle in bundles:
        if not bundle.is_unlimited:
            continue
        if group and bundle.groups and not bundle.has_group(group):
            continue
        result.append(bundle)
    return result


@dataclass(frozen=True)
class ProviderSelection:
    """Available providers ranked by preference."""
    available: tuple[str, ...] = ()
    preferred: Optional[str] = None
    fallback: Optional[str] = None

    def as_fact(self) -> dict:
        return {
            "available": list(self.available),
            "preferred": self.preferred,
            "fallback": self.fallback,
        }


def resolve_provider_selection(available: Iterable[str], preference: Iterable[str]) -> ProviderSelection:
    """Rank providers by a fixed preference order; unknown providers go last, alphabetically."""
    order = [p.upper() for p in preference]
    unique = sorted({str(p).upper() for p in available if p})

    def rank(provider: str) -> tuple:
        if provider in order:
            return (0, order.index(provider), provider)
        return (1, 0, provider)

    ranked = tuple(sorted(unique, key=rank))
    return ProviderSelection(
        available=ranked,
        preferred=ranked[0] if ranked else None,
        fallback=ranked[1] if len(ranked) > 1 else None,
    )


# --- Per-run fact memoization --------------------------------------------

class Almanac:
    """
    Request-scoped fact store.

    Static facts are plain values; derived facts are coroutine functions that
    receive the almanac and are run at most once, on first use. Discarded at
    the end of the run.
    """

    def __init__(self, static_facts: Optional[dict] = None):
        self._static: dict[str, Any] = dict(static_facts or {})
        self._functions: dict[str, FactFunction] = {}
        self._tasks: dict[str, asyncio.Future] = {}

    def add_fact(self, name: str, value: Any):
        if callable(value):
            self._functions[name] = value
        else:
            self._static[name] = value

    def has(self, name: str) -> bool:
        return name in self._static or name in self._functions

    async def value(self, name: str) -> Any:
        if name in self._static:
            return self._static[name]
        if name not in self._functions:
            raise KeyError(f"Undefined fact '{name}'")
        if name not in self._tasks:
            logger.debug("Resolving fact %s", name)
            self._tasks[name] = asyncio.ensure_future(self._functions[name](self))
        return await self._tasks[name]

    def resolved(self) -> list[str]:
        """Names of facts resolved so far, static facts included."""
        return sorted(set(self._static) | set(self._tasks))


# --- Fact registration ----------------------------------------------------

@dataclass
class FactResolver:
    """Registers the derived pricing facts on an almanac for one request."""
    catalog: CatalogProvider
    markup_matrix: MarkupMatrix = field(default_factory=MarkupMatrix)
    provider_preference: tuple = ('MAYA', 'ESIM_GO')
    provider_source: Optional[ProviderSelectionSource] = None

    def build_almanac(self, request: RequestFacts) -> Almanac:
        almanac = Almanac({
            "requested_days": request.days,
            "requested_group": request.group,
            "country": request.country,
            "region": request.region,
            "payment_method": request.payment_method,
            "strategy_id": request.strategy_id,
        })

        async def durations(a: Almanac) -> list[int]:
            return sorted({int(d) for d in await self.catalog.get_duration_catalog()})

        async def available_bundles(a: Almanac) -> list[Bundle]:
            return await resolve_available_bundles(
                self.catalog,
                group=await a.value("requested_group"),
                country=await a.value("country"),
                region=await a.value("region"),
            )

        async def available_providers(a: Almanac) -> list[str]:
            if self.provider_source is not None:
                return list(await self.provider_source.get_available_providers())
            return sorted({b.provider.upper() for b in await a.value("available_bundles")})

        async def provider_selection(a: Almanac) -> ProviderSelection:
            return resolve_provider_selection(await a.value("available_providers"), self.provider_preference)

        async def preferred_provider(a: Almanac) -> Optional[str]:
            return (await a.value("provider_selection")).preferred

        async def selected_bundle(a: Almanac) -> Bundle:
            return resolve_selected_bundle(
                await a.value("requested_days"),
                await a.value("durations"),
                await a.value("available_bundles"),
                await a.value("preferred_provider"),
            )

        async def previous_bundle(a: Almanac) -> Optional[Bundle]:
            return resolve_previous_bundle(
                await a.value("selected_bundle"),
                await a.value("durations"),
                await a.value("available_bundles"),
                await a.value("preferred_provider"),
            )

        async def unused_days(a: Almanac) -> int:
            return resolve_unused_days(await a.value("selected_bundle"), await a.value("requested_days"))

        async def is_exact_match(a: Almanac) -> bool:
            return await a.value("unused_days") == 0

        async def selected_bundle_markup(a: Almanac) -> float:
            return resolve_markup(await a.value("selected_bundle"), self.markup_matrix, await a.value("requested_group"))

        async def previous_bundle_markup(a: Almanac) -> float:
            return resolve_markup(await a.value("previous_bundle"), self.markup_matrix, await a.value("requested_group"))

        for fact in (durations, available_bundles, available_providers, provider_selection,
                     preferred_provider, selected_bundle, previous_bundle, unused_days,
                     is_exact_match, selected_bundle_markup, previous_bundle_markup):
            almanac.add_fact(fact.__name__, fact)

        return almanac
