"""Shared test fixtures for the bundle pricing engine."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from bundle_pricing.catalog.csv_catalog import InMemoryCatalog
from bundle_pricing.catalog.fees import FeeMatrix
from bundle_pricing.config.settings import Settings, _reset_settings
from bundle_pricing.engine import PricingEngine
from bundle_pricing.engine.markup import MarkupMatrix
from bundle_pricing.engine.models import Bundle
from bundle_pricing.rules.compile_rules import compile_blocks

GROUP = "Standard Unlimited Essential"
FIXED_NOW = 1_700_000_000.0


def au_bundle(days: int, price: float, provider: str = "ESIM_GO", groups=(GROUP,)) -> Bundle:
    return Bundle(
        name=f"esim_UL_{days}D_AU_V2",
        provider=provider,
        validity_in_days=days,
        price=price,
        groups=tuple(groups),
        countries=("AU",),
        region="Oceania",
    )


AU_BUNDLES = [
    au_bundle(1, 1.13),
    au_bundle(3, 3.47),
    au_bundle(7, 14.72),
    au_bundle(15, 22.00),
    au_bundle(30, 38.00),
]

MARKUPS = {1: 2.85, 3: 5.60, 7: 13.25, 15: 15.00, 30: 22.00}

DEFAULT_BLOCKS = [
    {"id": "base-price", "name": "Base price", "priority": 100,
     "conditions": {}, "event_type": "SET_BASE_PRICE", "params": {}},
    {"id": "markup", "name": "Bundle markup", "priority": 90,
     "conditions": {}, "event_type": "APPLY_MARKUP", "params": {}},
    {"id": "unused-days-discount", "name": "Unused days discount", "priority": 80,
     "conditions": {"all": [{"fact": "unused_days", "operator": "greaterThan", "value": 0}]},
     "event_type": "APPLY_UNUSED_DAYS_DISCOUNT", "params": {}},
    {"id": "processing-fee", "name": "Processing fee", "priority": 70,
     "conditions": {}, "event_type": "APPLY_PROCESSING_FEE", "params": {}},
    {"id": "minimum-profit", "name": "Minimum profit", "priority": 60,
     "conditions": {}, "event_type": "APPLY_PROFIT_CONSTRAINT", "params": {"value": 1.5}},
    {"id": "rounding", "name": "Rounding", "priority": 10,
     "conditions": {}, "event_type": "APPLY_PSYCHOLOGICAL_ROUNDING", "params": {"strategy": "nearest-whole"}},
]


class StaticRuleRepository:
    """Repository over an in-memory list of blocks."""

    def __init__(self, blocks):
        self.rules, self.errors = compile_blocks(blocks)
        self.loads = 0
        self.invalidations = 0

    async def load_rules(self, strategy_id=None):
        self.loads += 1
        return list(self.rules)

    async def load_default_rules(self):
        return await self.load_rules(None)

    def invalidate(self):
        self.invalidations += 1


@pytest.fixture(autouse=True)
def reset_settings():
    _reset_settings()
    yield
    _reset_settings()


@pytest.fixture
def settings():
    return Settings.load()


@pytest.fixture
def catalog():
    return InMemoryCatalog(AU_BUNDLES)


@pytest.fixture
def markup_matrix():
    matrix = MarkupMatrix()
    for days, amount in MARKUPS.items():
        matrix.add("ESIM_GO", GROUP, days, amount)
    return matrix


@pytest.fixture
def fee_matrix():
    return FeeMatrix.from_mapping({
        "ISRAELI_CARD": {"percentage_fee": 1.4, "fixed_fee": 0},
        "FOREIGN_CARD": {"percentage_fee": 3.9, "fixed_fee": 0},
    })


@pytest.fixture
def make_engine(catalog, markup_matrix, fee_matrix, settings):
    """Factory for engines over the AU catalog with a fixed clock."""

    def _make(blocks=None, repository=None, **kwargs):
        repository = repository or StaticRuleRepository(DEFAULT_BLOCKS if blocks is None else blocks)
        options = dict(
            catalog=catalog,
            rule_repository=repository,
            settings=settings,
            fee_matrix=fee_matrix,
            markup_matrix=markup_matrix,
            clock=lambda: FIXED_NOW,
        )
        options.update(kwargs)
        return PricingEngine(**options)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
