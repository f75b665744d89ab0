"""
Shared API state - the process-wide pricing engine.

Built lazily on first use so importing the app does not touch the data
files. Tests swap in their own engine with ``set_engine``.
"""
from typing import Optional

from ..engine import PricingEngine

_engine: Optional[PricingEngine] = None


def get_engine() -> PricingEngine:
    global _engine
    if _engine is None:
        _engine = PricingEngine.from_settings()
    return _engine


def set_engine(engine: Optional[PricingEngine]) -> None:
    """Replace the shared engine - for testing only."""
    global _engine
    _engine = engine
