"""Engine subpackage - fact resolution, rule matching and the pricing pipeline."""
from .pricing_engine import PricingEngine
from .models import Bundle, RequestFacts, PricingBreakdown, PricingStep, PricingStepUpdate

__all__ = ['PricingEngine', 'Bundle', 'RequestFacts', 'PricingBreakdown', 'PricingStep', 'PricingStepUpdate']
