"""
Event parameter schemas, validated when a rule is loaded.

Keys are accepted in snake_case or camelCase (``markup_matrix`` /
``markupMatrix``). Unknown keys are kept so they show up in step metadata.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel

from ..catalog.fees import FeeEntry, FeeMatrix
from ..engine.events import EventType
from ..engine.markup import MarkupMatrix


class EventParams(BaseModel):
    """Common parameters for every pricing event."""
    model_config = ConfigDict(extra='allow', populate_by_name=True, alias_generator=to_camel)

    rule_id: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def _lift_action_value(cls, data):
        # {"actions": {"value": x}} is accepted as {"value": x}
        if isinstance(data, dict) and 'value' not in data and isinstance(data.get('actions'), dict):
            value = data['actions'].get('value')
            if value is not None:
                data = {**data, 'value': value}
        return data

    def metadata(self) -> dict:
        return self.model_dump(exclude_none=True)


class BasePriceParams(EventParams):
    pass


class MarkupParams(EventParams):
    markup_matrix: Optional[dict[str, dict[int, float]]] = None
    value: Optional[float] = None

    _matrix: Optional[MarkupMatrix] = PrivateAttr(default=None)

    def model_post_init(self, __context) -> None:
        if self.markup_matrix:
            self._matrix = MarkupMatrix.from_mapping(self.markup_matrix)

    @property
    def matrix(self) -> Optional[MarkupMatrix]:
        """Structured lookup built once when the rule is loaded."""
        return self._matrix


class UnusedDaysDiscountParams(EventParams):
    refund_ratio: float = Field(0.5, ge=0, le=1)


class FeeEntryParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    percentage_fee: float = Field(ge=0)
    fixed_fee: float = Field(0.0, ge=0)


class ProcessingFeeParams(EventParams):
    fees_matrix: Optional[dict[str, FeeEntryParams]] = None

    @property
    def fee_matrix(self) -> Optional[FeeMatrix]:
        if self.fees_matrix is None:
            return None
        return FeeMatrix({
            method.upper(): FeeEntry(entry.percentage_fee, entry.fixed_fee)
            for method, entry in self.fees_matrix.items()
        })


class ProfitConstraintParams(EventParams):
    value: float = Field(ge=0)


class PsychologicalRoundingParams(EventParams):
    strategy: str = "nearest-whole"


class RegionRoundingParams(EventParams):
    value: float = Field(0.99, ge=0, lt=1)


class FixedPriceParams(EventParams):
    value: float = Field(ge=0)


EVENT_PARAM_SCHEMAS: dict[EventType, type[EventParams]] = {
    EventType.SET_BASE_PRICE: BasePriceParams,
    EventType.APPLY_MARKUP: MarkupParams,
    EventType.APPLY_UNUSED_DAYS_DISCOUNT: UnusedDaysDiscountParams,
    EventType.APPLY_PROCESSING_FEE: ProcessingFeeParams,
    EventType.APPLY_PROFIT_CONSTRAINT: ProfitConstraintParams,
    EventType.APPLY_PSYCHOLOGICAL_ROUNDING: PsychologicalRoundingParams,
    EventType.APPLY_REGION_ROUNDING: RegionRoundingParams,
    EventType.APPLY_FIXED_PRICE: FixedPriceParams,
}
