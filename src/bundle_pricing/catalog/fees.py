"""
Fee matrix - payment method to processing fee configuration.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeEntry:
    percentage_fee: float
    fixed_fee: float = 0.0


@dataclass
class FeeMatrix:
    """Processing fees keyed by payment method."""
    entries: dict[str, FeeEntry] = field(default_factory=dict)

    def get(self, payment_method: Optional[str]) -> Optional[FeeEntry]:
        if not payment_method:
            return None
        return self.entries.get(str(payment_method).strip().upper())

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_mapping(cls, raw: Optional[dict]) -> 'FeeMatrix':
        """Build from ``{"ISRAELI_CARD": {"percentage_fee": 1.4, "fixed_fee": 0}}``."""
        entries = {}
        for method, fees in (raw or {}).items():
            if isinstance(fees, FeeEntry):
                entries[str(method).upper()] = fees
                continue
            percentage = fees.get('percentage_fee', fees.get('percentageFee', 0))
            fixed = fees.get('fixed_fee', fees.get('fixedFee', 0))
            entries[str(method).upper()] = FeeEntry(float(percentage or 0), float(fixed or 0))
        return cls(entries)

    @classmethod
    def from_csv(cls, path: Optional[Path]) -> 'FeeMatrix':
        """Load rows of payment_method, percentage_fee, fixed_fee."""
        if path is None or not path.exists():
            logger.warning("Fee matrix not found at %s, processing fees will be skipped", path)
            return cls()

        df = pd.read_csv(path, dtype=str).fillna('')
        df.columns = [c.strip() for c in df.columns]
        entries = {}
        for _, row in df.iterrows():
            method = str(row['payment_method']).strip().upper()
            if not method:
                continue
            entries[method] = FeeEntry(
                percentage_fee=float(row.get('percentage_fee') or 0),
                fixed_fee=float(row.get('fixed_fee') or 0),
            )
        return cls(entries)
