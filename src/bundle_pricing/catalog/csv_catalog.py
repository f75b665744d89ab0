"""
Catalog adapters - bundle snapshots from a CSV export or a fixed list.

CSV columns: name, provider, groups, validity_in_days, price, is_unlimited,
countries, region. ``groups`` and ``countries`` are pipe-separated.
"""
import logging
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from ..engine.models import Bundle

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ('name', 'provider', 'validity_in_days', 'price')


def _split(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in str(value).split('|') if part.strip())


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() in ('true', '1', 'yes', 'y')


def _matches_geography(bundle: Bundle, country: Optional[str], region: Optional[str]) -> bool:
    if country:
        return country.upper() in {c.upper() for c in bundle.countries}
    if region:
        return (bundle.region or '').lower() == region.lower()
    return True


class InMemoryCatalog:
    """Catalog over a fixed list of bundles."""

    def __init__(self, bundles: Iterable[Bundle], durations: Optional[Iterable[int]] = None):
        self.bundles = list(bundles)
        self._durations = sorted({int(d) for d in durations}) if durations is not None else None

    async def get_available_bundles(
        self,
        group: Optional[str] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
    ) -> list[Bundle]:
        return [
            b for b in self.bundles
            if b.is_unlimited and _matches_geography(b, country, region)
        ]

    async def get_duration_catalog(self) -> list[int]:
        if self._durations is not None:
            return list(self._durations)
        return sorted({b.validity_in_days for b in self.bundles})


class CsvCatalog(InMemoryCatalog):
    """Catalog loaded once from a bundles CSV export."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(self._load(path))

    @staticmethod
    def _load(path: Path) -> list[Bundle]:
        if not path.exists():
            raise FileNotFoundError(f"Bundle catalog not found at {path}.")

        df = pd.read_csv(path, dtype=str).fillna('')
        df.columns = [c.strip() for c in df.columns]
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Bundle catalog {path} is missing columns: {missing}")

        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()

        bundles = []
        for line_num, row in enumerate(df.to_dict(orient='records'), start=2):
            try:
                bundles.append(Bundle(
                    name=row['name'],
                    provider=row['provider'].upper(),
                    validity_in_days=int(float(row['validity_in_days'])),
                    price=float(row['price']),
                    is_unlimited=_parse_bool(row.get('is_unlimited', 'true') or 'true'),
                    groups=_split(row.get('groups', '')),
                    countries=tuple(c.upper() for c in _split(row.get('countries', ''))),
                    region=row.get('region') or None,
                ))
            except ValueError:
                logger.warning("Skipping malformed bundle row %d in %s", line_num, path)

        logger.info("Loaded %d bundles from %s", len(bundles), path)
        return bundles
