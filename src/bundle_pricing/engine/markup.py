"""
Markup matrix - structured margin lookup.

Margins are keyed by (provider, group) and then by duration in days.
Resolution walks an ordered list of key builders:

1. provider-only key, only when the bundle's provider has no groups
2. compound provider + group key
3. legacy group-only key
4. no match -> margin 0
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import pandas as pd

from .models import Bundle, Provider

logger = logging.getLogger(__name__)

MarkupKey = tuple[Optional[str], Optional[str]]


def _norm_provider(value: str) -> str:
    return str(value).strip().upper().replace('-', '_')


def _norm_group(value: str) -> str:
    return str(value).strip().lower()


def _provider_only(bundle: Bundle, group: Optional[str]) -> Optional[MarkupKey]:
    if bundle.groups:
        return None
    return (_norm_provider(bundle.provider), None)


def _compound(bundle: Bundle, group: Optional[str]) -> Optional[MarkupKey]:
    if not group:
        return None
    return (_norm_provider(bundle.provider), _norm_group(group))


def _legacy_group(bundle: Bundle, group: Optional[str]) -> Optional[MarkupKey]:
    if not group:
        return None
    return (None, _norm_group(group))


KEY_BUILDERS: tuple[Callable[[Bundle, Optional[str]], Optional[MarkupKey]], ...] = (
    _provider_only,
    _compound,
    _legacy_group,
)


@dataclass
class MarkupLookup:
    """Outcome of a margin lookup."""
    amount: float
    key: Optional[MarkupKey] = None

    @property
    def found(self) -> bool:
        return self.key is not None


@dataclass
class MarkupMatrix:
    """Lookup from (provider, group) and duration to an added amount."""
    entries: dict[MarkupKey, dict[int, float]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def add(self, provider: Optional[str], group: Optional[str], days: int, amount: float):
        key = (
            _norm_provider(provider) if provider else None,
            _norm_group(group) if group else None,
        )
        self.entries.setdefault(key, {})[int(days)] = float(amount)

    def lookup(self, bundle: Bundle, group: Optional[str] = None) -> MarkupLookup:
        """Resolve the margin for a bundle. Never raises."""
        group = group if bundle.has_group(group) else bundle.group
        days = int(bundle.validity_in_days)

        for build_key in KEY_BUILDERS:
            key = build_key(bundle, group)
            if key is None or key not in self.entries:
                continue
            by_days = self.entries[key]
            if days in by_days:
                return MarkupLookup(amount=by_days[days], key=key)

        return MarkupLookup(amount=0.0)

    @classmethod
    def from_mapping(cls, raw: Optional[dict], providers: Optional[list[str]] = None) -> 'MarkupMatrix':
        """
        Build from free-form string keys, e.g.::

            {"MAYA": {"7": 3.0},
             "ESIM_GO-Standard Unlimited Essential": {"7": 4.5},
             "Standard Unlimited Lite": {"7": 2.0}}

        A key equal to a known provider is provider-only, a key starting with
        ``{provider}-`` is compound and anything else is a legacy group key.
        """
        matrix = cls()
        if not raw:
            return matrix

        known = [_norm_provider(p) for p in (providers or [p.value for p in Provider])]
        known.sort(key=len, reverse=True)

        for raw_key, by_days in raw.items():
            provider, group = _split_key(str(raw_key), known)
            for days, amount in (by_days or {}).items():
                try:
                    matrix.add(provider, group, int(days), float(amount))
                except (TypeError, ValueError):
                    logger.warning("Ignoring markup entry %s[%s]=%r", raw_key, days, amount)
        return matrix

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'MarkupMatrix':
        """Build from rows of provider, group, duration_days, markup_amount."""
        matrix = cls()
        if df.empty:
            return matrix
        for _, row in df.iterrows():
            provider = row.get('provider') or None
            group = row.get('group') or None
            matrix.add(provider, group, int(float(row['duration_days'])), float(row['markup_amount']))
        return matrix

    @classmethod
    def from_csv(cls, path) -> 'MarkupMatrix':
        """Load the configured markup matrix. A missing file yields an empty matrix."""
        if path is None or not path.exists():
            logger.warning("Markup matrix not found at %s, margins default to 0", path)
            return cls()
        df = pd.read_csv(path, dtype=str).fillna('')
        df.columns = [c.strip() for c in df.columns]
        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()
        return cls.from_frame(df)


def _split_key(raw_key: str, known_providers: list[str]) -> MarkupKey:
    normalized = _norm_provider(raw_key)
    for provider in known_providers:
        if normalized == provider:
            return provider, None
        if normalized.startswith(provider + '_'):
            group = raw_key.strip()[len(provider) + 1:]
            if group:
                return provider, group
    return None, raw_key
