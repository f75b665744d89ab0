"""
Catalog ports.

External interfaces the pricing core calls. Implementations live in
``csv_catalog`` (pandas-backed file catalog, in-memory catalog) or in the
hosting service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from ..engine.models import Bundle


class CatalogProvider(Protocol):
    """
    Port for bundle catalog access.

    Implementations:
    - CsvCatalog: bundles read from a CSV export
    - InMemoryCatalog: fixed list of bundles (tests, embedding)
    """

    async def get_available_bundles(
        self,
        group: Optional[str] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
    ) -> list[Bundle]:
        """
        Bundles sold for a country or region.

        Args:
            group: Optional requested bundle group
            country: ISO country code (mutually exclusive with region)
            region: Region name (mutually exclusive with country)

        Returns:
            Unlimited bundles in provider scope
        """
        ...

    async def get_duration_catalog(self) -> list[int]:
        """Sorted distinct bundle durations in days."""
        ...


class ProviderSelectionSource(Protocol):
    """Port for live provider availability."""

    async def get_available_providers(self) -> list[str]:
        """Providers currently able to fulfil orders."""
        ...
