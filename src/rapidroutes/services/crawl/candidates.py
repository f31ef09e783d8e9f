"""Candidate lookup around a pickup or delivery anchor."""

from __future__ import annotations

import logging
from typing import Collection, Optional

from ...data.cities_repository import CityCatalog
from ...errors import CatalogUnavailable, InvalidCoordinate
from ...models.domain import AnchorRole, Candidate, CityRecord
from ...models.request_context import RequestContext

logger = logging.getLogger(__name__)


class CandidateFinder:
    """Wraps catalog radius searches so failures degrade to an empty pool."""

    def __init__(self, catalog: CityCatalog) -> None:
        self.catalog = catalog

    def find_candidates(
        self,
        anchor: CityRecord,
        radius_miles: float,
        role: AnchorRole,
        *,
        anchor_market: Optional[str] = None,
        exclude_identities: Collection[tuple[str, str]] = (),
        context: Optional[RequestContext] = None,
    ) -> list[Candidate]:
        """Return candidates within `radius_miles` of the anchor, nearest first.

        `anchor_market` is excluded when given (diversity passes). Cities in
        `exclude_identities` never appear. Synthetic anchors, invalid
        coordinates and catalog failures all yield an empty list.
        """
        coordinate = anchor.coordinate
        if anchor.synthetic or coordinate is None:
            return []

        try:
            candidates = self.catalog.find_within_radius(
                coordinate,
                radius_miles,
                anchor_market,
                role=role,
                context=context,
            )
        except InvalidCoordinate as exc:
            logger.warning(f"Skipping {role.value} search around {anchor.name}, {anchor.region}: {exc}")
            return []
        except CatalogUnavailable as exc:
            logger.warning(
                f"Catalog unavailable for {role.value} search around {anchor.name}, {anchor.region} "
                f"({radius_miles:.0f}mi): {exc}"
            )
            if context is not None:
                context.record_catalog_error()
            return []

        excluded = set(exclude_identities)
        excluded.add(anchor.identity)
        result = [candidate for candidate in candidates if candidate.identity not in excluded]
        logger.debug(
            f"{role.value} candidates around {anchor.name}, {anchor.region} within {radius_miles:.0f}mi: {len(result)}"
        )
        return result
