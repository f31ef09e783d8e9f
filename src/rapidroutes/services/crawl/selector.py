"""Market-diverse pairing of pickup and delivery candidates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from ...config import settings
from ...data.cities_repository import CityCatalog, require_city
from ...errors import CatalogUnavailable, CityNotFound
from ...models.domain import (
    AnchorRole,
    Candidate,
    CityQuery,
    CityRecord,
    FallbackStage,
    Pair,
    ResultSet,
    StageReport,
    normalize_token,
)
from ...models.request_context import RequestContext
from .candidates import CandidateFinder

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UsageLedger:
    """Cities, markets and pair identities already consumed in one result set."""

    pickup_markets: set[str] = field(default_factory=set)
    delivery_markets: set[str] = field(default_factory=set)
    pickup_cities: set[tuple[str, str]] = field(default_factory=set)
    delivery_cities: set[tuple[str, str]] = field(default_factory=set)
    pair_identities: set[tuple[tuple[str, str], tuple[str, str]]] = field(default_factory=set)

    def record(self, pair: Pair) -> None:
        if pair.pickup_market:
            self.pickup_markets.add(normalize_token(pair.pickup_market))
        if pair.delivery_market:
            self.delivery_markets.add(normalize_token(pair.delivery_market))
        self.pickup_cities.add(pair.pickup.identity)
        self.delivery_cities.add(pair.delivery.identity)
        self.pair_identities.add(pair.identity)

    def markets_for(self, role: AnchorRole) -> set[str]:
        return self.pickup_markets if role is AnchorRole.PICKUP else self.delivery_markets

    def cities_for(self, role: AnchorRole) -> set[tuple[str, str]]:
        return self.pickup_cities if role is AnchorRole.PICKUP else self.delivery_cities


def pair_limits(target_min_pairs: int, prefer_fill_to_max: bool, max_pairs: int) -> tuple[int, int]:
    """Return (target, limit): the guaranteed minimum and the ceiling the diverse passes fill to."""

    target = max(1, int(target_min_pairs))
    ceiling = max(int(max_pairs), target)
    return target, ceiling if prefer_fill_to_max else target


def distinct_market_pool(
    candidates: Iterable[Candidate],
    used_markets: set[str],
    used_cities: set[tuple[str, str]],
) -> list[Candidate]:
    """Keep the nearest unused city of every market not yet used on this side."""

    pool: list[Candidate] = []
    seen = set(used_markets)
    for candidate in candidates:
        market = normalize_token(candidate.market_code)
        if not market or market in seen or candidate.identity in used_cities:
            continue
        seen.add(market)
        pool.append(candidate)
    return pool


def unused_city_pool(candidates: Iterable[Candidate], used_cities: set[tuple[str, str]]) -> list[Candidate]:
    pool: list[Candidate] = []
    seen = set(used_cities)
    for candidate in candidates:
        if candidate.identity in seen:
            continue
        seen.add(candidate.identity)
        pool.append(candidate)
    return pool


def pair_candidates(
    pickups: Sequence[Candidate],
    deliveries: Sequence[Candidate],
    limit: int,
    ledger: UsageLedger,
    *,
    stage: FallbackStage,
) -> list[Pair]:
    """Walk both pools nearest first and pair each pickup with the next compatible delivery.

    A delivery that would form a self pair or a repeated pair is left in place
    for the next pickup; a pickup with no compatible delivery is dropped.
    """
    pairs: list[Pair] = []
    remaining = list(deliveries)
    for pickup in pickups:
        if len(pairs) >= limit or not remaining:
            break
        match_index: Optional[int] = None
        for index, delivery in enumerate(remaining):
            if delivery.identity == pickup.identity:
                continue
            if (pickup.identity, delivery.identity) in ledger.pair_identities:
                continue
            match_index = index
            break
        if match_index is None:
            logger.debug(f"No compatible delivery left for pickup {pickup.city.name}, {pickup.city.region}")
            continue
        delivery = remaining.pop(match_index)
        pair = Pair(
            pickup=pickup.city,
            delivery=delivery.city,
            pickup_distance_miles=pickup.distance_miles,
            delivery_distance_miles=delivery.distance_miles,
            stage=stage,
            emergency=stage.emergency,
        )
        ledger.record(pair)
        pairs.append(pair)
    return pairs


class DiversitySelector:
    """Builds maximum-diversity, minimum-distance pairs around a base lane."""

    def __init__(self, catalog: CityCatalog, finder: Optional[CandidateFinder] = None) -> None:
        self.catalog = catalog
        self.finder = finder or CandidateFinder(catalog)

    def resolve(self, query: CityQuery, context: Optional[RequestContext] = None) -> CityRecord:
        """Resolve a caller's city through the catalog, synthesizing a stand-in on a miss."""

        try:
            return require_city(self.catalog, query.name, query.region, context=context)
        except CityNotFound:
            logger.info(f"{query.name}, {query.region} not in catalog; using synthetic record")
        except CatalogUnavailable as exc:
            logger.warning(f"Catalog lookup failed for {query.name}, {query.region}: {exc}")
            if context is not None:
                context.record_catalog_error()
        return CityRecord.synthesize(query)

    def diverse_pass(
        self,
        origin: CityRecord,
        destination: CityRecord,
        radius_miles: float,
        limit: int,
        ledger: UsageLedger,
        *,
        stage: FallbackStage = FallbackStage.DIVERSE_OK,
        context: Optional[RequestContext] = None,
    ) -> list[Pair]:
        """Add up to `limit` pairs whose markets are unused on their side."""

        if limit <= 0:
            return []
        pickups = self.finder.find_candidates(
            origin,
            radius_miles,
            AnchorRole.PICKUP,
            anchor_market=origin.market_code,
            exclude_identities=ledger.pickup_cities,
            context=context,
        )
        deliveries = self.finder.find_candidates(
            destination,
            radius_miles,
            AnchorRole.DELIVERY,
            anchor_market=destination.market_code,
            exclude_identities=ledger.delivery_cities,
            context=context,
        )
        logger.debug(f"{stage.value} at {radius_miles:.0f}mi: {len(pickups)} pickups, {len(deliveries)} deliveries")
        return self.select(pickups, deliveries, limit, ledger, stage=stage)

    def select(
        self,
        pickups: Sequence[Candidate],
        deliveries: Sequence[Candidate],
        limit: int,
        used: UsageLedger,
        *,
        stage: FallbackStage = FallbackStage.DIVERSE_OK,
    ) -> list[Pair]:
        """Pair the nearest city of each unused market on both sides, up to `limit`."""

        pickup_pool = distinct_market_pool(pickups, used.pickup_markets, used.pickup_cities)
        delivery_pool = distinct_market_pool(deliveries, used.delivery_markets, used.delivery_cities)
        return pair_candidates(pickup_pool, delivery_pool, limit, used, stage=stage)

    def select_pairs(
        self,
        origin: CityQuery,
        destination: CityQuery,
        equipment: str,
        target_min_pairs: Optional[int] = None,
        prefer_fill_to_max: bool = True,
        search_radius_miles: Optional[float] = None,
        *,
        context: Optional[RequestContext] = None,
    ) -> ResultSet:
        """Run the diverse pass only; the result may be under target."""

        target, limit = pair_limits(
            target_min_pairs or settings.target_min_pairs, prefer_fill_to_max, settings.max_pairs
        )
        radius = search_radius_miles or settings.default_search_radius_miles
        base_origin = self.resolve(origin, context)
        base_destination = self.resolve(destination, context)
        pairs = self.diverse_pass(base_origin, base_destination, radius, limit, UsageLedger(), context=context)
        return ResultSet(
            base_origin=base_origin,
            base_destination=base_destination,
            equipment=equipment,
            pairs=pairs,
            stage=FallbackStage.DIVERSE_OK,
            stages=[StageReport(FallbackStage.DIVERSE_OK, len(pairs), radius)],
            target_min_pairs=target,
            degraded=context.degraded if context is not None else False,
        )
