"""High-level orchestration for pair generation requests."""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Optional

from ...config import settings
from ...data.cities_repository import CityCatalog, clear_city_catalog_cache, get_city_catalog
from ...errors import CatalogTimeout, CrawlCancelled
from ...models.domain import CityQuery, ResultSet
from ...models.request_context import RequestContext
from ...schemas.pairs import PairOptions
from .cache import CacheKey, ResultCache, SingleFlight, build_result_cache, detach, make_cache_key
from .guarantee import GuaranteePolicy
from .selector import DiversitySelector, pair_limits

logger = logging.getLogger(__name__)


class CrawlEngine:
    """Entry point used by the export pipeline: lane in, guaranteed pair list out."""

    def __init__(
        self,
        catalog: CityCatalog,
        cache: Optional[ResultCache] = None,
        policy: Optional[GuaranteePolicy] = None,
    ) -> None:
        self.catalog = catalog
        self.cache = cache if cache is not None else build_result_cache()
        self.selector = policy.selector if policy is not None else DiversitySelector(catalog)
        self.policy = policy or GuaranteePolicy(self.selector)
        self._single_flight = SingleFlight()

    def generate_pairs(
        self,
        origin: CityQuery,
        destination: CityQuery,
        equipment: str,
        options: Optional[PairOptions] = None,
        *,
        timeout_seconds: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ResultSet:
        """Return at least `options.target_min_pairs` pairs for the lane.

        Catalog failures degrade the result instead of raising; only
        caller-initiated cancellation (`cancel_event`) propagates as
        CrawlCancelled. Concurrent callers for the same lane share one build,
        but each keeps its own cancellation and deadline: when the shared build
        is cancelled by its leader the others retry, and a follower whose
        deadline runs out stops waiting.
        """
        options = options or PairOptions()
        target, limit = pair_limits(options.target_min_pairs, options.prefer_fill_to_max, settings.max_pairs)
        key = make_cache_key(
            origin,
            destination,
            equipment,
            target_min_pairs=target,
            limit=limit,
            search_radius_miles=options.search_radius_miles,
        )

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        context = RequestContext.with_timeout(
            timeout_seconds if timeout_seconds is not None else settings.catalog_timeout_seconds,
            cancel_event,
        )
        retry_degraded = True
        while True:
            led: list[CacheKey] = []

            def build() -> ResultSet:
                led.append(key)
                return self._build(key, origin, destination, equipment, target, limit, options, context)

            try:
                result = self._single_flight.do(key, build, context)
            except CrawlCancelled:
                if context.cancelled:
                    raise
                logger.info(f"Shared build for {key} was cancelled by another caller; retrying")
                continue
            except CatalogTimeout:
                logger.warning(f"Deadline expired waiting on shared build for {key}; building alone")
                result = self._build(key, origin, destination, equipment, target, limit, options, context)
                return detach(result)

            if result.degraded and not led and retry_degraded and context.remaining() != 0.0:
                # Degraded under another caller's deadline; this caller still has time.
                retry_degraded = False
                logger.info(f"Shared build for {key} was degraded; retrying under this request's deadline")
                continue
            return detach(result)

    def _build(
        self,
        key: CacheKey,
        origin: CityQuery,
        destination: CityQuery,
        equipment: str,
        target: int,
        limit: int,
        options: PairOptions,
        context: RequestContext,
    ) -> ResultSet:
        # Another request may have stored this lane while we waited to lead.
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        base_origin = self.selector.resolve(origin, context)
        base_destination = self.selector.resolve(destination, context)
        result = self.policy.run(
            base_origin,
            base_destination,
            equipment.strip(),
            target_min_pairs=target,
            limit=limit,
            search_radius_miles=options.search_radius_miles,
            context=context,
        )
        logger.info(
            f"Generated {len(result.pairs)} pairs for {base_origin.name}, {base_origin.region} -> "
            f"{base_destination.name}, {base_destination.region} ({equipment}); stage={result.stage.value} "
            f"pickup_markets={result.unique_pickup_markets} delivery_markets={result.unique_delivery_markets}"
        )

        if result.emergency or result.degraded:
            logger.info(f"Not caching {key}: emergency={result.emergency} degraded={result.degraded}")
        else:
            self.cache.put(key, result)
        return result

    def invalidate(self) -> None:
        """Drop cached results; call after the city catalog changes."""

        self.cache.invalidate()


@lru_cache(maxsize=1)
def get_engine() -> CrawlEngine:
    return CrawlEngine(get_city_catalog())


def generate_pairs(
    origin: CityQuery,
    destination: CityQuery,
    equipment: str,
    options: Optional[PairOptions] = None,
    **kwargs,
) -> ResultSet:
    return get_engine().generate_pairs(origin, destination, equipment, options, **kwargs)


def invalidate_all() -> None:
    """Clear the result cache and catalog loaders, then rebuild the engine on next use."""

    get_engine().invalidate()
    clear_city_catalog_cache()
    get_engine.cache_clear()
