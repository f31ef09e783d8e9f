"""Staged relaxation that guarantees a minimum pair count for every lane."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ...config import settings
from ...models.domain import (
    AnchorRole,
    CityRecord,
    FallbackStage,
    Pair,
    ResultSet,
    StageReport,
)
from ...models.request_context import RequestContext
from .selector import DiversitySelector, UsageLedger, pair_candidates, unused_city_pool

logger = logging.getLogger(__name__)

_NEXT_STAGE = {
    FallbackStage.DIVERSE_OK: FallbackStage.WIDEN_RADIUS,
    FallbackStage.WIDEN_RADIUS: FallbackStage.ALLOW_MARKET_REPEAT,
    FallbackStage.ALLOW_MARKET_REPEAT: FallbackStage.DUPLICATE_BASE,
}


class GuaranteePolicy:
    """State machine DIVERSE_OK -> WIDEN_RADIUS -> ALLOW_MARKET_REPEAT -> DUPLICATE_BASE.

    A stage runs only while the result is below the target minimum, and each
    stage only appends to the pairs accepted before it.
    """

    def __init__(
        self,
        selector: DiversitySelector,
        widen_multipliers: Optional[Sequence[float]] = None,
    ) -> None:
        self.selector = selector
        multipliers = settings.widen_radius_multipliers if widen_multipliers is None else widen_multipliers
        self.widen_multipliers = tuple(sorted(multipliers))

    def run(
        self,
        origin: CityRecord,
        destination: CityRecord,
        equipment: str,
        *,
        target_min_pairs: int,
        limit: int,
        search_radius_miles: float,
        context: Optional[RequestContext] = None,
    ) -> ResultSet:
        result = ResultSet(
            base_origin=origin,
            base_destination=destination,
            equipment=equipment,
            target_min_pairs=target_min_pairs,
        )
        ledger = UsageLedger()
        stage = FallbackStage.DIVERSE_OK
        while True:
            result.stage = stage
            self._run_stage(stage, result, ledger, limit, search_radius_miles, context)
            if len(result.pairs) >= target_min_pairs or stage is FallbackStage.DUPLICATE_BASE:
                break
            next_stage = _NEXT_STAGE[stage]
            logger.info(
                f"{origin.name}, {origin.region} -> {destination.name}, {destination.region}: "
                f"{len(result.pairs)}/{target_min_pairs} pairs after {stage.value}, escalating to {next_stage.value}"
            )
            stage = next_stage

        result.degraded = context.degraded if context is not None else False
        return result

    def _run_stage(
        self,
        stage: FallbackStage,
        result: ResultSet,
        ledger: UsageLedger,
        limit: int,
        radius: float,
        context: Optional[RequestContext],
    ) -> None:
        match stage:
            case FallbackStage.DIVERSE_OK:
                self._diverse(stage, result, ledger, limit, radius, context)
            case FallbackStage.WIDEN_RADIUS:
                for multiplier in self.widen_multipliers:
                    if len(result.pairs) >= result.target_min_pairs:
                        break
                    self._diverse(stage, result, ledger, limit, radius * multiplier, context)
            case FallbackStage.ALLOW_MARKET_REPEAT:
                self._market_repeat(result, ledger, self._widest_radius(radius), context)
            case FallbackStage.DUPLICATE_BASE:
                self._duplicate_base(result)

    def _widest_radius(self, radius: float) -> float:
        return radius * self.widen_multipliers[-1] if self.widen_multipliers else radius

    def _diverse(
        self,
        stage: FallbackStage,
        result: ResultSet,
        ledger: UsageLedger,
        limit: int,
        radius: float,
        context: Optional[RequestContext],
    ) -> None:
        added = self.selector.diverse_pass(
            result.base_origin,
            result.base_destination,
            radius,
            limit - len(result.pairs),
            ledger,
            stage=stage,
            context=context,
        )
        result.pairs.extend(added)
        result.stages.append(StageReport(stage, len(added), radius))

    def _market_repeat(
        self,
        result: ResultSet,
        ledger: UsageLedger,
        radius: float,
        context: Optional[RequestContext],
    ) -> None:
        finder = self.selector.finder
        pickups = finder.find_candidates(
            result.base_origin,
            radius,
            AnchorRole.PICKUP,
            exclude_identities=ledger.pickup_cities,
            context=context,
        )
        deliveries = finder.find_candidates(
            result.base_destination,
            radius,
            AnchorRole.DELIVERY,
            exclude_identities=ledger.delivery_cities,
            context=context,
        )
        added = pair_candidates(
            unused_city_pool(pickups, ledger.pickup_cities),
            unused_city_pool(deliveries, ledger.delivery_cities),
            result.target_min_pairs - len(result.pairs),
            ledger,
            stage=FallbackStage.ALLOW_MARKET_REPEAT,
        )
        if added:
            logger.warning(
                f"Repeating markets to reach {result.target_min_pairs} pairs for "
                f"{result.base_origin.name} -> {result.base_destination.name} ({len(added)} added)"
            )
        result.pairs.extend(added)
        result.stages.append(StageReport(FallbackStage.ALLOW_MARKET_REPEAT, len(added), radius))

    def _duplicate_base(self, result: ResultSet) -> None:
        missing = result.target_min_pairs - len(result.pairs)
        base = Pair(
            pickup=result.base_origin,
            delivery=result.base_destination,
            pickup_distance_miles=0.0,
            delivery_distance_miles=0.0,
            stage=FallbackStage.DUPLICATE_BASE,
            emergency=True,
        )
        logger.warning(
            f"Duplicating base lane {result.base_origin.name}, {result.base_origin.region} -> "
            f"{result.base_destination.name}, {result.base_destination.region} {missing} time(s)"
        )
        result.pairs.extend([base] * missing)
        result.stages.append(StageReport(FallbackStage.DUPLICATE_BASE, missing))
