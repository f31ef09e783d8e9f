"""Domain models for catalog cities, crawl candidates and generated pairs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


def normalize_token(value: Optional[str]) -> str:
    return " ".join((value or "").split()).lower()


def city_identity(name: Optional[str], region: Optional[str]) -> tuple[str, str]:
    """Case-insensitive identity used to compare and deduplicate cities."""

    return normalize_token(name), normalize_token(region)


class AnchorRole(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class FallbackStage(str, Enum):
    """Stages of the pair guarantee state machine, in escalation order."""

    DIVERSE_OK = "diverse_ok"
    WIDEN_RADIUS = "widen_radius"
    ALLOW_MARKET_REPEAT = "allow_market_repeat"
    DUPLICATE_BASE = "duplicate_base"

    @property
    def emergency(self) -> bool:
        return self in (FallbackStage.ALLOW_MARKET_REPEAT, FallbackStage.DUPLICATE_BASE)


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class CityQuery:
    """City name and region as supplied by a caller."""

    name: str
    region: str

    @property
    def identity(self) -> tuple[str, str]:
        return city_identity(self.name, self.region)


@dataclass(frozen=True, slots=True)
class CityRecord:
    """Catalog entry for a city; synthetic records stand in for catalog misses."""

    name: str
    region: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    market_code: Optional[str] = None
    market_name: Optional[str] = None
    postal_code: Optional[str] = None
    synthetic: bool = False

    @property
    def identity(self) -> tuple[str, str]:
        return city_identity(self.name, self.region)

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)

    @classmethod
    def synthesize(cls, query: CityQuery) -> "CityRecord":
        return cls(name=query.name.strip(), region=query.region.strip(), synthetic=True)


@dataclass(frozen=True, slots=True)
class Candidate:
    city: CityRecord
    distance_miles: float
    role: AnchorRole

    @property
    def identity(self) -> tuple[str, str]:
        return self.city.identity

    @property
    def market_code(self) -> Optional[str]:
        return self.city.market_code


@dataclass(frozen=True, slots=True)
class Pair:
    """One alternate posting: a pickup city combined with a delivery city."""

    pickup: CityRecord
    delivery: CityRecord
    pickup_distance_miles: float
    delivery_distance_miles: float
    stage: FallbackStage = FallbackStage.DIVERSE_OK
    emergency: bool = False

    @property
    def identity(self) -> tuple[tuple[str, str], tuple[str, str]]:
        return self.pickup.identity, self.delivery.identity

    @property
    def pickup_market(self) -> Optional[str]:
        return self.pickup.market_code

    @property
    def delivery_market(self) -> Optional[str]:
        return self.delivery.market_code


@dataclass(frozen=True, slots=True)
class StageReport:
    stage: FallbackStage
    pairs_added: int
    radius_miles: Optional[float] = None


@dataclass(slots=True)
class ResultSet:
    """Pairs generated for one base lane plus diversity metadata."""

    base_origin: CityRecord
    base_destination: CityRecord
    equipment: str
    pairs: list[Pair] = field(default_factory=list)
    stage: FallbackStage = FallbackStage.DIVERSE_OK
    stages: list[StageReport] = field(default_factory=list)
    target_min_pairs: int = 0
    degraded: bool = False

    @property
    def under_target(self) -> bool:
        return len(self.pairs) < self.target_min_pairs

    @property
    def unique_pickup_markets(self) -> int:
        return len({pair.pickup_market for pair in self.pairs if pair.pickup_market})

    @property
    def unique_delivery_markets(self) -> int:
        return len({pair.delivery_market for pair in self.pairs if pair.delivery_market})

    @property
    def emergency(self) -> bool:
        return any(pair.emergency for pair in self.pairs)

    @property
    def fallback(self) -> bool:
        return self.stage is not FallbackStage.DIVERSE_OK

    def diversity(self) -> dict[str, int]:
        return {
            "unique_pickup_markets": self.unique_pickup_markets,
            "unique_delivery_markets": self.unique_delivery_markets,
        }
