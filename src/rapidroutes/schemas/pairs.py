"""Pydantic request/response models for pair generation endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..config import settings
from ..models.domain import CityQuery, CityRecord, FallbackStage, Pair, ResultSet, StageReport


class CityQueryModel(BaseModel):
    name: str = Field(..., min_length=1, description="City name, e.g. 'Chicago'.")
    region: str = Field(..., min_length=1, description="State or province code, e.g. 'IL'.")

    @field_validator("name", "region")
    @classmethod
    def strip_value(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    def to_query(self) -> CityQuery:
        return CityQuery(name=self.name, region=self.region)


class PairOptions(BaseModel):
    target_min_pairs: int = Field(
        default_factory=lambda: settings.target_min_pairs,
        ge=1,
        le=50,
        description="Pairs guaranteed in every result (defaults to RR_TARGET_MIN_PAIRS).",
    )
    prefer_fill_to_max: bool = Field(default=True, description="Fill diverse pairs up to the configured ceiling.")
    search_radius_miles: float = Field(
        default_factory=lambda: settings.default_search_radius_miles,
        gt=0.0,
        le=500.0,
        description="Default-stage search radius (defaults to RR_DEFAULT_SEARCH_RADIUS_MILES).",
    )


class PairRequest(BaseModel):
    origin: CityQueryModel
    destination: CityQueryModel
    equipment: str = Field(..., min_length=1, description="Equipment class code, e.g. 'V' or 'FD'.")
    options: PairOptions = Field(default_factory=PairOptions)


class CityModel(BaseModel):
    """Serialized CityRecord; also used as the cache wire format."""

    name: str
    region: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    market_code: Optional[str] = None
    market_name: Optional[str] = None
    postal_code: Optional[str] = None
    synthetic: bool = False

    @classmethod
    def from_domain(cls, record: CityRecord) -> "CityModel":
        return cls(
            name=record.name,
            region=record.region,
            latitude=record.latitude,
            longitude=record.longitude,
            market_code=record.market_code,
            market_name=record.market_name,
            postal_code=record.postal_code,
            synthetic=record.synthetic,
        )

    def to_domain(self) -> CityRecord:
        return CityRecord(**self.model_dump())


class PairEndpointModel(BaseModel):
    name: str
    region: str
    postal_code: Optional[str] = None
    market_code: Optional[str] = None
    distance_miles: float


class PairModel(BaseModel):
    pickup: PairEndpointModel
    delivery: PairEndpointModel
    stage: FallbackStage
    emergency: bool

    @classmethod
    def from_domain(cls, pair: Pair) -> "PairModel":
        return cls(
            pickup=PairEndpointModel(
                name=pair.pickup.name,
                region=pair.pickup.region,
                postal_code=pair.pickup.postal_code,
                market_code=pair.pickup.market_code,
                distance_miles=round(pair.pickup_distance_miles, 1),
            ),
            delivery=PairEndpointModel(
                name=pair.delivery.name,
                region=pair.delivery.region,
                postal_code=pair.delivery.postal_code,
                market_code=pair.delivery.market_code,
                distance_miles=round(pair.delivery_distance_miles, 1),
            ),
            stage=pair.stage,
            emergency=pair.emergency,
        )


class DiversityModel(BaseModel):
    unique_pickup_markets: int
    unique_delivery_markets: int


class StageReportModel(BaseModel):
    stage: FallbackStage
    pairs_added: int
    radius_miles: Optional[float] = None


class PairResponse(BaseModel):
    base_origin: CityModel
    base_dest: CityModel
    equipment: str
    pairs: list[PairModel]
    diversity: DiversityModel
    emergency: bool
    fallback: bool
    degraded: bool
    stage: FallbackStage
    stages: list[StageReportModel]

    @classmethod
    def from_result(cls, result: ResultSet) -> "PairResponse":
        return cls(
            base_origin=CityModel.from_domain(result.base_origin),
            base_dest=CityModel.from_domain(result.base_destination),
            equipment=result.equipment,
            pairs=[PairModel.from_domain(pair) for pair in result.pairs],
            diversity=DiversityModel(**result.diversity()),
            emergency=result.emergency,
            fallback=result.fallback,
            degraded=result.degraded,
            stage=result.stage,
            stages=[
                StageReportModel(stage=report.stage, pairs_added=report.pairs_added, radius_miles=report.radius_miles)
                for report in result.stages
            ],
        )


class StoredPair(BaseModel):
    pickup: CityModel
    delivery: CityModel
    pickup_distance_miles: float
    delivery_distance_miles: float
    stage: FallbackStage
    emergency: bool


class StoredResultSet(BaseModel):
    """Lossless serialization of a ResultSet for shared caches."""

    base_origin: CityModel
    base_destination: CityModel
    equipment: str
    pairs: list[StoredPair]
    stage: FallbackStage
    stages: list[StageReportModel]
    target_min_pairs: int
    degraded: bool

    @classmethod
    def from_domain(cls, result: ResultSet) -> "StoredResultSet":
        return cls(
            base_origin=CityModel.from_domain(result.base_origin),
            base_destination=CityModel.from_domain(result.base_destination),
            equipment=result.equipment,
            pairs=[
                StoredPair(
                    pickup=CityModel.from_domain(pair.pickup),
                    delivery=CityModel.from_domain(pair.delivery),
                    pickup_distance_miles=pair.pickup_distance_miles,
                    delivery_distance_miles=pair.delivery_distance_miles,
                    stage=pair.stage,
                    emergency=pair.emergency,
                )
                for pair in result.pairs
            ],
            stage=result.stage,
            stages=[
                StageReportModel(stage=report.stage, pairs_added=report.pairs_added, radius_miles=report.radius_miles)
                for report in result.stages
            ],
            target_min_pairs=result.target_min_pairs,
            degraded=result.degraded,
        )

    def to_domain(self) -> ResultSet:
        return ResultSet(
            base_origin=self.base_origin.to_domain(),
            base_destination=self.base_destination.to_domain(),
            equipment=self.equipment,
            pairs=[
                Pair(
                    pickup=pair.pickup.to_domain(),
                    delivery=pair.delivery.to_domain(),
                    pickup_distance_miles=pair.pickup_distance_miles,
                    delivery_distance_miles=pair.delivery_distance_miles,
                    stage=pair.stage,
                    emergency=pair.emergency,
                )
                for pair in self.pairs
            ],
            stage=self.stage,
            stages=[
                StageReport(stage=report.stage, pairs_added=report.pairs_added, radius_miles=report.radius_miles)
                for report in self.stages
            ],
            target_min_pairs=self.target_min_pairs,
            degraded=self.degraded,
        )
