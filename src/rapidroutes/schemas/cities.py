"""Pydantic response models for city catalog endpoints."""

from __future__ import annotations

from pydantic import BaseModel

from ..models.domain import Candidate
from .pairs import CityModel


class CandidateModel(BaseModel):
    city: CityModel
    distance_miles: float

    @classmethod
    def from_domain(cls, candidate: Candidate) -> "CandidateModel":
        return cls(city=CityModel.from_domain(candidate.city), distance_miles=round(candidate.distance_miles, 1))


class NearbyCitiesResponse(BaseModel):
    latitude: float
    longitude: float
    radius_miles: float
    total: int
    unique_markets: int
    items: list[CandidateModel]
