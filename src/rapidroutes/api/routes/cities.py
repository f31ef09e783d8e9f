"""City catalog endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...data import cities_repository
from ...errors import CatalogUnavailable, CityNotFound, InvalidCoordinate
from ...models.domain import AnchorRole, Coordinate
from ...schemas.cities import CandidateModel, NearbyCitiesResponse
from ...schemas.pairs import CityModel

router = APIRouter(prefix="/cities", tags=["cities"])


@router.get("/lookup", response_model=CityModel)
def lookup_city(
    name: str = Query(..., min_length=1),
    region: str = Query(..., min_length=1),
) -> CityModel:
    catalog = cities_repository.get_city_catalog()
    try:
        record = cities_repository.require_city(catalog, name, region)
    except CityNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except CatalogUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return CityModel.from_domain(record)


@router.get("/nearby", response_model=NearbyCitiesResponse)
def nearby_cities(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lng: float = Query(..., ge=-180.0, le=180.0),
    radius_miles: float = Query(75.0, gt=0.0, le=500.0),
    exclude_market: Optional[str] = Query(None),
) -> NearbyCitiesResponse:
    """Catalog radius search, used to explain why a lane produced the pairs it did."""
    catalog = cities_repository.get_city_catalog()
    try:
        candidates = catalog.find_within_radius(
            Coordinate(lat, lng), radius_miles, exclude_market, role=AnchorRole.PICKUP
        )
    except InvalidCoordinate as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except CatalogUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return NearbyCitiesResponse(
        latitude=lat,
        longitude=lng,
        radius_miles=radius_miles,
        total=len(candidates),
        unique_markets=len({candidate.market_code for candidate in candidates}),
        items=[CandidateModel.from_domain(candidate) for candidate in candidates],
    )
