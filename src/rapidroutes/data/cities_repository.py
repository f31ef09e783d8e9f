"""Data access helpers for the city catalog (Supabase first, CSV export as fallback)."""

from __future__ import annotations

import csv
import functools
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from ..config import settings
from ..db.supabase import get_supabase_client
from ..errors import CatalogUnavailable, CityNotFound
from ..models.domain import AnchorRole, Candidate, CityRecord, Coordinate, city_identity, normalize_token
from ..models.request_context import RequestContext
from ..services.geospatial import bounding_box, haversine_miles, in_bounding_box, is_valid_coordinate

CITY_COLUMNS = "city, state_or_province, zip, latitude, longitude, kma_code, kma_name"

logger = logging.getLogger(__name__)


class CityCatalog(Protocol):
    """Read-only lookup surface over the city records."""

    def find_exact(
        self, name: str, region: str, context: Optional[RequestContext] = None
    ) -> Optional[CityRecord]:
        ...

    def find_all_with_coordinates(self) -> Iterator[CityRecord]:
        ...

    def find_within_radius(
        self,
        center: Coordinate,
        radius_miles: float,
        exclude_market: Optional[str] = None,
        *,
        role: AnchorRole = AnchorRole.PICKUP,
        context: Optional[RequestContext] = None,
    ) -> list[Candidate]:
        ...


def _coerce_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        logger.debug(f"Ignoring non-numeric coordinate value '{value}'")
        return None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def row_to_record(row: Mapping[str, Any]) -> Optional[CityRecord]:
    """Build a CityRecord from a `cities` table row; returns None when name or region is missing."""

    lowered = {str(key).strip().lower(): value for key, value in row.items() if key is not None}
    name = _clean(_first(lowered, "city", "name"))
    region = _clean(_first(lowered, "state_or_province", "state", "region"))
    if not name or not region:
        return None
    return CityRecord(
        name=name,
        region=region,
        latitude=_coerce_float(_first(lowered, "latitude", "lat")),
        longitude=_coerce_float(_first(lowered, "longitude", "lng", "lon")),
        market_code=_clean(_first(lowered, "kma_code", "market_code")),
        market_name=_clean(_first(lowered, "kma_name", "market_name")),
        postal_code=_clean(_first(lowered, "zip", "postal_code")),
    )


def _canonical_key(item: tuple[int, CityRecord]) -> tuple:
    index, record = item
    postal = record.postal_code or ""
    return (*record.identity, postal == "", postal, index)


def pick_canonical(records: Iterable[CityRecord]) -> Optional[CityRecord]:
    """Choose one record among duplicates: lowest postal code, missing postal codes last, then load order."""

    ranked = sorted(enumerate(records), key=_canonical_key)
    return ranked[0][1] if ranked else None


def dedupe_records(records: Iterable[CityRecord]) -> tuple[CityRecord, ...]:
    """Collapse duplicate (name, region) rows to their canonical record, keeping first-seen order."""

    groups: dict[tuple[str, str], list[CityRecord]] = {}
    for record in records:
        groups.setdefault(record.identity, []).append(record)
    return tuple(pick_canonical(group) for group in groups.values())


def _is_candidate(record: CityRecord) -> bool:
    return bool(record.market_code) and is_valid_coordinate(record.coordinate)


def _candidate_sort_key(candidate: Candidate) -> tuple[float, str, str]:
    name, region = candidate.identity
    return candidate.distance_miles, name, region


def build_candidates(
    records: Iterable[CityRecord],
    center: Coordinate,
    radius_miles: float,
    exclude_market: Optional[str] = None,
    role: AnchorRole = AnchorRole.PICKUP,
    box: Optional[tuple[float, float, float, float]] = None,
) -> list[Candidate]:
    """Distance-annotate records inside the radius, sorted nearest first."""

    excluded = normalize_token(exclude_market) if exclude_market else None
    candidates: list[Candidate] = []
    for record in records:
        if not _is_candidate(record):
            continue
        if excluded and normalize_token(record.market_code) == excluded:
            continue
        coordinate = record.coordinate
        if box is not None and not in_bounding_box(coordinate, box):
            continue
        distance = haversine_miles(center, coordinate)
        if distance <= radius_miles:
            candidates.append(Candidate(city=record, distance_miles=distance, role=role))
    candidates.sort(key=_candidate_sort_key)
    return candidates


class InMemoryCityCatalog:
    """Catalog over records held in memory (CSV exports and tests)."""

    def __init__(self, records: Iterable[CityRecord]) -> None:
        self._records = dedupe_records(records)
        self._by_identity = {record.identity: record for record in self._records}
        self._located = tuple(record for record in self._records if _is_candidate(record))

    def __len__(self) -> int:
        return len(self._records)

    def find_exact(
        self, name: str, region: str, context: Optional[RequestContext] = None
    ) -> Optional[CityRecord]:
        if context is not None:
            context.check("exact city lookup")
        return self._by_identity.get(city_identity(name, region))

    def find_all_with_coordinates(self) -> Iterator[CityRecord]:
        for record in self._records:
            if is_valid_coordinate(record.coordinate):
                yield record

    def find_within_radius(
        self,
        center: Coordinate,
        radius_miles: float,
        exclude_market: Optional[str] = None,
        *,
        role: AnchorRole = AnchorRole.PICKUP,
        context: Optional[RequestContext] = None,
    ) -> list[Candidate]:
        if context is not None:
            context.check("radius search")
        box = bounding_box(center, radius_miles)
        return build_candidates(self._located, center, radius_miles, exclude_market, role, box=box)


def _escape_like(value: str) -> str:
    return " ".join(value.split()).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupabaseCityCatalog:
    """Catalog backed by the Supabase `cities` table."""

    def __init__(
        self,
        client: Client,
        table: Optional[str] = None,
        query_limit: Optional[int] = None,
    ) -> None:
        self.client = client
        self.table = table or settings.cities_table
        self.query_limit = query_limit or settings.catalog_query_limit

    def _execute(self, query, operation: str, context: Optional[RequestContext]) -> list[dict]:
        if context is not None:
            context.check(operation)
        try:
            response = query.execute()
        except (APIError, httpx.HTTPError) as exc:
            raise CatalogUnavailable(f"Supabase {operation} failed: {exc}") from exc
        return list(response.data or [])

    def _records(self, rows: Sequence[Mapping[str, Any]]) -> list[CityRecord]:
        records = []
        for row in rows:
            record = row_to_record(row)
            if record is None:
                logger.warning(f"Skipping city row without name or region: {row}")
                continue
            records.append(record)
        return records

    def find_exact(
        self, name: str, region: str, context: Optional[RequestContext] = None
    ) -> Optional[CityRecord]:
        query = (
            self.client.table(self.table)
            .select(CITY_COLUMNS)
            .ilike("city", _escape_like(name))
            .ilike("state_or_province", _escape_like(region))
        )
        rows = self._execute(query, "exact city lookup", context)
        wanted = city_identity(name, region)
        matches = [record for record in self._records(rows) if record.identity == wanted]
        return pick_canonical(matches)

    def find_all_with_coordinates(self) -> Iterator[CityRecord]:
        start = 0
        while True:
            query = (
                self.client.table(self.table)
                .select(CITY_COLUMNS)
                .not_.is_("latitude", "null")
                .not_.is_("longitude", "null")
                .order("city")
                .order("state_or_province")
                .order("zip")
                .range(start, start + self.query_limit - 1)
            )
            rows = self._execute(query, "catalog scan", None)
            for record in self._records(rows):
                if is_valid_coordinate(record.coordinate):
                    yield record
            if len(rows) < self.query_limit:
                break
            start += self.query_limit

    def find_within_radius(
        self,
        center: Coordinate,
        radius_miles: float,
        exclude_market: Optional[str] = None,
        *,
        role: AnchorRole = AnchorRole.PICKUP,
        context: Optional[RequestContext] = None,
    ) -> list[Candidate]:
        box = bounding_box(center, radius_miles)
        rows: list[dict] = []
        start = 0
        # Page through the whole box; a single capped query would return an arbitrary subset.
        while True:
            query = self._box_query(box).range(start, start + self.query_limit - 1)
            page = self._execute(query, "radius search", context)
            rows.extend(page)
            if len(page) < self.query_limit:
                break
            start += self.query_limit
        if start:
            logger.debug(
                f"Radius search around ({center.latitude}, {center.longitude}) read {len(rows)} rows "
                f"in {start // self.query_limit + 1} pages"
            )
        records = dedupe_records(self._records(rows))
        return build_candidates(records, center, radius_miles, exclude_market, role)

    def _box_query(self, box: tuple[float, float, float, float]):
        lat_min, lat_max, lon_min, lon_max = box
        query = (
            self.client.table(self.table)
            .select(CITY_COLUMNS)
            .gte("latitude", lat_min)
            .lte("latitude", lat_max)
            .not_.is_("kma_code", "null")
        )
        if (lon_min, lon_max) != (-180.0, 180.0):
            query = query.gte("longitude", lon_min).lte("longitude", lon_max)
        # Total order so consecutive pages neither overlap nor skip rows.
        return (
            query.order("latitude")
            .order("longitude")
            .order("city")
            .order("state_or_province")
            .order("zip")
        )


@functools.lru_cache(maxsize=4)
def load_cities(source: Optional[Path] = None) -> tuple[CityRecord, ...]:
    """Load city records from the configured CSV export of the `cities` table."""

    csv_path = source or settings.city_catalog_file
    if not csv_path.exists():
        raise FileNotFoundError(f"City catalog file not found: {csv_path}")

    records: list[CityRecord] = []
    with csv_path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"City catalog file '{csv_path}' is missing a header row.")
        for row in reader:
            record = row_to_record(row)
            if record is None:
                continue  # ignore rows without a city name or region
            records.append(record)
    logger.info(f"Loaded {len(records)} city rows from {csv_path}")
    return tuple(records)


@functools.lru_cache(maxsize=1)
def get_city_catalog() -> CityCatalog:
    """Get the configured catalog: Supabase when available, the CSV export otherwise."""

    if settings.catalog_source in ("auto", "supabase"):
        client = get_supabase_client()
        if client is not None:
            return SupabaseCityCatalog(client)
        if settings.catalog_source == "supabase":
            logger.warning("Supabase catalog requested but not configured, falling back to CSV file")

    if settings.city_catalog_file.exists():
        return InMemoryCityCatalog(load_cities())

    logger.warning(
        f"No city catalog available (Supabase not configured, {settings.city_catalog_file} missing); "
        "pair generation will only duplicate base lanes"
    )
    return InMemoryCityCatalog(())


def clear_city_catalog_cache() -> None:
    """Clear the catalog loader caches. Call this after the cities table changes."""

    load_cities.cache_clear()
    get_city_catalog.cache_clear()


def require_city(
    catalog: CityCatalog, name: str, region: str, context: Optional[RequestContext] = None
) -> CityRecord:
    """Exact lookup that raises CityNotFound instead of returning None."""

    record = catalog.find_exact(name, region, context=context)
    if record is None:
        raise CityNotFound(name, region)
    return record
