from pathlib import Path

import pytest

from src.rapidroutes.data import cities_repository
from src.rapidroutes.data.cities_repository import (
    InMemoryCityCatalog,
    build_candidates,
    load_cities,
    pick_canonical,
    require_city,
    row_to_record,
)
from src.rapidroutes.errors import CatalogTimeout, CityNotFound, CrawlCancelled
from src.rapidroutes.models.domain import AnchorRole, CityRecord, Coordinate
from src.rapidroutes.models.request_context import RequestContext


def _city(name: str, lat, lon, market, region: str = "IL", postal: str | None = None) -> CityRecord:
    return CityRecord(
        name=name,
        region=region,
        latitude=lat,
        longitude=lon,
        market_code=market,
        market_name=f"{market} market" if market else None,
        postal_code=postal,
    )


@pytest.fixture(autouse=True)
def clear_catalog_cache():
    cities_repository.clear_city_catalog_cache()
    yield
    cities_repository.clear_city_catalog_cache()


def test_find_exact_is_case_insensitive():
    catalog = InMemoryCityCatalog([_city("Joliet", 41.525, -88.0817, "CHI")])

    record = catalog.find_exact("  joliet ", "il")

    assert record is not None
    assert record.name == "Joliet"
    assert catalog.find_exact("Joliet", "IN") is None


def test_duplicate_rows_resolve_to_lowest_postal_code():
    rows = [
        _city("Aurora", 41.76, -88.32, "CHI", postal="60506"),
        _city("AURORA", 41.70, -88.30, "CHI", postal="60502"),
        _city("Aurora", 41.80, -88.40, "CHI", postal=None),
    ]

    assert pick_canonical(rows).postal_code == "60502"
    catalog = InMemoryCityCatalog(rows)
    assert len(catalog) == 1
    assert catalog.find_exact("Aurora", "IL").postal_code == "60502"


def test_duplicate_rows_without_postal_codes_keep_load_order():
    first = _city("Elgin", 42.03, -88.28, "CHI")
    second = _city("Elgin", 42.00, -88.20, "RFD")

    assert pick_canonical([first, second]) is first


def test_require_city_raises_city_not_found():
    catalog = InMemoryCityCatalog([])

    with pytest.raises(CityNotFound):
        require_city(catalog, "Atlantis", "ZZ")


def test_find_within_radius_skips_rows_without_market_or_coordinates():
    center = Coordinate(41.8781, -87.6298)
    catalog = InMemoryCityCatalog(
        [
            _city("Evanston", 42.0451, -87.6877, "CHI"),
            _city("Gary", 41.5934, -87.3464, None, region="IN"),
            _city("Nowhere", None, None, "CHI"),
            _city("Broken", float("nan"), -87.6, "CHI"),
            _city("Kenosha", 42.5847, -87.8212, "MKE", region="WI"),
        ]
    )

    names = [candidate.city.name for candidate in catalog.find_within_radius(center, 75.0)]

    assert names == ["Evanston", "Kenosha"]


def test_find_within_radius_sorts_by_distance_and_excludes_market():
    center = Coordinate(41.8781, -87.6298)
    catalog = InMemoryCityCatalog(
        [
            _city("Kenosha", 42.5847, -87.8212, "MKE", region="WI"),
            _city("Evanston", 42.0451, -87.6877, "CHI"),
            _city("Rockford", 42.2711, -89.0940, "RFD"),
            _city("Peoria", 40.6936, -89.5890, "PIA"),
        ]
    )

    candidates = catalog.find_within_radius(center, 100.0, "chi", role=AnchorRole.DELIVERY)

    assert [candidate.city.name for candidate in candidates] == ["Kenosha", "Rockford"]
    assert all(candidate.role is AnchorRole.DELIVERY for candidate in candidates)
    assert all(candidate.distance_miles <= 100.0 for candidate in candidates)
    distances = [candidate.distance_miles for candidate in candidates]
    assert distances == sorted(distances)


@pytest.mark.parametrize(
    "center",
    [
        Coordinate(41.8781, -87.6298),
        Coordinate(64.8378, -147.7164),
        Coordinate(51.5, 179.6),
    ],
)
def test_bounding_box_prefilter_matches_full_scan(center):
    records = []
    for i in range(-12, 13):
        for j in range(-12, 13):
            lon = center.longitude + j * 0.25
            if lon > 180.0:
                lon -= 360.0
            records.append(_city(f"C{i}_{j}", center.latitude + i * 0.15, lon, f"M{(i * 31 + j) % 17}"))
    catalog = InMemoryCityCatalog(records)

    for radius in (25.0, 75.0, 150.0):
        expected = build_candidates(records, center, radius)
        assert catalog.find_within_radius(center, radius) == expected


def test_catalog_honours_cancellation_and_deadline():
    catalog = InMemoryCityCatalog([_city("Evanston", 42.0451, -87.6877, "CHI")])

    cancelled = RequestContext()
    cancelled.cancel()
    with pytest.raises(CrawlCancelled):
        catalog.find_exact("Evanston", "IL", context=cancelled)

    expired = RequestContext(deadline=0.0)
    with pytest.raises(CatalogTimeout):
        catalog.find_within_radius(Coordinate(41.8781, -87.6298), 75.0, context=expired)


def test_row_to_record_accepts_table_columns():
    record = row_to_record(
        {
            "city": " Joliet ",
            "state_or_province": "IL",
            "zip": "60431",
            "latitude": "41.525",
            "longitude": "-88.0817",
            "kma_code": "IL_CHI",
            "kma_name": "Chicago",
        }
    )

    assert record == CityRecord(
        name="Joliet",
        region="IL",
        latitude=41.525,
        longitude=-88.0817,
        market_code="IL_CHI",
        market_name="Chicago",
        postal_code="60431",
    )
    assert row_to_record({"city": "Joliet", "state_or_province": ""}) is None


def test_load_cities_from_csv(tmp_path: Path):
    csv_path = tmp_path / "cities.csv"
    csv_path.write_text(
        "City,State_Or_Province,Zip,Latitude,Longitude,KMA_Code,KMA_Name\n"
        "Joliet,IL,60431,41.525,-88.0817,IL_CHI,Chicago\n"
        "Gary,IN,46402,not-a-number,-87.3464,IN_GAR,Gary\n"
        ",IL,60000,41.0,-88.0,IL_CHI,Chicago\n"
        "Joliet,IL,60432,41.52,-88.08,IL_CHI,Chicago\n",
        encoding="utf-8",
    )

    records = load_cities(csv_path)

    assert [record.name for record in records] == ["Joliet", "Gary", "Joliet"]
    assert records[1].latitude is None
    catalog = InMemoryCityCatalog(records)
    assert catalog.find_exact("joliet", "il").postal_code == "60431"
    assert [record.name for record in catalog.find_all_with_coordinates()] == ["Joliet"]


def test_load_cities_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_cities(tmp_path / "missing.csv")


def test_get_city_catalog_falls_back_to_empty_catalog(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cities_repository.settings, "catalog_source", "file")
    monkeypatch.setattr(cities_repository.settings, "city_catalog_file", tmp_path / "missing.csv")

    catalog = cities_repository.get_city_catalog()

    assert isinstance(catalog, InMemoryCityCatalog)
    assert len(catalog) == 0
