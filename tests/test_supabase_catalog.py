from types import SimpleNamespace

import httpx
import pytest

from src.rapidroutes.data.cities_repository import SupabaseCityCatalog
from src.rapidroutes.errors import CatalogUnavailable
from src.rapidroutes.models.domain import Coordinate

CHICAGO = Coordinate(41.8781, -87.6298)


def _row(city, state, lat, lng, kma, zip_code=None):
    return {
        "city": city,
        "state_or_province": state,
        "zip": zip_code,
        "latitude": lat,
        "longitude": lng,
        "kma_code": kma,
        "kma_name": kma,
    }


class FakeQuery:
    """Minimal stand-in for the postgrest query builder; records calls and returns canned rows."""

    def __init__(self, client, rows):
        self.client = client
        self.rows = rows
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name, *args))
        return self

    def select(self, columns):
        return self._record("select", columns)

    def ilike(self, column, pattern):
        return self._record("ilike", column, pattern)

    def gte(self, column, value):
        return self._record("gte", column, value)

    def lte(self, column, value):
        return self._record("lte", column, value)

    def is_(self, column, value):
        return self._record("is_", column, value)

    @property
    def not_(self):
        return self._record("not_")

    def order(self, column):
        return self._record("order", column)

    def limit(self, count):
        return self._record("limit", count)

    def range(self, start, end):
        return self._record("range", start, end)

    def execute(self):
        self.client.executed.append(self.calls)
        if self.client.error is not None:
            raise self.client.error
        if self.client.pages is not None:
            return SimpleNamespace(data=self.client.pages.pop(0) if self.client.pages else [])
        return SimpleNamespace(data=list(self.rows))


class FakeClient:
    def __init__(self, rows=(), error=None, pages=None):
        self.rows = list(rows)
        self.error = error
        self.pages = pages
        self.tables = []
        self.executed = []

    def table(self, name):
        self.tables.append(name)
        return FakeQuery(self, self.rows)


def test_find_exact_escapes_like_wildcards_and_picks_canonical_row():
    client = FakeClient(
        rows=[
            _row("St_Louis%", "MO", 38.6, -90.2, "STL", "63105"),
            _row("St_Louis%", "MO", 38.6, -90.2, "STL", "63101"),
            _row("StXLouis%", "MO", 38.6, -90.2, "STL", "63000"),
        ]
    )
    catalog = SupabaseCityCatalog(client, table="cities", query_limit=100)

    record = catalog.find_exact("St_Louis%", "mo")

    assert record.postal_code == "63101"
    calls = client.executed[0]
    assert ("ilike", "city", "St\\_Louis\\%") in calls
    assert ("ilike", "state_or_province", "mo") in calls
    assert client.tables == ["cities"]


def test_find_exact_returns_none_without_rows():
    catalog = SupabaseCityCatalog(FakeClient(), table="cities", query_limit=100)

    assert catalog.find_exact("Atlantis", "ZZ") is None


def test_find_within_radius_filters_by_distance_and_market():
    client = FakeClient(
        rows=[
            _row("Evanston", "IL", 42.0451, -87.6877, "CHI"),
            _row("Kenosha", "WI", "42.5847", "-87.8212", "MKE"),
            _row("Peoria", "IL", 40.6936, -89.5890, "PIA"),
            _row("Nowhere", "IL", None, None, "CHI"),
        ]
    )
    catalog = SupabaseCityCatalog(client, table="cities", query_limit=100)

    candidates = catalog.find_within_radius(CHICAGO, 75.0, exclude_market="CHI")

    assert [candidate.city.name for candidate in candidates] == ["Kenosha"]
    calls = client.executed[0]
    assert ("is_", "kma_code", "null") in calls
    assert ("range", 0, 99) in calls
    assert any(call[0] == "gte" and call[1] == "longitude" for call in calls)


def test_find_within_radius_skips_longitude_filter_across_antimeridian():
    client = FakeClient(rows=[])
    catalog = SupabaseCityCatalog(client, table="cities", query_limit=100)

    catalog.find_within_radius(Coordinate(52.0, 179.9), 75.0)

    assert not any(call[0] in ("gte", "lte") and call[1] == "longitude" for call in client.executed[0])


def test_transport_errors_become_catalog_unavailable():
    client = FakeClient(error=httpx.ConnectError("boom"))
    catalog = SupabaseCityCatalog(client, table="cities", query_limit=100)

    with pytest.raises(CatalogUnavailable):
        catalog.find_exact("Chicago", "IL")
    with pytest.raises(CatalogUnavailable):
        catalog.find_within_radius(CHICAGO, 75.0)


def test_full_scan_pages_through_the_table():
    pages = [
        [_row("Aurora", "IL", 41.76, -88.32, "CHI"), _row("Elgin", "IL", 42.03, -88.28, "CHI")],
        [_row("Joliet", "IL", 41.525, -88.0817, "CHI"), _row("Lost", "IL", None, None, None)],
        [_row("Peoria", "IL", 40.6936, -89.5890, "PIA")],
    ]
    client = FakeClient(pages=pages)
    catalog = SupabaseCityCatalog(client, table="cities", query_limit=2)

    names = [record.name for record in catalog.find_all_with_coordinates()]

    assert names == ["Aurora", "Elgin", "Joliet", "Peoria"]
    ranges = [call for calls in client.executed for call in calls if call[0] == "range"]
    assert ranges == [("range", 0, 1), ("range", 2, 3), ("range", 4, 5)]


class TableQuery:
    """Query builder over an in-memory table that applies filters, ordering and row windows."""

    def __init__(self, client):
        self.client = client
        self.filters = []
        self.ordering = []
        self.window = None
        self.negate = False

    def select(self, columns):
        return self

    def ilike(self, column, pattern):
        wanted = pattern.replace("\\", "").lower()
        self.filters.append(lambda row: str(row.get(column) or "").lower() == wanted)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and float(row[column]) >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and float(row[column]) <= value)
        return self

    @property
    def not_(self):
        self.negate = True
        return self

    def is_(self, column, value):
        negate, self.negate = self.negate, False
        self.filters.append(lambda row: (row.get(column) is None) != negate)
        return self

    def order(self, column):
        self.ordering.append(column)
        return self

    def limit(self, count):
        self.window = (0, count - 1)
        return self

    def range(self, start, end):
        self.window = (start, end)
        return self

    def execute(self):
        self.client.requests += 1
        rows = [row for row in self.client.rows if all(check(row) for check in self.filters)]
        for column in reversed(self.ordering):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column) or 0))
        if self.window is not None:
            rows = rows[self.window[0] : self.window[1] + 1]
        return SimpleNamespace(data=rows)


class TableClient:
    def __init__(self, rows):
        self.rows = rows
        self.requests = 0

    def table(self, name):
        return TableQuery(self)


def test_radius_search_reads_every_row_in_the_box_past_the_row_cap():
    far = [_row(f"Far {i}", "IL", 41.8781 + 0.9 + i * 0.01, -87.6298, f"F{i}") for i in range(5)]
    nearest = _row("Nearest", "IL", 41.8781 + 0.01, -87.6298, "N1")
    client = TableClient(far + [nearest])
    catalog = SupabaseCityCatalog(client, table="cities", query_limit=5)

    candidates = catalog.find_within_radius(CHICAGO, 75.0)

    assert [candidate.city.name for candidate in candidates][:3] == ["Nearest", "Far 0", "Far 1"]
    assert len(candidates) == 6
    assert client.requests == 2


def test_radius_search_matches_full_scan_with_small_pages():
    rows = [
        _row(f"City {i}", "IL", 41.8781 + (i % 7 - 3) * 0.2, -87.6298 + (i % 5 - 2) * 0.3, f"M{i % 4}", f"6{i:04d}")
        for i in range(23)
    ]
    paged = SupabaseCityCatalog(TableClient(rows), table="cities", query_limit=4)
    single = SupabaseCityCatalog(TableClient(rows), table="cities", query_limit=1000)

    assert paged.find_within_radius(CHICAGO, 75.0) == single.find_within_radius(CHICAGO, 75.0)


def test_find_exact_collapses_internal_whitespace():
    client = TableClient([_row("New York", "NY", 40.7128, -74.0060, "NYC")])
    catalog = SupabaseCityCatalog(client, table="cities", query_limit=100)

    record = catalog.find_exact("New  York ", " ny")

    assert record is not None
    assert record.name == "New York"
