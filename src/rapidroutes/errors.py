"""Error taxonomy for the crawl engine."""


class CrawlError(Exception):
    """Base error for the crawl engine."""


class InvalidCoordinate(CrawlError, ValueError):
    """Raised when a latitude/longitude is missing, non-finite or out of range."""


class CityNotFound(CrawlError, LookupError):
    """Raised when an exact catalog lookup has no match."""

    def __init__(self, name: str, region: str) -> None:
        super().__init__(f"City '{name}, {region}' not found in catalog")
        self.name = name
        self.region = region


class CatalogUnavailable(CrawlError):
    """Raised when the city catalog store cannot answer a query."""


class CatalogTimeout(CatalogUnavailable):
    """Raised when the request deadline expires before a catalog call."""


class CrawlCancelled(CrawlError):
    """Raised when the caller cancels a pair generation request."""
