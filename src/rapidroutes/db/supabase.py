"""Supabase client for Python backend."""

import logging
from functools import lru_cache

from supabase import Client, ClientOptions, create_client

from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns:
        Supabase Client instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        options = ClientOptions(postgrest_client_timeout=settings.catalog_timeout_seconds)
        return create_client(settings.supabase_url, settings.supabase_key, options=options)
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None


# Example usage patterns:
#
# from .db.supabase import get_supabase_client
#
# # Exact city lookup
# result = get_supabase_client().table('cities') \
#     .select('city, state_or_province, zip, latitude, longitude, kma_code, kma_name') \
#     .ilike('city', 'Chicago') \
#     .ilike('state_or_province', 'IL') \
#     .execute()
#
# # Bounding-box prefilter for radius searches
# result = get_supabase_client().table('cities') \
#     .select('*') \
#     .gte('latitude', 41.0).lte('latitude', 42.8) \
#     .gte('longitude', -88.7).lte('longitude', -86.6) \
#     .not_.is_('kma_code', 'null') \
#     .limit(1000) \
#     .execute()
