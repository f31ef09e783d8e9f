"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and city catalog status."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set RR_SUPABASE_URL and RR_SUPABASE_KEY environment variables.",
            "catalog_file": str(settings.city_catalog_file),
            "catalog_file_exists": settings.city_catalog_file.exists(),
        }

    try:
        response = supabase.table(settings.cities_table).select("city", count="exact").limit(1).execute()
        return {
            "configured": True,
            "connected": True,
            "cities_count": response.count,
            "message": f"Database connected. Found {response.count} rows in '{settings.cities_table}'.",
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
