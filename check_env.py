#!/usr/bin/env python3
"""Helper script to check and create .env file for the city catalog configuration."""

from pathlib import Path
import os
import sys

ENV_TEMPLATE = """# Supabase Configuration (city catalog)
# Get these from: https://supabase.com/dashboard → Your Project → Settings → API
RR_SUPABASE_URL=https://your-project-id.supabase.co
RR_SUPABASE_KEY=your-service-role-key-here
RR_CITIES_TABLE=cities

# Catalog source: auto (Supabase when configured), supabase, or file
RR_CATALOG_SOURCE=auto
RR_CITY_CATALOG_FILE=./data/cities.csv

# Crawl defaults
RR_DEFAULT_SEARCH_RADIUS_MILES=75
RR_WIDEN_RADIUS_MULTIPLIERS=2,4
RR_TARGET_MIN_PAIRS=6
RR_MAX_PAIRS=10

# Result cache: memory or redis
RR_CACHE_BACKEND=memory
RR_CACHE_MAX_ENTRIES=512
# RR_REDIS_URL=redis://localhost:6379/0
"""


def _mask(value: str) -> str:
    return value[:20] + "..." + value[-10:] if len(value) > 30 else value


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("RapidRoutes Environment Checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        print(f"❌ .env file NOT found at: {env_file}")
        print("Creating template .env file...")
        env_file.write_text(ENV_TEMPLATE, encoding="utf-8")
        print(f"✅ Created .env file at: {env_file}")
        print("⚠️  Please edit .env and add your Supabase credentials!")
        return

    print(f"✅ Found .env file at: {env_file}")
    print()
    for name in ("RR_SUPABASE_URL", "RR_SUPABASE_KEY"):
        value = os.getenv(name)
        if value:
            print(f"✅ {name} (from environment): {_mask(value)}")
        else:
            print(f"ℹ️  {name} not set in environment (will be read from .env)")
    print()

    print("Testing config loading...")
    print()
    try:
        sys.path.insert(0, str(project_root / "src"))
        from rapidroutes.config import settings

        supabase_ready = bool(settings.supabase_url and settings.supabase_key)
        print(f"{'✅' if supabase_ready else '❌'} Supabase configured: {supabase_ready}")
        print(f"   Catalog source: {settings.catalog_source}")
        file_exists = settings.city_catalog_file.exists()
        print(f"{'✅' if file_exists else '❌'} Catalog file: {settings.city_catalog_file}")
        print(f"   Radius: {settings.default_search_radius_miles}mi, widen: {settings.widen_radius_multipliers}")
        print(f"   Pairs: min {settings.target_min_pairs}, max {settings.max_pairs}")
        print(f"   Cache: {settings.cache_backend}")
        print()
        if not supabase_ready and not file_exists:
            print("=" * 60)
            print("❌ ERROR: no city catalog available; every lane will fall back to duplicated base pairs")
            print("=" * 60)
            print()
            print("Troubleshooting:")
            print("1. Make sure .env file exists in project root")
            print("2. Make sure variables start with RR_ prefix")
            print("3. Or export the cities table to RR_CITY_CATALOG_FILE")
        else:
            print("=" * 60)
            print("✅ SUCCESS: a city catalog is configured!")
            print("=" * 60)
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print()
        print("Make sure you're running this from the project root directory")


if __name__ == "__main__":
    main()
