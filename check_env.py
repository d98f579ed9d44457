#!/usr/bin/env python3
"""Check the .env file and the settings the route engine will start with."""

import os
import sys
from pathlib import Path

TEMPLATE = """# TMS resource layer (loads, stops, facilities, calculate-miles)
LOADROUTE_TMS_API_BASE_URL=http://localhost:3001/api
LOADROUTE_TMS_API_TOKEN=

# Routing backend: 'tms' uses the resource layer's calculate-miles endpoint,
# 'osrm' geocodes with Nominatim and routes through OSRM.
LOADROUTE_ROUTING_BACKEND=tms
# LOADROUTE_OSRM_BASE_URL=http://localhost:5000

# Recalculation
LOADROUTE_DEBOUNCE_SECONDS=0.5
LOADROUTE_RESOLVE_TIMEOUT_SECONDS=10

# LOADROUTE_FRONTEND_ALLOWED_ORIGINS - leave commented to use defaults
# JSON array format: ["http://localhost:5173","http://127.0.0.1:5173"]
"""

SECRET_KEYS = ("LOADROUTE_TMS_API_TOKEN",)


def _masked(line: str) -> str:
    name, _, value = line.partition("=")
    value = value.strip()
    if name.strip() in SECRET_KEYS and len(value) > 8:
        return f"{name}={value[:4]}...{value[-4:]}"
    return line


def main() -> int:
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Route Engine Environment Checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        print(f"❌ .env file NOT found at: {env_file}")
        env_file.write_text(TEMPLATE, encoding="utf-8")
        print(f"✅ Created template .env file at: {env_file}")
        print("⚠️  Edit it and point LOADROUTE_TMS_API_BASE_URL at your TMS API.")
        return 1

    print(f"✅ Found .env file at: {env_file}")
    print("-" * 60)
    for line in env_file.read_text(encoding="utf-8").splitlines():
        print(_masked(line))
    print("-" * 60)
    print()

    for name in ("LOADROUTE_TMS_API_BASE_URL", "LOADROUTE_ROUTING_BACKEND", "LOADROUTE_OSRM_BASE_URL"):
        value = os.getenv(name)
        print(f"{'✅' if value else '➖'} {name} (from environment): {value or 'not set'}")
    print()

    print("Testing config loading...")
    sys.path.insert(0, str(project_root / "src"))
    try:
        from loadroute.config import settings
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        return 1

    print(f"   routing backend:  {settings.routing_backend}")
    print(f"   TMS API:          {settings.tms_api_base_url or 'not configured'}")
    print(f"   OSRM:             {settings.osrm_base_url or 'not configured'}")
    print(f"   debounce:         {settings.debounce_seconds}s")
    print(f"   resolve timeout:  {settings.resolve_timeout_seconds}s")
    print()

    problems = []
    if settings.routing_backend == "tms" and not settings.tms_api_base_url:
        problems.append("The 'tms' routing backend needs LOADROUTE_TMS_API_BASE_URL.")
    if settings.routing_backend == "osrm" and not settings.osrm_base_url:
        problems.append("The 'osrm' routing backend needs LOADROUTE_OSRM_BASE_URL.")

    print("=" * 60)
    if problems:
        print("❌ ERROR: configuration is incomplete")
        for problem in problems:
            print(f"   - {problem}")
        print("=" * 60)
        return 1
    print("✅ SUCCESS: route engine is configured")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
