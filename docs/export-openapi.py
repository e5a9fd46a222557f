#!/usr/bin/env python3
"""
Export the LawPal OpenAPI specification to docs/openapi.json

Usage:
    python docs/export-openapi.py [--url http://localhost:5000/openapi.json]

Without a reachable server the spec is generated from the app itself.
"""

import argparse
import json
import sys
from pathlib import Path

import httpx

DEFAULT_OPENAPI_URL = "http://localhost:5000/openapi.json"
OUTPUT_FILE = Path(__file__).parent / "openapi.json"


def main():
    """Export OpenAPI spec from a running server, or from the app when offline."""
    parser = argparse.ArgumentParser(description="Export the LawPal OpenAPI spec")
    parser.add_argument("--url", default=DEFAULT_OPENAPI_URL)
    args = parser.parse_args()

    print(f"Fetching OpenAPI spec from {args.url}...")

    try:
        response = httpx.get(args.url, timeout=10.0)
        response.raise_for_status()
        spec = response.json()
        source = f"server at {args.url}"
    except httpx.HTTPError as http_error:
        print(f"HTTP fetch failed ({http_error}). Generating from the local app...")
        from lawpal.main import app

        spec = app.openapi()
        source = "local app import (offline)"

    with open(OUTPUT_FILE, "w", encoding="utf-8") as f:
        json.dump(spec, f, indent=2)

    print(f"OpenAPI spec exported to {OUTPUT_FILE} (source: {source})")
    print(f"  Total endpoints: {len(spec.get('paths', {}))}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
