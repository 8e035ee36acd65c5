#!/usr/bin/env python3
"""
Export the hosted catalog to a local JSON snapshot.

Fetches every material and etchant from the hosted catalog API and writes
the {"materials": [...], "etchants": [...]} file the server loads when
CATALOG_URL is unset.

Usage:
    CATALOG_URL=... CATALOG_API_KEY=... python scripts/export_catalog.py [--output PATH]
"""

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

from etchant_mcp.catalog import CatalogClient, CatalogError
from etchant_mcp.config import CATALOG_PATH, CATALOG_URL


async def export_catalog(output: Path, verbose: bool = True) -> dict:
    """Fetch the hosted catalog and write it to output atomically.

    Returns stats dict with counts and timing.
    """
    start_time = time.time()
    client = CatalogClient()
    try:
        catalog = await client.get_catalog(refresh=True)
    finally:
        await client.close()

    output.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = output.with_suffix(".json.tmp")
    tmp_path.write_text(
        json.dumps(
            {"materials": catalog.materials, "etchants": catalog.etchants},
            indent=2,
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    tmp_path.replace(output)

    stats = {
        "materials": len(catalog.materials),
        "etchants": len(catalog.etchants),
        "seconds": round(time.time() - start_time, 2),
    }
    if verbose:
        print(f"Wrote {stats['materials']} materials and {stats['etchants']} etchants to {output}")
        print(f"Done in {stats['seconds']}s")
    return stats


def main():
    parser = argparse.ArgumentParser(description="Export hosted catalog to JSON")
    parser.add_argument("--output", type=Path, default=CATALOG_PATH, help="Output JSON path")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    args = parser.parse_args()

    if not CATALOG_URL:
        print("CATALOG_URL is not set", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(export_catalog(args.output, verbose=not args.quiet))
    except CatalogError as e:
        print(f"Export failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
