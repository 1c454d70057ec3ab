#!/usr/bin/env python3
"""Fetch a snapshot of the ViaggiaTreno network and write it as JSON.

Writes stations.json, segments.json and trains.json, ready to be loaded
into a database. Each run produces a fresh snapshot; detecting changes
between snapshots is left to the loader.

Usage:
    python scripts/snapshot_network.py [OUTPUT_DIR]
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from viaggiatreno_mcp.config import ViaggiaTrenoSettings
from viaggiatreno_mcp.result import Failure
from viaggiatreno_mcp.viaggiatreno_client import ViaggiaTrenoClient

DEFAULT_OUTPUT_DIR = Path(__file__).resolve().parent.parent / "snapshots"


def write_json(path: Path, records: list) -> None:
    """Dump pydantic records to a JSON file."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump([r.model_dump() for r in records], f, ensure_ascii=False, indent=2)

    size_kb = path.stat().st_size / 1024
    print(f"Wrote {path} ({len(records)} records, {size_kb:.1f} KB)")


async def snapshot(output_dir: Path) -> int:
    output_dir.mkdir(parents=True, exist_ok=True)

    async with ViaggiaTrenoClient(ViaggiaTrenoSettings.from_env()) as client:
        print("Fetching stations ...")
        stations = await client.fetch_stations()
        write_json(output_dir / "stations.json", stations)

        print("Fetching segments ...")
        segments = await client.fetch_segments(unique=True)
        write_json(output_dir / "segments.json", segments)

        print("Fetching trains ...")
        result = await client.fetch_all_trains()

    if isinstance(result, Failure):
        print(f"Could not fetch trains: {result}", file=sys.stderr)
        return 1

    write_json(output_dir / "trains.json", result.value)
    return 0


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    output_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT_DIR
    sys.exit(asyncio.run(snapshot(output_dir)))


if __name__ == "__main__":
    main()
