#!/usr/bin/env python3
"""
Analyze a local crop photo from the command line.

Usage (from backend/):
  export AI_GATEWAY_API_KEY="..."          # or LOVABLE_API_KEY, or .env
  PYTHONPATH=. python scripts/analyze_image.py path/to/leaf.jpg

  Also store the result in the detection history:
  export DATABASE_URL="postgresql://..."
  PYTHONPATH=. python scripts/analyze_image.py path/to/leaf.jpg --save

  Show the latest history entries:
  PYTHONPATH=. python scripts/analyze_image.py --history 5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

# Run from repo root or backend; ensure backend is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cropscan.core.config import get_settings
from cropscan.core.dependencies import get_gateway, optional_detection_store
from cropscan.core.image_intake import prepare
from cropscan.errors import CropScanError
from cropscan.schemas.analysis import DetectionOut


def _print_history(limit: int) -> int:
    store = optional_detection_store()
    if store is None:
        print("Error: DATABASE_URL is not set.", file=sys.stderr)
        return 1
    for record in store.list_recent(limit):
        print(DetectionOut.from_record(record).model_dump_json())
    return 0


def _analyze(path: Path, save: bool) -> int:
    settings = get_settings()
    image = prepare(path.read_bytes(), filename=path.name, max_bytes=settings.max_image_bytes)
    result = asyncio.run(get_gateway().analyze(image))
    print(json.dumps(result.model_dump(mode="json"), indent=2))

    if save:
        store = optional_detection_store()
        if store is None:
            print("Warning: DATABASE_URL is not set; result not saved.", file=sys.stderr)
            return 0
        record = store.insert(result)
        print(f"Saved as {record.id}", file=sys.stderr)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Classify crop defects in a photo.")
    parser.add_argument("image", nargs="?", type=Path, help="Path to a JPEG/PNG/WebP photo.")
    parser.add_argument("--save", action="store_true", help="Store the result in the detection history.")
    parser.add_argument("--history", type=int, metavar="N", help="Print the N most recent detections and exit.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log gateway activity to stderr.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    try:
        if args.history is not None:
            sys.exit(_print_history(args.history))
        if args.image is None:
            parser.error("an image path is required unless --history is given")
        sys.exit(_analyze(args.image, args.save))
    except CropScanError as exc:
        print(f"Error ({exc.kind}): {exc.message}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
