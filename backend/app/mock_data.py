"""Utility helpers for seeding a sizeable set of mock truck checks."""

from __future__ import annotations

import argparse
import logging
import random
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from .app import TruckCheckApp
from .inspection import create_default, snapshot

SAMPLE_SIGNATURE = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAvoB9pWcVYoAAAAASUVORK5CYII="
)

UNIT_NUMBERS = ("M-12", "M-14", "M-21", "M-30", "R-3")
INSPECTORS = ("J. Smith", "A. Patel", "R. Nguyen", "K. Brooks", "T. Alvarez", "L. Chen")


def generate_mock_data(
    app: TruckCheckApp,
    *,
    count: int = 40,
    seed: int = 42,
    now: Optional[datetime] = None,
) -> int:
    rng = random.Random(seed)
    end = now or datetime.now(timezone.utc)
    for index in range(count):
        record = create_default(app.catalog)
        record.unit_number = UNIT_NUMBERS[index % len(UNIT_NUMBERS)]
        record.inspector_name = rng.choice(INSPECTORS)
        record.signature_image = SAMPLE_SIGNATURE
        for section in record.sections.values():
            for item in section.items:
                item.completed = rng.random() > 0.07
        saved_at = end - timedelta(hours=12 * (count - index), minutes=rng.randint(0, 59))
        duration = rng.randint(6 * 60, 35 * 60)
        app.store.append(snapshot(record, duration_seconds=duration, now=saved_at))
    return count


def _summarize(app: TruckCheckApp) -> str:
    entries = app.list_inspections()
    units = len({entry.unit_number for entry in entries})
    return textwrap.dedent(
        f"""
        Stored {len(entries)} inspections across {units} units.
        Re-run the export to include new data.
        """
    ).strip()


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate mock truck check data.")
    parser.add_argument(
        "--storage",
        default="truck_check.db",
        help="Path to the local storage file (default: %(default)s)",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=40,
        help="Number of inspections to generate (default: %(default)s)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for reproducible data (default: %(default)s)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)
    app = TruckCheckApp.create(Path(args.storage))
    generate_mock_data(app, count=args.count, seed=args.seed)
    print(_summarize(app))


if __name__ == "__main__":  # pragma: no cover - script entry point
    main()
