#!/usr/bin/env python3
from __future__ import annotations

import argparse
import random
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

from binwatch.config import load_config
from binwatch.models.database import DatabaseManager
from binwatch.models.schemas import Bin, ImageRecord, Location, MaintenanceSchedule
from binwatch.services.admin import next_maintenance_after

CATEGORIES = ["metal", "biodegradable", "non-biodegradable", "others"]
FREQUENCIES = ["weekly", "biweekly", "monthly", "quarterly"]

# Rough downtown grid the demo bins are scattered over.
CITY_CENTER = (40.4433, -79.9436)
STREETS = ["Forbes Ave", "Fifth Ave", "Craig St", "Morewood Ave", "Negley Ave"]


def build_bin(index: int, now: datetime, rng: random.Random) -> Bin:
    frequency = rng.choice(FREQUENCIES)
    installed = now - timedelta(days=rng.randint(30, 400))
    last_maintenance = now - timedelta(days=rng.randint(1, 100))

    # A handful of bins report stale readings so the offline check has something to find.
    stale = rng.random() < 0.15
    last_updated = now - (timedelta(hours=rng.uniform(3, 12)) if stale else timedelta(minutes=rng.uniform(0, 45)))

    return Bin(
        bin_id=f"BIN-{index:03d}",
        category=CATEGORIES[index % len(CATEGORIES)],
        location=Location(
            latitude=round(CITY_CENTER[0] + rng.uniform(-0.02, 0.02), 6),
            longitude=round(CITY_CENTER[1] + rng.uniform(-0.02, 0.02), 6),
            address=f"{rng.randint(100, 5999)} {rng.choice(STREETS)}",
        ),
        status="active",
        fill_level=round(min(100.0, max(0.0, rng.gauss(55, 25))), 1),
        capacity=rng.choice([80.0, 120.0, 240.0]),
        last_updated=last_updated,
        installation_date=installed,
        api_key=uuid4().hex,
        maintenance_schedule=MaintenanceSchedule(
            frequency=frequency,
            last_maintenance_date=last_maintenance,
            next_maintenance_date=next_maintenance_after(last_maintenance, frequency),
        ),
        created_at=installed,
        updated_at=last_updated,
    )


def build_images(item: Bin, now: datetime, rng: random.Random, count: int) -> list[ImageRecord]:
    records: list[ImageRecord] = []
    for _ in range(count):
        captured = now - timedelta(hours=rng.uniform(0, 48))
        records.append(
            ImageRecord(
                id=uuid4().hex,
                bin_id=item.bin_id,
                image_url=f"https://images.example.invalid/{item.bin_id}/{uuid4().hex}.jpg",
                predicted_category=item.category if rng.random() < 0.85 else rng.choice(CATEGORIES),
                confidence=round(rng.uniform(35, 99), 1),
                captured_at=captured,
                created_at=captured,
            )
        )
    return records


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the binwatch database with demo bins.")
    parser.add_argument("--bins", type=int, default=20)
    parser.add_argument("--images-per-bin", type=int, default=3)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--db", type=Path, default=None, help="Override database path")
    args = parser.parse_args()

    config = load_config()
    db = DatabaseManager(args.db or config.database.path)
    db.initialize()

    rng = random.Random(args.seed)
    now = datetime.now(tz=UTC)

    created = 0
    for index in range(1, args.bins + 1):
        item = build_bin(index, now, rng)
        if db.get_bin(item.bin_id) is not None:
            continue
        db.insert_bin(item)
        for record in build_images(item, now, rng, args.images_per_bin):
            db.insert_image_record(record)
        created += 1

    db.close()
    print(f"Seeded {created} bins into {args.db or config.database.path}")


if __name__ == "__main__":
    main()
