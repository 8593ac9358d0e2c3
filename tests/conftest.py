from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from binwatch.models.database import DatabaseManager
from binwatch.models.schemas import Bin, Location


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 12, 0, tzinfo=UTC))


@pytest.fixture
def db(tmp_path: Path) -> Iterator[DatabaseManager]:
    manager = DatabaseManager(tmp_path / "binwatch.db")
    manager.initialize()
    yield manager
    manager.close()


@pytest.fixture
def add_bin(db: DatabaseManager, clock: FakeClock) -> Callable[..., Bin]:
    def _add(bin_id: str = "BIN-001", **overrides: Any) -> Bin:
        now = clock()
        fields: dict[str, Any] = {
            "bin_id": bin_id,
            "category": "metal",
            "location": Location(latitude=40.4433, longitude=-79.9436, address="Zone A"),
            "fill_level": 50.0,
            "last_updated": now,
            "installation_date": now,
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        item = Bin(**fields)
        db.insert_bin(item)
        return item

    return _add
