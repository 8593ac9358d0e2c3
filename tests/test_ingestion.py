from datetime import timedelta

import pytest

from binwatch.config import AnomalyThresholds
from binwatch.errors import NotFoundError, ValidationFailedError
from binwatch.models.schemas import DeviceUpdate
from binwatch.services.anomaly import AnomalyDetector
from binwatch.services.ingestion import DeviceIngestor, resolve_status, validate_fill_level


def _ingestor(db, clock) -> DeviceIngestor:
    return DeviceIngestor(db, AnomalyDetector(db, AnomalyThresholds(), clock=clock), clock=clock)


def test_validate_fill_level_bounds() -> None:
    assert validate_fill_level(0.0) == 0.0
    assert validate_fill_level(100.0) == 100.0
    with pytest.raises(ValidationFailedError):
        validate_fill_level(150.0)
    with pytest.raises(ValidationFailedError):
        validate_fill_level(-0.5)


def test_status_resolution() -> None:
    assert resolve_status("active", "OK") == "active"
    assert resolve_status("active", "ok") == "active"
    assert resolve_status("active", "SENSOR_TIMEOUT") == "offline"
    assert resolve_status("offline", "OK") == "active"
    assert resolve_status("maintenance", "OK") == "maintenance"


def test_update_rejects_out_of_range_fill_before_persisting(db, clock, add_bin) -> None:
    add_bin("BIN-001", fill_level=40.0)

    with pytest.raises(ValidationFailedError):
        _ingestor(db, clock).apply_update(
            DeviceUpdate(bin_id="BIN-001", fill_level=150, sensor_status="OK")
        )
    assert db.get_bin("BIN-001").fill_level == 40.0


def test_update_unknown_bin(db, clock) -> None:
    with pytest.raises(NotFoundError):
        _ingestor(db, clock).apply_update(
            DeviceUpdate(bin_id="BIN-404", fill_level=10, sensor_status="OK")
        )


def test_update_refreshes_reading_and_status(db, clock, add_bin) -> None:
    add_bin("BIN-001", last_updated=clock() - timedelta(hours=5))
    ingestor = _ingestor(db, clock)

    clock.advance(minutes=1)
    offline = ingestor.apply_update(DeviceUpdate(bin_id="BIN-001", fill_level=61, sensor_status="ERR_42"))
    assert offline.status == "offline"

    clock.advance(minutes=1)
    ingestor.apply_update(DeviceUpdate(bin_id="BIN-001", fill_level=64, sensor_status="OK"))

    stored = db.get_bin("BIN-001")
    assert stored.status == "active"
    assert stored.fill_level == 64
    assert stored.last_updated == clock()


def test_update_with_image_records_classification(db, clock, add_bin) -> None:
    add_bin("BIN-001", category="biodegradable")

    _ingestor(db, clock).apply_update(
        DeviceUpdate(
            bin_id="BIN-001",
            fill_level=20,
            sensor_status="OK",
            image_url="https://images.example.invalid/bin-001.jpg",
        )
    )

    records = db.list_image_records(bin_id="BIN-001")
    assert len(records) == 1
    assert records[0].predicted_category == "biodegradable"
    assert records[0].confidence == 85.0
    assert records[0].is_verified is False


def test_overfilled_report_raises_single_alert(db, clock, add_bin) -> None:
    add_bin("BIN-001")
    ingestor = _ingestor(db, clock)

    ingestor.apply_update(DeviceUpdate(bin_id="BIN-001", fill_level=95, sensor_status="OK"))
    ingestor.apply_update(DeviceUpdate(bin_id="BIN-001", fill_level=97, sensor_status="OK"))

    alerts, total = db.list_alerts(bin_id="BIN-001", alert_type="overfilled", is_resolved=False)
    assert total == 1
    assert alerts[0].message == "Bin BIN-001 is overfilled (95%)"
