from __future__ import annotations

import logging
from uuid import uuid4

from binwatch.errors import NotFoundError, ValidationFailedError
from binwatch.models.database import DatabaseManager
from binwatch.models.schemas import Bin, DeviceUpdate, ImageRecord
from binwatch.services.anomaly import AnomalyDetector
from binwatch.services.commands import Clock, utc_now

LOGGER = logging.getLogger(__name__)

SENSOR_OK = "OK"
# Devices do not classify on board; the bin's own category stands in until verified.
DEFAULT_IMAGE_CONFIDENCE = 85.0


def validate_fill_level(fill_level: float) -> float:
    if not (0.0 <= fill_level <= 100.0):
        raise ValidationFailedError("fill_level must be between 0 and 100")
    return fill_level


def resolve_status(current: str, sensor_status: str) -> str:
    if sensor_status.strip().upper() != SENSOR_OK:
        return "offline"
    if current == "offline":
        return "active"
    return current


class DeviceIngestor:
    def __init__(
        self,
        db: DatabaseManager,
        detector: AnomalyDetector,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.detector = detector
        self.clock = clock

    def apply_update(self, payload: DeviceUpdate) -> Bin:
        fill_level = validate_fill_level(payload.fill_level)

        current = self.db.get_bin(payload.bin_id)
        if current is None:
            LOGGER.warning("Update attempt for non-existent bin: %s", payload.bin_id)
            raise NotFoundError("Bin", payload.bin_id)

        now = self.clock()
        status = resolve_status(current.status, payload.sensor_status)
        if status == "offline":
            LOGGER.warning("Bin %s sensor offline: %s", payload.bin_id, payload.sensor_status)

        updated = current.model_copy(
            update={
                "fill_level": fill_level,
                "last_updated": now,
                "status": status,
                "updated_at": now,
            }
        )
        self.db.update_bin(updated)

        if payload.image_url:
            self._record_image(updated, payload.image_url)

        self.detector.check_bin(updated)
        return updated

    def _record_image(self, item: Bin, image_url: str) -> None:
        now = self.clock()
        try:
            self.db.insert_image_record(
                ImageRecord(
                    id=uuid4().hex,
                    bin_id=item.bin_id,
                    image_url=image_url,
                    predicted_category=item.category,
                    confidence=DEFAULT_IMAGE_CONFIDENCE,
                    captured_at=now,
                    created_at=now,
                )
            )
            LOGGER.info("Image record created for bin %s", item.bin_id)
        except Exception as exc:
            LOGGER.error("Failed to create image record for bin %s: %s", item.bin_id, exc)
