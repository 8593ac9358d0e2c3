"""Threshold checks over stored bins and classifications that raise alerts.

Each check is independent and may be run on its own. Before raising, a check
looks for an unresolved alert of the same type for the bin and skips the bin
when one exists, so running a check twice raises nothing new.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from binwatch.config import AnomalyThresholds
from binwatch.models.database import DatabaseManager
from binwatch.models.schemas import Alert, Bin, SweepReport
from binwatch.services.commands import Clock, utc_now

LOGGER = logging.getLogger(__name__)

LOW_CONFIDENCE_MARKER = "low confidence"

AlertListener = Callable[[Alert], Any]


class AnomalyDetector:
    def __init__(
        self,
        db: DatabaseManager,
        thresholds: AnomalyThresholds,
        *,
        clock: Clock = utc_now,
        on_alert: AlertListener | None = None,
    ) -> None:
        self.db = db
        self.thresholds = thresholds
        self.clock = clock
        self.on_alert = on_alert

    def _raise_alert(
        self,
        bin_id: str,
        alert_type: str,
        severity: str,
        message: str,
        *,
        message_contains: str | None = None,
    ) -> Alert | None:
        existing = self.db.find_open_alert(bin_id, alert_type, message_contains=message_contains)
        if existing is not None:
            LOGGER.debug("Open %s alert %s already exists for bin %s", alert_type, existing.id, bin_id)
            return None

        now = self.clock()
        alert = Alert(
            id=uuid4().hex,
            bin_id=bin_id,
            alert_type=alert_type,
            severity=severity,
            message=message[:500],
            created_at=now,
            updated_at=now,
        )
        if not self.db.insert_alert(alert):
            return None

        if self.on_alert is not None:
            self.on_alert(alert)
        return alert

    def _overfill_alert(self, item: Bin) -> Alert | None:
        alert = self._raise_alert(
            item.bin_id,
            "overfilled",
            "high",
            f"Bin {item.bin_id} is overfilled ({item.fill_level:g}%)",
        )
        if alert:
            LOGGER.warning("Overfilled alert created for bin %s", item.bin_id)
        return alert

    def _offline_alert(self, item: Bin) -> Alert | None:
        alert = self._raise_alert(
            item.bin_id,
            "sensor_offline",
            "critical",
            f"Bin {item.bin_id} sensor has been offline for more than "
            f"{self.thresholds.offline_after_hours:g} hours",
        )
        if alert:
            LOGGER.error("Sensor offline alert created for bin %s", item.bin_id)
        return alert

    def detect_overflow(self) -> int:
        LOGGER.info("Starting overflow detection")
        now = self.clock()
        bins = self.db.find_overfilled_bins(
            level=self.thresholds.overfill_level,
            updated_since=now - timedelta(minutes=self.thresholds.overfill_recency_minutes),
        )
        raised = sum(1 for item in bins if self._overfill_alert(item))
        LOGGER.info("Overflow detection completed. Found: %d", raised)
        return raised

    def detect_sensor_offline(self) -> int:
        LOGGER.info("Starting sensor offline detection")
        cutoff = self.clock() - timedelta(hours=self.thresholds.offline_after_hours)
        bins = self.db.find_stale_bins(updated_before=cutoff)
        raised = sum(1 for item in bins if self._offline_alert(item))
        LOGGER.info("Sensor offline detection completed. Found: %d", raised)
        return raised

    def detect_classification_anomalies(self) -> int:
        LOGGER.info("Starting classification anomaly detection")
        since = self.clock() - timedelta(hours=self.thresholds.classification_window_hours)
        records = self.db.find_low_confidence_images(
            created_since=since,
            below=self.thresholds.low_confidence,
        )

        raised = 0
        for record in records:
            alert = self._raise_alert(
                record.bin_id,
                "anomaly",
                "medium",
                f"Low confidence prediction ({record.confidence:g}%) "
                f"for category: {record.predicted_category or 'unknown'}",
                message_contains=LOW_CONFIDENCE_MARKER,
            )
            if alert:
                raised += 1
                LOGGER.warning("Low confidence alert created for bin %s", record.bin_id)

        LOGGER.info("Classification anomaly detection completed. Found: %d", raised)
        return raised

    def detect_maintenance_due(self) -> int:
        LOGGER.info("Starting maintenance due detection")
        bins = self.db.find_maintenance_due_bins(due_by=self.clock())

        raised = 0
        for item in bins:
            alert = self._raise_alert(
                item.bin_id,
                "maintenance-due",
                "medium",
                f"Bin {item.bin_id} is due for maintenance ({item.maintenance_schedule.frequency})",
            )
            if alert:
                raised += 1
                LOGGER.warning("Maintenance due alert created for bin %s", item.bin_id)

        LOGGER.info("Maintenance due detection completed. Found: %d", raised)
        return raised

    def check_bin(self, item: Bin) -> list[Alert]:
        """Overfill and offline checks for a single bin right after a device report."""
        now = self.clock()
        raised: list[Alert] = []
        try:
            recent = now - timedelta(minutes=self.thresholds.overfill_recency_minutes)
            if item.fill_level > self.thresholds.overfill_level and item.last_updated > recent:
                alert = self._overfill_alert(item)
                if alert:
                    raised.append(alert)

            stale = now - timedelta(hours=self.thresholds.offline_after_hours)
            if item.last_updated < stale:
                alert = self._offline_alert(item)
                if alert:
                    raised.append(alert)
        except Exception:
            LOGGER.exception("Error checking bin anomalies for %s", item.bin_id)
        return raised

    def run_all_checks(self) -> SweepReport:
        checks: list[tuple[str, Callable[[], int]]] = [
            ("overfilled", self.detect_overflow),
            ("sensor_offline", self.detect_sensor_offline),
            ("anomaly", self.detect_classification_anomalies),
            ("maintenance-due", self.detect_maintenance_due),
        ]

        LOGGER.info("Running all anomaly detection checks")
        started_at = self.clock()
        raised: dict[str, int] = {}
        failed: list[str] = []
        for name, check in checks:
            try:
                raised[name] = check()
            except Exception:
                LOGGER.exception("Anomaly check `%s` failed", name)
                raised[name] = 0
                failed.append(name)

        report = SweepReport(
            started_at=started_at,
            finished_at=self.clock(),
            raised=raised,
            failed_checks=failed,
        )
        LOGGER.info(
            "All anomaly detection checks completed: %d raised, %d failed",
            report.total_raised,
            len(failed),
        )
        return report


class AnomalySweeper:
    """Runs the full sweep on a fixed interval until stopped."""

    def __init__(self, detector: AnomalyDetector, *, interval_seconds: int) -> None:
        self.detector = detector
        self.interval_seconds = interval_seconds
        self._running = False
        self.last_report: SweepReport | None = None

    async def sweep_once(self) -> SweepReport:
        self.last_report = await asyncio.to_thread(self.detector.run_all_checks)
        return self.last_report

    async def run_forever(self) -> None:
        self._running = True
        LOGGER.info("Anomaly sweeper started, interval %ds", self.interval_seconds)

        while self._running:
            await self.sweep_once()
            await asyncio.sleep(self.interval_seconds)

    async def stop(self) -> None:
        self._running = False
