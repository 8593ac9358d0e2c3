"""Administrative bookkeeping for bins, workers, maintenance logs, images and feedback."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from binwatch.errors import NotFoundError, ValidationFailedError
from binwatch.models.database import DatabaseManager
from binwatch.models.schemas import (
    Bin,
    BinCreate,
    BinUpdate,
    Feedback,
    FeedbackCreate,
    FeedbackReview,
    ImageRecord,
    ImageVerify,
    MaintenanceCreate,
    MaintenanceLog,
    MaintenanceSchedule,
    MaintenanceUpdate,
    Worker,
    WorkerCreate,
    WorkerUpdate,
)
from binwatch.services.commands import Clock, utc_now

LOGGER = logging.getLogger(__name__)

MAINTENANCE_INTERVALS: dict[str, timedelta] = {
    "weekly": timedelta(days=7),
    "biweekly": timedelta(days=14),
    "monthly": timedelta(days=30),
    "quarterly": timedelta(days=91),
}


def next_maintenance_after(start: datetime, frequency: str) -> datetime:
    return start + MAINTENANCE_INTERVALS[frequency]


class BinRegistry:
    def __init__(self, db: DatabaseManager, *, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def create_bin(self, payload: BinCreate) -> Bin:
        if self.db.get_bin(payload.bin_id) is not None:
            raise ValidationFailedError(f"Bin {payload.bin_id} already exists")

        now = self.clock()
        item = Bin(
            bin_id=payload.bin_id,
            category=payload.category,
            location=payload.location,
            status=payload.status,
            capacity=payload.capacity,
            last_updated=now,
            installation_date=now,
            api_key=secrets.token_hex(16),
            maintenance_schedule=MaintenanceSchedule(
                frequency=payload.maintenance_frequency,
                next_maintenance_date=next_maintenance_after(now, payload.maintenance_frequency),
            ),
            created_at=now,
            updated_at=now,
        )
        self.db.insert_bin(item)
        LOGGER.info("Bin %s created (%s)", item.bin_id, item.category)
        return item

    def get_bin(self, bin_id: str) -> Bin:
        item = self.db.get_bin(bin_id)
        if item is None:
            raise NotFoundError("Bin", bin_id)
        return item

    def list_bins(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        is_active: bool | None = None,
    ) -> list[Bin]:
        return self.db.list_bins(status=status, category=category, is_active=is_active)

    def update_bin(self, bin_id: str, payload: BinUpdate) -> Bin:
        item = self.get_bin(bin_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        schedule = item.maintenance_schedule
        frequency = changes.pop("maintenance_frequency", None)
        next_date = changes.pop("next_maintenance_date", None)
        if frequency is not None or next_date is not None:
            schedule = schedule.model_copy(
                update={
                    "frequency": frequency or schedule.frequency,
                    "next_maintenance_date": next_date or schedule.next_maintenance_date,
                }
            )

        now = self.clock()
        if changes.get("fill_level") == 0 and item.fill_level > 0:
            changes["last_emptied"] = now
        if "location" in changes:
            changes["location"] = payload.location

        updated = item.model_copy(
            update={**changes, "maintenance_schedule": schedule, "updated_at": now}
        )
        self.db.update_bin(updated)
        LOGGER.info("Bin %s updated: %s", bin_id, sorted(payload.model_fields_set))
        return updated

    def delete_bin(self, bin_id: str) -> None:
        if not self.db.delete_bin(bin_id):
            raise NotFoundError("Bin", bin_id)
        LOGGER.info("Bin %s deleted", bin_id)


class WorkerRegistry:
    def __init__(self, db: DatabaseManager, *, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def create_worker(self, payload: WorkerCreate) -> Worker:
        email = payload.email.lower()
        if self.db.get_worker_by_email(email) is not None:
            raise ValidationFailedError(f"Worker with email {email} already exists")

        now = self.clock()
        worker = Worker(
            id=uuid4().hex,
            name=payload.name.strip(),
            email=email,
            phone=payload.phone,
            role=payload.role,
            address=payload.address,
            emergency_contact=payload.emergency_contact,
            join_date=now,
            created_at=now,
            updated_at=now,
        )
        self.db.insert_worker(worker)
        LOGGER.info("Worker %s created (%s)", worker.id, worker.role)
        return worker

    def get_worker(self, worker_id: str) -> Worker:
        worker = self.db.get_worker(worker_id)
        if worker is None:
            raise NotFoundError("Worker", worker_id)
        return worker

    def list_workers(
        self,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Worker], int]:
        return self.db.list_workers(role=role, is_active=is_active, limit=limit, skip=skip)

    def update_worker(self, worker_id: str, payload: WorkerUpdate) -> Worker:
        worker = self.get_worker(worker_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "emergency_contact" in changes:
            changes["emergency_contact"] = payload.emergency_contact
        updated = worker.model_copy(update={**changes, "updated_at": self.clock()})
        self.db.update_worker(updated)
        LOGGER.info("Worker %s updated", worker_id)
        return updated

    def assign_bins(self, worker_id: str, bin_ids: list[str]) -> Worker:
        worker = self.get_worker(worker_id)
        missing = [bin_id for bin_id in bin_ids if self.db.get_bin(bin_id) is None]
        if missing:
            raise NotFoundError("Bin", ", ".join(missing))

        updated = worker.model_copy(
            update={"assigned_bins": list(dict.fromkeys(bin_ids)), "updated_at": self.clock()}
        )
        self.db.update_worker(updated)
        LOGGER.info("Assigned %d bins to worker %s", len(updated.assigned_bins), worker_id)
        return updated

    def worker_stats(self, worker_id: str) -> dict[str, Any]:
        worker = self.get_worker(worker_id)
        stats = self.db.maintenance_stats_for_worker(worker_id)
        by_status = stats["by_status"]
        return {
            "worker": {
                "id": worker.id,
                "name": worker.name,
                "role": worker.role,
                "performance_rating": worker.performance_rating,
            },
            "maintenance": {
                "completed": by_status.get("completed", 0),
                "pending": by_status.get("pending", 0),
                "in_progress": by_status.get("in-progress", 0),
            },
            "costs": {
                "total_cost": round(stats["total_cost"], 2),
                "avg_cost": round(stats["avg_cost"], 2),
            },
        }

    def delete_worker(self, worker_id: str) -> None:
        if not self.db.delete_worker(worker_id):
            raise NotFoundError("Worker", worker_id)
        LOGGER.info("Worker %s deleted", worker_id)


class MaintenanceRegistry:
    def __init__(self, db: DatabaseManager, *, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def create_log(self, payload: MaintenanceCreate) -> MaintenanceLog:
        if self.db.get_bin(payload.bin_id) is None:
            raise NotFoundError("Bin", payload.bin_id)
        if payload.worker_id and self.db.get_worker(payload.worker_id) is None:
            raise NotFoundError("Worker", payload.worker_id)

        now = self.clock()
        log = MaintenanceLog(
            id=uuid4().hex,
            bin_id=payload.bin_id,
            worker_id=payload.worker_id,
            maintenance_type=payload.maintenance_type,
            description=payload.description,
            start_date=now,
            estimated_duration=payload.estimated_duration,
            cost=payload.cost,
            created_at=now,
            updated_at=now,
        )
        self.db.insert_maintenance(log)
        LOGGER.info("Maintenance log created for bin %s", payload.bin_id)
        return log

    def get_log(self, maintenance_id: str) -> MaintenanceLog:
        log = self.db.get_maintenance(maintenance_id)
        if log is None:
            raise NotFoundError("Maintenance log", maintenance_id)
        return log

    def list_logs(
        self,
        *,
        status: str | None = None,
        bin_id: str | None = None,
        worker_id: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[MaintenanceLog], int]:
        return self.db.list_maintenance(
            status=status, bin_id=bin_id, worker_id=worker_id, limit=limit, skip=skip
        )

    def update_log(self, maintenance_id: str, payload: MaintenanceUpdate) -> MaintenanceLog:
        log = self.get_log(maintenance_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        now = self.clock()

        completing = changes.get("status") == "completed" and log.status != "completed"
        if changes.get("status") == "completed":
            changes["completion_date"] = changes.get("completion_date") or log.completion_date or now

        updated = log.model_copy(update={**changes, "updated_at": now})
        self.db.update_maintenance(updated)
        if completing:
            self._advance_schedule(updated)

        LOGGER.info("Maintenance log %s updated", maintenance_id)
        return updated

    def _advance_schedule(self, log: MaintenanceLog) -> None:
        item = self.db.get_bin(log.bin_id)
        if item is None:
            LOGGER.warning("Completed maintenance %s references missing bin %s", log.id, log.bin_id)
            return

        done_at = log.completion_date or self.clock()
        schedule = item.maintenance_schedule.model_copy(
            update={
                "last_maintenance_date": done_at,
                "next_maintenance_date": next_maintenance_after(
                    done_at, item.maintenance_schedule.frequency
                ),
            }
        )
        self.db.update_bin(
            item.model_copy(update={"maintenance_schedule": schedule, "updated_at": self.clock()})
        )
        LOGGER.info(
            "Bin %s next maintenance due %s",
            item.bin_id,
            schedule.next_maintenance_date.isoformat() if schedule.next_maintenance_date else None,
        )

    def delete_log(self, maintenance_id: str) -> None:
        if not self.db.delete_maintenance(maintenance_id):
            raise NotFoundError("Maintenance log", maintenance_id)
        LOGGER.info("Maintenance log %s deleted", maintenance_id)


class ImageReview:
    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    def list_records(
        self,
        *,
        bin_id: str | None = None,
        is_verified: bool | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> list[ImageRecord]:
        return self.db.list_image_records(
            bin_id=bin_id, is_verified=is_verified, limit=limit, skip=skip
        )

    def verify(self, record_id: str, payload: ImageVerify) -> ImageRecord:
        record = self.db.get_image_record(record_id)
        if record is None:
            raise NotFoundError("Image record", record_id)

        verified = record.model_copy(
            update={
                "actual_category": payload.actual_category,
                "is_verified": True,
                "verified_by": payload.verified_by,
                "verification_notes": payload.verification_notes,
            }
        )
        self.db.update_image_record(verified)
        LOGGER.info(
            "Image %s verified as %s (predicted %s)",
            record_id,
            payload.actual_category,
            record.predicted_category,
        )
        return verified

    def delete(self, record_id: str) -> None:
        if not self.db.delete_image_record(record_id):
            raise NotFoundError("Image record", record_id)
        LOGGER.info("Image record %s deleted", record_id)


class FeedbackDesk:
    """Public feedback submissions and their review by administrators."""

    def __init__(self, db: DatabaseManager, *, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def submit(self, payload: FeedbackCreate) -> Feedback:
        now = self.clock()
        feedback = Feedback(
            id=uuid4().hex,
            user_id=payload.user_id or "anonymous",
            email=payload.email.lower(),
            subject=payload.subject.strip(),
            message=payload.message.strip(),
            rating=payload.rating,
            category=payload.category,
            created_at=now,
            updated_at=now,
        )
        self.db.insert_feedback(feedback)
        LOGGER.info("Feedback submitted by %s (%s)", feedback.email, feedback.category)
        return feedback

    def list_feedback(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Feedback], int]:
        return self.db.list_feedback(status=status, category=category, limit=limit, skip=skip)

    def review(self, feedback_id: str, payload: FeedbackReview) -> Feedback:
        feedback = self.db.get_feedback(feedback_id)
        if feedback is None:
            raise NotFoundError("Feedback", feedback_id)

        reviewed = feedback.model_copy(
            update={
                "status": payload.status,
                "reviewed_by": payload.reviewed_by,
                "review_notes": payload.review_notes or "",
                "updated_at": self.clock(),
            }
        )
        self.db.update_feedback(reviewed)
        LOGGER.info("Feedback %s reviewed by %s", feedback_id, payload.reviewed_by)
        return reviewed

    def stats(self) -> dict[str, Any]:
        return self.db.feedback_stats()

    def delete(self, feedback_id: str) -> None:
        if not self.db.delete_feedback(feedback_id):
            raise NotFoundError("Feedback", feedback_id)
        LOGGER.info("Feedback %s deleted", feedback_id)
