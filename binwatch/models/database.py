from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from binwatch.errors import DependencyUnavailableError
from binwatch.models.schemas import (
    Alert,
    Bin,
    Command,
    Feedback,
    ImageRecord,
    Location,
    MaintenanceLog,
    MaintenanceSchedule,
    Worker,
)

LOGGER = logging.getLogger(__name__)

# Columns stored as JSON text and decoded back on read.
_JSON_COLUMNS: dict[str, set[str]] = {
    "commands": {"parameters"},
    "alerts": set(),
    "maintenance_logs": {"parts_replaced"},
    "image_records": set(),
    "workers": {"assigned_bins", "emergency_contact"},
    "feedback": set(),
}

_BOOL_COLUMNS: dict[str, set[str]] = {
    "commands": set(),
    "alerts": {"is_resolved"},
    "maintenance_logs": set(),
    "image_records": {"is_verified"},
    "workers": {"is_active"},
    "feedback": set(),
}


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def _decode_row(table: str, row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for column in _JSON_COLUMNS[table]:
        if data.get(column) is not None:
            data[column] = json.loads(data[column])
    for column in _BOOL_COLUMNS[table]:
        if data.get(column) is not None:
            data[column] = bool(data[column])
    return data


def _bin_to_record(item: Bin) -> dict[str, Any]:
    schedule = item.maintenance_schedule
    return {
        "bin_id": item.bin_id,
        "category": item.category,
        "location": json.dumps(item.location.model_dump()),
        "status": item.status,
        "fill_level": item.fill_level,
        "capacity": item.capacity,
        "last_updated": to_iso(item.last_updated),
        "last_emptied": to_iso(item.last_emptied) if item.last_emptied else None,
        "installation_date": to_iso(item.installation_date),
        "api_key": item.api_key,
        "is_active": int(item.is_active),
        "maintenance_frequency": schedule.frequency,
        "last_maintenance_date": (
            to_iso(schedule.last_maintenance_date) if schedule.last_maintenance_date else None
        ),
        "next_maintenance_date": (
            to_iso(schedule.next_maintenance_date) if schedule.next_maintenance_date else None
        ),
        "created_at": to_iso(item.created_at),
        "updated_at": to_iso(item.updated_at),
    }


def _row_to_bin(row: sqlite3.Row) -> Bin:
    data = dict(row)
    return Bin(
        bin_id=data["bin_id"],
        category=data["category"],
        location=Location.model_validate(json.loads(data["location"])),
        status=data["status"],
        fill_level=data["fill_level"],
        capacity=data["capacity"],
        last_updated=data["last_updated"],
        last_emptied=data.get("last_emptied"),
        installation_date=data["installation_date"],
        api_key=data.get("api_key"),
        is_active=bool(data["is_active"]),
        maintenance_schedule=MaintenanceSchedule(
            frequency=data["maintenance_frequency"],
            last_maintenance_date=data.get("last_maintenance_date"),
            next_maintenance_date=data.get("next_maintenance_date"),
        ),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


class DatabaseManager:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            except sqlite3.Error as exc:
                LOGGER.error("Store operation failed on %s: %s", self.db_path, exc)
                raise DependencyUnavailableError(str(exc)) from exc

    def initialize(self) -> None:
        with self._session() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS bins (
                    bin_id TEXT PRIMARY KEY,
                    category TEXT NOT NULL,
                    location TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    fill_level REAL NOT NULL DEFAULT 0
                        CHECK (fill_level >= 0 AND fill_level <= 100),
                    capacity REAL NOT NULL DEFAULT 100,
                    last_updated TEXT NOT NULL,
                    last_emptied TEXT,
                    installation_date TEXT NOT NULL,
                    api_key TEXT UNIQUE,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    maintenance_frequency TEXT NOT NULL DEFAULT 'monthly',
                    last_maintenance_date TEXT,
                    next_maintenance_date TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_bins_active_updated
                    ON bins(is_active, last_updated DESC);

                CREATE TABLE IF NOT EXISTS commands (
                    id TEXT PRIMARY KEY,
                    bin_id TEXT NOT NULL REFERENCES bins(bin_id) ON DELETE CASCADE,
                    command_type TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    issued_by TEXT NOT NULL,
                    description TEXT,
                    parameters TEXT NOT NULL DEFAULT '{}',
                    retry_count INTEGER NOT NULL DEFAULT 0,
                    max_retries INTEGER NOT NULL DEFAULT 3,
                    failure_reason TEXT,
                    executed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (retry_count <= max_retries)
                );

                CREATE INDEX IF NOT EXISTS idx_commands_bin_status
                    ON commands(bin_id, status, created_at);

                CREATE TABLE IF NOT EXISTS alerts (
                    id TEXT PRIMARY KEY,
                    bin_id TEXT NOT NULL REFERENCES bins(bin_id) ON DELETE CASCADE,
                    alert_type TEXT NOT NULL,
                    severity TEXT NOT NULL DEFAULT 'medium',
                    message TEXT NOT NULL,
                    is_resolved INTEGER NOT NULL DEFAULT 0,
                    resolved_at TEXT,
                    resolved_by TEXT,
                    resolution_notes TEXT,
                    action_taken TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_alerts_bin_type
                    ON alerts(bin_id, alert_type, is_resolved);

                -- Low-confidence anomaly alerts dedup by message, not by type.
                CREATE UNIQUE INDEX IF NOT EXISTS uq_alerts_open_per_type
                    ON alerts(bin_id, alert_type)
                    WHERE is_resolved = 0 AND alert_type != 'anomaly';

                CREATE TABLE IF NOT EXISTS maintenance_logs (
                    id TEXT PRIMARY KEY,
                    bin_id TEXT NOT NULL REFERENCES bins(bin_id) ON DELETE CASCADE,
                    worker_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    maintenance_type TEXT NOT NULL,
                    description TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    completion_date TEXT,
                    estimated_duration REAL,
                    notes TEXT,
                    cost REAL NOT NULL DEFAULT 0,
                    parts_replaced TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_maintenance_worker_status
                    ON maintenance_logs(worker_id, status);

                CREATE TABLE IF NOT EXISTS image_records (
                    id TEXT PRIMARY KEY,
                    bin_id TEXT NOT NULL REFERENCES bins(bin_id) ON DELETE CASCADE,
                    image_url TEXT NOT NULL,
                    predicted_category TEXT,
                    actual_category TEXT,
                    confidence REAL,
                    is_verified INTEGER NOT NULL DEFAULT 0,
                    verified_by TEXT,
                    verification_notes TEXT,
                    captured_at TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_images_verified_created
                    ON image_records(is_verified, created_at DESC);

                CREATE TABLE IF NOT EXISTS workers (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    phone TEXT NOT NULL,
                    role TEXT NOT NULL,
                    assigned_bins TEXT NOT NULL DEFAULT '[]',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    join_date TEXT NOT NULL,
                    address TEXT,
                    emergency_contact TEXT,
                    performance_rating REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS feedback (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    email TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    message TEXT NOT NULL,
                    rating INTEGER NOT NULL DEFAULT 3,
                    category TEXT NOT NULL DEFAULT 'general',
                    status TEXT NOT NULL DEFAULT 'new',
                    reviewed_by TEXT,
                    review_notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_feedback_status_created
                    ON feedback(status, created_at DESC);
                """
            )
            conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- generic helpers -------------------------------------------------

    def _insert(self, table: str, record: dict[str, Any]) -> None:
        columns = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        with self._session() as conn:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                [_encode(value) for value in record.values()],
            )
            conn.commit()

    def _update(self, table: str, key_column: str, key: str, record: dict[str, Any]) -> bool:
        fields = {name: value for name, value in record.items() if name != key_column}
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._session() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE {key_column} = ?",
                [_encode(value) for value in fields.values()] + [key],
            )
            conn.commit()
        return cursor.rowcount > 0

    def _delete(self, table: str, key_column: str, key: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE {key_column} = ?", (key,))
            conn.commit()
        return cursor.rowcount > 0

    def _fetch_one(self, table: str, query: str, args: list[Any]) -> dict[str, Any] | None:
        with self._session() as conn:
            row = conn.execute(query, args).fetchone()
        return _decode_row(table, row) if row else None

    def _fetch_all(self, table: str, query: str, args: list[Any]) -> list[dict[str, Any]]:
        with self._session() as conn:
            rows = conn.execute(query, args).fetchall()
        return [_decode_row(table, row) for row in rows]

    def _count(self, table: str, where: str, args: list[Any]) -> int:
        with self._session() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS total FROM {table} {where}", args).fetchone()
        return int(row["total"])

    @staticmethod
    def _where(filters: dict[str, Any]) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        args: list[Any] = []
        for column, value in filters.items():
            if value is None:
                continue
            clauses.append(f"{column} = ?")
            args.append(_encode(value))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, args

    # -- bins ------------------------------------------------------------

    def insert_bin(self, item: Bin) -> None:
        self._insert("bins", _bin_to_record(item))

    def update_bin(self, item: Bin) -> bool:
        return self._update("bins", "bin_id", item.bin_id, _bin_to_record(item))

    def delete_bin(self, bin_id: str) -> bool:
        return self._delete("bins", "bin_id", bin_id)

    def get_bin(self, bin_id: str) -> Bin | None:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM bins WHERE bin_id = ?", (bin_id,)).fetchone()
        return _row_to_bin(row) if row else None

    def get_bin_by_api_key(self, api_key: str) -> Bin | None:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM bins WHERE api_key = ?", (api_key,)).fetchone()
        return _row_to_bin(row) if row else None

    def list_bins(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        is_active: bool | None = None,
    ) -> list[Bin]:
        where, args = self._where({"status": status, "category": category, "is_active": is_active})
        with self._session() as conn:
            rows = conn.execute(f"SELECT * FROM bins {where} ORDER BY rowid ASC", args).fetchall()
        return [_row_to_bin(row) for row in rows]

    def find_overfilled_bins(self, *, level: float, updated_since: datetime) -> list[Bin]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM bins
                WHERE is_active = 1 AND fill_level > ? AND last_updated > ?
                ORDER BY rowid ASC
                """,
                (level, to_iso(updated_since)),
            ).fetchall()
        return [_row_to_bin(row) for row in rows]

    def find_stale_bins(self, *, updated_before: datetime) -> list[Bin]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM bins
                WHERE is_active = 1 AND last_updated < ?
                ORDER BY rowid ASC
                """,
                (to_iso(updated_before),),
            ).fetchall()
        return [_row_to_bin(row) for row in rows]

    def find_maintenance_due_bins(self, *, due_by: datetime) -> list[Bin]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM bins
                WHERE is_active = 1
                  AND next_maintenance_date IS NOT NULL
                  AND next_maintenance_date <= ?
                ORDER BY rowid ASC
                """,
                (to_iso(due_by),),
            ).fetchall()
        return [_row_to_bin(row) for row in rows]

    # -- commands --------------------------------------------------------

    def insert_command(self, command: Command) -> None:
        self._insert("commands", command.model_dump())

    def get_command(self, command_id: str) -> Command | None:
        row = self._fetch_one("commands", "SELECT * FROM commands WHERE id = ?", [command_id])
        return Command.model_validate(row) if row else None

    def modify_command(
        self,
        command_id: str,
        change: Callable[[Command], Command],
    ) -> Command | None:
        """Apply ``change`` to one command as a single read-modify-write."""
        with self._session() as conn:
            row = conn.execute("SELECT * FROM commands WHERE id = ?", (command_id,)).fetchone()
            if row is None:
                return None
            updated = change(Command.model_validate(_decode_row("commands", row)))
            record = {k: v for k, v in updated.model_dump().items() if k != "id"}
            conn.execute(
                f"UPDATE commands SET {', '.join(f'{k} = ?' for k in record)} WHERE id = ?",
                [_encode(value) for value in record.values()] + [command_id],
            )
            conn.commit()
        return updated

    def delete_command(self, command_id: str) -> bool:
        return self._delete("commands", "id", command_id)

    def list_pending_commands(self, bin_id: str, *, limit: int) -> list[Command]:
        rows = self._fetch_all(
            "commands",
            """
            SELECT * FROM commands
            WHERE bin_id = ? AND status = 'pending'
            ORDER BY created_at ASC, rowid ASC
            LIMIT ?
            """,
            [bin_id, limit],
        )
        return [Command.model_validate(row) for row in rows]

    def list_commands(
        self,
        *,
        status: str | None = None,
        bin_id: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Command], int]:
        where, args = self._where({"status": status, "bin_id": bin_id})
        rows = self._fetch_all(
            "commands",
            f"SELECT * FROM commands {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            args + [limit, skip],
        )
        return [Command.model_validate(row) for row in rows], self._count("commands", where, args)

    def count_commands(self, *, status: str | None = None) -> int:
        where, args = self._where({"status": status})
        return self._count("commands", where, args)

    # -- alerts ----------------------------------------------------------

    def insert_alert(self, alert: Alert) -> bool:
        """Insert an alert; returns False when an open alert of the same type already exists."""
        try:
            self._insert("alerts", alert.model_dump())
        except sqlite3.IntegrityError:
            LOGGER.info(
                "Open %s alert already present for bin %s, skipping insert",
                alert.alert_type,
                alert.bin_id,
            )
            return False
        return True

    def find_open_alert(
        self,
        bin_id: str,
        alert_type: str,
        *,
        message_contains: str | None = None,
    ) -> Alert | None:
        query = "SELECT * FROM alerts WHERE bin_id = ? AND alert_type = ? AND is_resolved = 0"
        args: list[Any] = [bin_id, alert_type]
        if message_contains:
            # LIKE is case-insensitive for ASCII in sqlite.
            query += " AND message LIKE ?"
            args.append(f"%{message_contains}%")
        row = self._fetch_one("alerts", query + " LIMIT 1", args)
        return Alert.model_validate(row) if row else None

    def get_alert(self, alert_id: str) -> Alert | None:
        row = self._fetch_one("alerts", "SELECT * FROM alerts WHERE id = ?", [alert_id])
        return Alert.model_validate(row) if row else None

    def update_alert(self, alert: Alert) -> bool:
        return self._update("alerts", "id", alert.id, alert.model_dump())

    def list_alerts(
        self,
        *,
        bin_id: str | None = None,
        alert_type: str | None = None,
        is_resolved: bool | None = None,
        severity: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Alert], int]:
        where, args = self._where(
            {
                "bin_id": bin_id,
                "alert_type": alert_type,
                "is_resolved": is_resolved,
                "severity": severity,
            }
        )
        rows = self._fetch_all(
            "alerts",
            f"SELECT * FROM alerts {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            args + [limit, skip],
        )
        return [Alert.model_validate(row) for row in rows], self._count("alerts", where, args)

    def count_alerts(self, *, is_resolved: bool | None = None, severity: str | None = None) -> int:
        where, args = self._where({"is_resolved": is_resolved, "severity": severity})
        return self._count("alerts", where, args)

    # -- maintenance logs ------------------------------------------------

    def insert_maintenance(self, log: MaintenanceLog) -> None:
        self._insert("maintenance_logs", log.model_dump())

    def get_maintenance(self, maintenance_id: str) -> MaintenanceLog | None:
        row = self._fetch_one(
            "maintenance_logs", "SELECT * FROM maintenance_logs WHERE id = ?", [maintenance_id]
        )
        return MaintenanceLog.model_validate(row) if row else None

    def update_maintenance(self, log: MaintenanceLog) -> bool:
        return self._update("maintenance_logs", "id", log.id, log.model_dump())

    def delete_maintenance(self, maintenance_id: str) -> bool:
        return self._delete("maintenance_logs", "id", maintenance_id)

    def list_maintenance(
        self,
        *,
        status: str | None = None,
        bin_id: str | None = None,
        worker_id: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[MaintenanceLog], int]:
        where, args = self._where({"status": status, "bin_id": bin_id, "worker_id": worker_id})
        rows = self._fetch_all(
            "maintenance_logs",
            f"""
            SELECT * FROM maintenance_logs {where}
            ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?
            """,
            args + [limit, skip],
        )
        logs = [MaintenanceLog.model_validate(row) for row in rows]
        return logs, self._count("maintenance_logs", where, args)

    def maintenance_stats_for_worker(self, worker_id: str) -> dict[str, Any]:
        with self._session() as conn:
            status_rows = conn.execute(
                """
                SELECT status, COUNT(*) AS total
                FROM maintenance_logs
                WHERE worker_id = ?
                GROUP BY status
                """,
                (worker_id,),
            ).fetchall()
            cost_row = conn.execute(
                """
                SELECT COALESCE(SUM(cost), 0) AS total_cost, COALESCE(AVG(cost), 0) AS avg_cost
                FROM maintenance_logs
                WHERE worker_id = ?
                """,
                (worker_id,),
            ).fetchone()
        return {
            "by_status": {str(row["status"]): int(row["total"]) for row in status_rows},
            "total_cost": float(cost_row["total_cost"]),
            "avg_cost": float(cost_row["avg_cost"]),
        }

    # -- image records ---------------------------------------------------

    def insert_image_record(self, record: ImageRecord) -> None:
        self._insert("image_records", record.model_dump())

    def get_image_record(self, record_id: str) -> ImageRecord | None:
        row = self._fetch_one("image_records", "SELECT * FROM image_records WHERE id = ?", [record_id])
        return ImageRecord.model_validate(row) if row else None

    def update_image_record(self, record: ImageRecord) -> bool:
        return self._update("image_records", "id", record.id, record.model_dump())

    def list_image_records(
        self,
        *,
        bin_id: str | None = None,
        is_verified: bool | None = None,
        limit: int | None = 50,
        skip: int = 0,
    ) -> list[ImageRecord]:
        where, args = self._where({"bin_id": bin_id, "is_verified": is_verified})
        query = f"SELECT * FROM image_records {where} ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            args = args + [limit, skip]
        rows = self._fetch_all("image_records", query, args)
        return [ImageRecord.model_validate(row) for row in rows]

    def find_low_confidence_images(self, *, created_since: datetime, below: float) -> list[ImageRecord]:
        rows = self._fetch_all(
            "image_records",
            """
            SELECT * FROM image_records
            WHERE is_verified = 0 AND created_at >= ? AND confidence IS NOT NULL AND confidence < ?
            ORDER BY created_at ASC, rowid ASC
            """,
            [to_iso(created_since), below],
        )
        return [ImageRecord.model_validate(row) for row in rows]

    def count_image_records(self, *, is_verified: bool | None = None) -> int:
        where, args = self._where({"is_verified": is_verified})
        return self._count("image_records", where, args)

    def delete_image_record(self, record_id: str) -> bool:
        return self._delete("image_records", "id", record_id)

    def find_verified_images(self, *, captured_since: datetime) -> list[ImageRecord]:
        rows = self._fetch_all(
            "image_records",
            """
            SELECT * FROM image_records
            WHERE is_verified = 1 AND captured_at >= ?
            ORDER BY captured_at ASC, rowid ASC
            """,
            [to_iso(captured_since)],
        )
        return [ImageRecord.model_validate(row) for row in rows]

    # -- workers ---------------------------------------------------------

    def insert_worker(self, worker: Worker) -> None:
        self._insert("workers", worker.model_dump())

    def get_worker(self, worker_id: str) -> Worker | None:
        row = self._fetch_one("workers", "SELECT * FROM workers WHERE id = ?", [worker_id])
        return Worker.model_validate(row) if row else None

    def get_worker_by_email(self, email: str) -> Worker | None:
        row = self._fetch_one("workers", "SELECT * FROM workers WHERE email = ?", [email])
        return Worker.model_validate(row) if row else None

    def update_worker(self, worker: Worker) -> bool:
        return self._update("workers", "id", worker.id, worker.model_dump())

    def delete_worker(self, worker_id: str) -> bool:
        return self._delete("workers", "id", worker_id)

    def list_workers(
        self,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Worker], int]:
        where, args = self._where({"role": role, "is_active": is_active})
        rows = self._fetch_all(
            "workers",
            f"SELECT * FROM workers {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            args + [limit, skip],
        )
        return [Worker.model_validate(row) for row in rows], self._count("workers", where, args)

    # -- feedback --------------------------------------------------------

    def insert_feedback(self, feedback: Feedback) -> None:
        self._insert("feedback", feedback.model_dump())

    def get_feedback(self, feedback_id: str) -> Feedback | None:
        row = self._fetch_one("feedback", "SELECT * FROM feedback WHERE id = ?", [feedback_id])
        return Feedback.model_validate(row) if row else None

    def update_feedback(self, feedback: Feedback) -> bool:
        return self._update("feedback", "id", feedback.id, feedback.model_dump())

    def delete_feedback(self, feedback_id: str) -> bool:
        return self._delete("feedback", "id", feedback_id)

    def list_feedback(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Feedback], int]:
        where, args = self._where({"status": status, "category": category})
        rows = self._fetch_all(
            "feedback",
            f"SELECT * FROM feedback {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            args + [limit, skip],
        )
        return [Feedback.model_validate(row) for row in rows], self._count("feedback", where, args)

    def feedback_stats(self) -> dict[str, Any]:
        with self._session() as conn:
            category_rows = conn.execute(
                """
                SELECT category, COUNT(*) AS total, AVG(rating) AS avg_rating
                FROM feedback
                GROUP BY category
                ORDER BY category
                """
            ).fetchall()
            status_rows = conn.execute(
                "SELECT status, COUNT(*) AS total FROM feedback GROUP BY status ORDER BY status"
            ).fetchall()
            overall = conn.execute(
                "SELECT COUNT(*) AS total, COALESCE(AVG(rating), 0) AS avg_rating FROM feedback"
            ).fetchone()
        return {
            "by_category": [
                {
                    "category": row["category"],
                    "count": int(row["total"]),
                    "avg_rating": round(float(row["avg_rating"]), 2),
                }
                for row in category_rows
            ],
            "by_status": [{"status": row["status"], "count": int(row["total"])} for row in status_rows],
            "overall": {
                "total_feedback": int(overall["total"]),
                "avg_rating": round(float(overall["avg_rating"]), 2),
            },
        }
