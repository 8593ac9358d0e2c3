from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

WasteCategoryLiteral = Literal["metal", "biodegradable", "non-biodegradable", "others"]
BinStatusLiteral = Literal["active", "inactive", "maintenance", "full", "offline"]
MaintenanceFrequencyLiteral = Literal["weekly", "biweekly", "monthly", "quarterly"]
CommandTypeLiteral = Literal["empty", "calibrate", "restart", "maintenance", "test", "reset"]
CommandStatusLiteral = Literal["pending", "sent", "executed", "failed"]
AlertTypeLiteral = Literal[
    "overfilled",
    "sensor_offline",
    "anomaly",
    "maintenance-due",
    "bin-full",
    "malfunction",
    "offline",
]
AlertSeverityLiteral = Literal["low", "medium", "high", "critical"]
MaintenanceStatusLiteral = Literal["pending", "in-progress", "completed", "cancelled"]
MaintenanceTypeLiteral = Literal["cleaning", "repair", "replacement", "inspection"]
WorkerRoleLiteral = Literal["collector", "maintenance", "supervisor"]
FeedbackCategoryLiteral = Literal["bug", "feature-request", "general", "complaint"]
FeedbackStatusLiteral = Literal["new", "reviewed", "resolved"]
WastePeriodLiteral = Literal["day", "week", "month"]

EMAIL_PATTERN = r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$"
PHONE_PATTERN = r"^[0-9]{10,}$"


class Location(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str = Field(min_length=1)


class MaintenanceSchedule(BaseModel):
    frequency: MaintenanceFrequencyLiteral = "monthly"
    last_maintenance_date: datetime | None = None
    next_maintenance_date: datetime | None = None


class Bin(BaseModel):
    bin_id: str
    category: WasteCategoryLiteral
    location: Location
    status: BinStatusLiteral = "active"
    fill_level: float = Field(default=0.0, ge=0, le=100)
    capacity: float = Field(default=100.0, ge=1)
    last_updated: datetime
    last_emptied: datetime | None = None
    installation_date: datetime
    api_key: str | None = None
    is_active: bool = True
    maintenance_schedule: MaintenanceSchedule = Field(default_factory=MaintenanceSchedule)
    created_at: datetime
    updated_at: datetime


class BinCreate(BaseModel):
    bin_id: str = Field(min_length=1, max_length=64)
    category: WasteCategoryLiteral
    location: Location
    capacity: float = Field(default=100.0, ge=1)
    status: BinStatusLiteral = "active"
    maintenance_frequency: MaintenanceFrequencyLiteral = "monthly"


class BinUpdate(BaseModel):
    category: WasteCategoryLiteral | None = None
    location: Location | None = None
    status: BinStatusLiteral | None = None
    fill_level: float | None = Field(default=None, ge=0, le=100)
    capacity: float | None = Field(default=None, ge=1)
    is_active: bool | None = None
    maintenance_frequency: MaintenanceFrequencyLiteral | None = None
    next_maintenance_date: datetime | None = None


class Command(BaseModel):
    id: str
    bin_id: str
    command_type: CommandTypeLiteral
    status: CommandStatusLiteral = "pending"
    issued_by: str
    description: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=1)
    failure_reason: str | None = None
    executed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status == "executed" or (
            self.status == "failed" and self.retry_count >= self.max_retries
        )


class CommandCreate(BaseModel):
    bin_id: str = Field(min_length=1)
    command_type: CommandTypeLiteral
    issued_by: str = Field(min_length=1)
    description: str | None = Field(default=None, max_length=500)
    parameters: dict[str, Any] = Field(default_factory=dict)


class CommandAck(BaseModel):
    status: Literal["executed", "failed"] = "executed"
    executed_at: datetime | None = None
    failure_reason: str | None = Field(default=None, max_length=500)


class DeviceCommand(BaseModel):
    id: str
    command_type: CommandTypeLiteral
    parameters: dict[str, Any]
    description: str | None = None


class Alert(BaseModel):
    id: str
    bin_id: str
    alert_type: AlertTypeLiteral
    severity: AlertSeverityLiteral = "medium"
    message: str = Field(max_length=500)
    is_resolved: bool = False
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None
    action_taken: str | None = None
    created_at: datetime
    updated_at: datetime


class AlertResolve(BaseModel):
    resolved_by: str = Field(min_length=1)
    resolution_notes: str | None = Field(default=None, max_length=500)
    action_taken: str | None = None


class MaintenanceLog(BaseModel):
    id: str
    bin_id: str
    worker_id: str | None = None
    status: MaintenanceStatusLiteral = "pending"
    maintenance_type: MaintenanceTypeLiteral
    description: str = Field(max_length=500)
    start_date: datetime
    completion_date: datetime | None = None
    estimated_duration: float | None = None
    notes: str | None = None
    cost: float = Field(default=0.0, ge=0)
    parts_replaced: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class MaintenanceCreate(BaseModel):
    bin_id: str = Field(min_length=1)
    maintenance_type: MaintenanceTypeLiteral
    description: str = Field(min_length=1, max_length=500)
    worker_id: str | None = None
    estimated_duration: float | None = Field(default=None, ge=0)
    cost: float = Field(default=0.0, ge=0)


class MaintenanceUpdate(BaseModel):
    status: MaintenanceStatusLiteral | None = None
    completion_date: datetime | None = None
    notes: str | None = Field(default=None, max_length=1000)
    parts_replaced: list[str] | None = None
    cost: float | None = Field(default=None, ge=0)


class ImageRecord(BaseModel):
    id: str
    bin_id: str
    image_url: str
    predicted_category: WasteCategoryLiteral | None = None
    actual_category: WasteCategoryLiteral | None = None
    confidence: float | None = Field(default=None, ge=0, le=100)
    is_verified: bool = False
    verified_by: str | None = None
    verification_notes: str | None = None
    captured_at: datetime
    created_at: datetime


class ImageVerify(BaseModel):
    actual_category: WasteCategoryLiteral
    verified_by: str = Field(min_length=1)
    verification_notes: str | None = Field(default=None, max_length=500)


class EmergencyContact(BaseModel):
    name: str | None = None
    phone: str | None = None


class Worker(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    role: WorkerRoleLiteral
    assigned_bins: list[str] = Field(default_factory=list)
    is_active: bool = True
    join_date: datetime
    address: str | None = None
    emergency_contact: EmergencyContact | None = None
    performance_rating: float = Field(default=0.0, ge=0, le=5)
    created_at: datetime
    updated_at: datetime


class WorkerCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN)
    phone: str = Field(pattern=PHONE_PATTERN)
    role: WorkerRoleLiteral
    address: str | None = Field(default=None, max_length=200)
    emergency_contact: EmergencyContact | None = None


class WorkerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=50)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    role: WorkerRoleLiteral | None = None
    address: str | None = Field(default=None, max_length=200)
    emergency_contact: EmergencyContact | None = None
    is_active: bool | None = None
    performance_rating: float | None = Field(default=None, ge=0, le=5)


class AssignBinsRequest(BaseModel):
    bin_ids: list[str]


class Feedback(BaseModel):
    id: str
    user_id: str = "anonymous"
    email: str
    subject: str
    message: str
    rating: int = Field(default=3, ge=1, le=5)
    category: FeedbackCategoryLiteral = "general"
    status: FeedbackStatusLiteral = "new"
    reviewed_by: str | None = None
    review_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class FeedbackCreate(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    subject: str = Field(min_length=5, max_length=100)
    message: str = Field(min_length=10, max_length=2000)
    rating: int = Field(default=3, ge=1, le=5)
    category: FeedbackCategoryLiteral = "general"
    user_id: str | None = None


class FeedbackReview(BaseModel):
    status: FeedbackStatusLiteral
    reviewed_by: str = Field(min_length=1)
    review_notes: str | None = Field(default=None, max_length=500)


class DeviceUpdate(BaseModel):
    bin_id: str = Field(min_length=1)
    fill_level: float
    sensor_status: str = Field(min_length=1)
    image_url: str | None = None


class SweepReport(BaseModel):
    started_at: datetime
    finished_at: datetime
    raised: dict[str, int] = Field(default_factory=dict)
    failed_checks: list[str] = Field(default_factory=list)

    @property
    def total_raised(self) -> int:
        return sum(self.raised.values())
