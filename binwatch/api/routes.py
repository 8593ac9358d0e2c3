from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import APIRouter, Query, Request, status

from binwatch.analytics.statistics import (
    WASTE_PERIODS,
    bin_status_overview,
    category_performance,
    daily_trends,
    dashboard_summary,
    waste_count,
)
from binwatch.models.schemas import (
    AlertResolve,
    AssignBinsRequest,
    BinCreate,
    BinUpdate,
    CommandCreate,
    FeedbackCreate,
    FeedbackReview,
    ImageVerify,
    MaintenanceCreate,
    MaintenanceUpdate,
    WastePeriodLiteral,
    WorkerCreate,
    WorkerUpdate,
)

router = APIRouter(prefix="/api")


def _page(items: list[Any], total: int, limit: int, skip: int) -> dict[str, Any]:
    return {
        "items": [item.model_dump(mode="json") for item in items],
        "pagination": {"total": total, "limit": limit, "skip": skip},
    }


# -- bins ----------------------------------------------------------------


@router.get("/bins")
async def list_bins(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    category: str | None = None,
    is_active: bool | None = None,
) -> dict[str, Any]:
    bins = request.app.state.bins.list_bins(status=status_filter, category=category, is_active=is_active)
    return {"count": len(bins), "items": [item.model_dump(mode="json") for item in bins]}


@router.post("/bins", status_code=status.HTTP_201_CREATED)
async def create_bin(payload: BinCreate, request: Request) -> dict[str, Any]:
    return request.app.state.bins.create_bin(payload).model_dump(mode="json")


@router.get("/bins/{bin_id}")
async def get_bin(bin_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.bins.get_bin(bin_id).model_dump(mode="json")


@router.patch("/bins/{bin_id}")
async def update_bin(bin_id: str, payload: BinUpdate, request: Request) -> dict[str, Any]:
    return request.app.state.bins.update_bin(bin_id, payload).model_dump(mode="json")


@router.delete("/bins/{bin_id}")
async def delete_bin(bin_id: str, request: Request) -> dict[str, Any]:
    request.app.state.bins.delete_bin(bin_id)
    return {"ok": True, "bin_id": bin_id}


# -- commands ------------------------------------------------------------


@router.post("/commands", status_code=status.HTTP_201_CREATED)
async def create_command(payload: CommandCreate, request: Request) -> dict[str, Any]:
    command = request.app.state.commands.create_command(
        payload.bin_id,
        payload.command_type,
        payload.issued_by,
        description=payload.description,
        parameters=payload.parameters,
    )
    return command.model_dump(mode="json")


@router.get("/commands")
async def list_commands(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    bin_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    items, total = request.app.state.commands.list_commands(
        status=status_filter, bin_id=bin_id, limit=limit, skip=skip
    )
    return _page(items, total, limit, skip)


@router.get("/commands/{command_id}")
async def get_command(command_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.commands.get_command(command_id).model_dump(mode="json")


@router.delete("/commands/{command_id}")
async def delete_command(command_id: str, request: Request) -> dict[str, Any]:
    request.app.state.commands.delete_command(command_id)
    return {"ok": True, "command_id": command_id}


# -- alerts --------------------------------------------------------------


@router.get("/alerts")
async def list_alerts(
    request: Request,
    bin_id: str | None = None,
    alert_type: str | None = None,
    is_resolved: bool | None = None,
    severity: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    items, total = request.app.state.alerts.list_alerts(
        bin_id=bin_id,
        alert_type=alert_type,
        is_resolved=is_resolved,
        severity=severity,
        limit=limit,
        skip=skip,
    )
    return _page(items, total, limit, skip)


@router.get("/alerts/{alert_id}")
async def get_alert(alert_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.alerts.get_alert(alert_id).model_dump(mode="json")


@router.patch("/alerts/{alert_id}/resolve")
async def resolve_alert(alert_id: str, payload: AlertResolve, request: Request) -> dict[str, Any]:
    return request.app.state.alerts.resolve_alert(alert_id, payload).model_dump(mode="json")


@router.post("/anomalies/sweep")
async def run_sweep(request: Request) -> dict[str, Any]:
    report = await request.app.state.sweeper.sweep_once()
    payload = report.model_dump(mode="json")
    payload["total_raised"] = report.total_raised
    return payload


# -- maintenance ---------------------------------------------------------


@router.post("/maintenance", status_code=status.HTTP_201_CREATED)
async def create_maintenance(payload: MaintenanceCreate, request: Request) -> dict[str, Any]:
    return request.app.state.maintenance.create_log(payload).model_dump(mode="json")


@router.get("/maintenance")
async def list_maintenance(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    bin_id: str | None = None,
    worker_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    items, total = request.app.state.maintenance.list_logs(
        status=status_filter, bin_id=bin_id, worker_id=worker_id, limit=limit, skip=skip
    )
    return _page(items, total, limit, skip)


@router.get("/maintenance/{maintenance_id}")
async def get_maintenance(maintenance_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.maintenance.get_log(maintenance_id).model_dump(mode="json")


@router.patch("/maintenance/{maintenance_id}")
async def update_maintenance(
    maintenance_id: str, payload: MaintenanceUpdate, request: Request
) -> dict[str, Any]:
    return request.app.state.maintenance.update_log(maintenance_id, payload).model_dump(mode="json")


@router.delete("/maintenance/{maintenance_id}")
async def delete_maintenance(maintenance_id: str, request: Request) -> dict[str, Any]:
    request.app.state.maintenance.delete_log(maintenance_id)
    return {"ok": True, "maintenance_id": maintenance_id}


# -- workers -------------------------------------------------------------


@router.post("/workers", status_code=status.HTTP_201_CREATED)
async def create_worker(payload: WorkerCreate, request: Request) -> dict[str, Any]:
    return request.app.state.workers.create_worker(payload).model_dump(mode="json")


@router.get("/workers")
async def list_workers(
    request: Request,
    role: str | None = None,
    is_active: bool | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    items, total = request.app.state.workers.list_workers(
        role=role, is_active=is_active, limit=limit, skip=skip
    )
    return _page(items, total, limit, skip)


@router.get("/workers/{worker_id}")
async def get_worker(worker_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.workers.get_worker(worker_id).model_dump(mode="json")


@router.patch("/workers/{worker_id}")
async def update_worker(worker_id: str, payload: WorkerUpdate, request: Request) -> dict[str, Any]:
    return request.app.state.workers.update_worker(worker_id, payload).model_dump(mode="json")


@router.patch("/workers/{worker_id}/assign-bins")
async def assign_bins(worker_id: str, payload: AssignBinsRequest, request: Request) -> dict[str, Any]:
    return request.app.state.workers.assign_bins(worker_id, payload.bin_ids).model_dump(mode="json")


@router.get("/workers/{worker_id}/stats")
async def worker_stats(worker_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.workers.worker_stats(worker_id)


@router.delete("/workers/{worker_id}")
async def delete_worker(worker_id: str, request: Request) -> dict[str, Any]:
    request.app.state.workers.delete_worker(worker_id)
    return {"ok": True, "worker_id": worker_id}


# -- images --------------------------------------------------------------


@router.get("/images")
async def list_images(
    request: Request,
    bin_id: str | None = None,
    is_verified: bool | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
) -> list[dict[str, Any]]:
    records = request.app.state.images.list_records(
        bin_id=bin_id, is_verified=is_verified, limit=limit, skip=skip
    )
    return [record.model_dump(mode="json") for record in records]


@router.patch("/images/{record_id}/verify")
async def verify_image(record_id: str, payload: ImageVerify, request: Request) -> dict[str, Any]:
    return request.app.state.images.verify(record_id, payload).model_dump(mode="json")


@router.delete("/images/{record_id}")
async def delete_image(record_id: str, request: Request) -> dict[str, Any]:
    request.app.state.images.delete(record_id)
    return {"ok": True, "record_id": record_id}


# -- feedback ------------------------------------------------------------


@router.post("/feedback", status_code=status.HTTP_201_CREATED)
async def submit_feedback(payload: FeedbackCreate, request: Request) -> dict[str, Any]:
    feedback = request.app.state.feedback.submit(payload)
    return {"feedback_id": feedback.id, "status": feedback.status}


@router.get("/feedback")
async def list_feedback(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    category: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    items, total = request.app.state.feedback.list_feedback(
        status=status_filter, category=category, limit=limit, skip=skip
    )
    return _page(items, total, limit, skip)


@router.get("/feedback/stats")
async def feedback_stats(request: Request) -> dict[str, Any]:
    return request.app.state.feedback.stats()


@router.patch("/feedback/{feedback_id}")
async def review_feedback(feedback_id: str, payload: FeedbackReview, request: Request) -> dict[str, Any]:
    return request.app.state.feedback.review(feedback_id, payload).model_dump(mode="json")


@router.delete("/feedback/{feedback_id}")
async def delete_feedback(feedback_id: str, request: Request) -> dict[str, Any]:
    request.app.state.feedback.delete(feedback_id)
    return {"ok": True, "feedback_id": feedback_id}


# -- analytics -----------------------------------------------------------


@router.get("/analytics/bin-status")
async def analytics_bin_status(request: Request) -> dict[str, Any]:
    return bin_status_overview(request.app.state.db.list_bins())


@router.get("/analytics/dashboard/summary")
async def analytics_dashboard_summary(request: Request) -> dict[str, Any]:
    db = request.app.state.db
    return dashboard_summary(
        db.list_bins(),
        full_level=request.app.state.config.thresholds.dashboard_full_level,
        unresolved_alerts=db.count_alerts(is_resolved=False),
        critical_alerts=db.count_alerts(is_resolved=False, severity="critical"),
        total_images=db.count_image_records(),
        unverified_images=db.count_image_records(is_verified=False),
        pending_commands=db.count_commands(status="pending"),
    )


@router.get("/analytics/waste-count")
async def analytics_waste_count(request: Request, period: WastePeriodLiteral = "day") -> dict[str, Any]:
    since = datetime.now(tz=UTC) - WASTE_PERIODS[period]
    records = request.app.state.db.find_verified_images(captured_since=since)
    return {"period": period, "categories": waste_count(records)}


@router.get("/analytics/trends")
async def analytics_trends(request: Request, days: int = Query(default=30, ge=1, le=365)) -> dict[str, Any]:
    today = datetime.now(tz=UTC).date()
    since = datetime(today.year, today.month, today.day, tzinfo=UTC) - timedelta(days=days - 1)
    records = request.app.state.db.find_verified_images(captured_since=since)
    return {"days": days, "trends": daily_trends(records, days=days, end=today)}


@router.get("/analytics/category-performance")
async def analytics_category_performance(request: Request) -> list[dict[str, Any]]:
    return category_performance(request.app.state.db.list_image_records(limit=None))
