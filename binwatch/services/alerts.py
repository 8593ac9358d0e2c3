from __future__ import annotations

import logging

from binwatch.errors import NotFoundError, ValidationFailedError
from binwatch.models.database import DatabaseManager
from binwatch.models.schemas import Alert, AlertResolve
from binwatch.services.commands import Clock, utc_now

LOGGER = logging.getLogger(__name__)


class AlertLedger:
    def __init__(self, db: DatabaseManager, *, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def get_alert(self, alert_id: str) -> Alert:
        alert = self.db.get_alert(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        return alert

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
        return self.db.list_alerts(
            bin_id=bin_id,
            alert_type=alert_type,
            is_resolved=is_resolved,
            severity=severity,
            limit=limit,
            skip=skip,
        )

    def resolve_alert(self, alert_id: str, payload: AlertResolve) -> Alert:
        alert = self.get_alert(alert_id)
        if alert.is_resolved:
            raise ValidationFailedError(f"Alert {alert_id} is already resolved")

        now = self.clock()
        resolved = alert.model_copy(
            update={
                "is_resolved": True,
                "resolved_at": now,
                "resolved_by": payload.resolved_by,
                "resolution_notes": payload.resolution_notes,
                "action_taken": payload.action_taken,
                "updated_at": now,
            }
        )
        self.db.update_alert(resolved)
        LOGGER.info("Alert %s (%s) resolved by %s", alert_id, alert.alert_type, payload.resolved_by)
        return resolved
