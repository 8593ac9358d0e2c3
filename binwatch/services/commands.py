"""Command queueing and device acknowledgment.

A command starts ``pending`` and stays there until the device reports an
outcome: success moves it to ``executed``; a failure bumps ``retry_count`` and
either puts it back in the queue or, once retries are exhausted, marks it
``failed`` with the reported reason. Polling never changes state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from binwatch.config import CommandPolicy
from binwatch.errors import NotFoundError, ValidationFailedError
from binwatch.models.database import DatabaseManager
from binwatch.models.schemas import Command

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class CommandLifecycleManager:
    def __init__(
        self,
        db: DatabaseManager,
        policy: CommandPolicy,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.policy = policy
        self.clock = clock

    def create_command(
        self,
        bin_id: str,
        command_type: str,
        issued_by: str,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> Command:
        if self.db.get_bin(bin_id) is None:
            LOGGER.error("Cannot queue %s command: bin %s not found", command_type, bin_id)
            raise NotFoundError("Bin", bin_id)

        now = self.clock()
        command = Command(
            id=uuid4().hex,
            bin_id=bin_id,
            command_type=command_type,
            status="pending",
            issued_by=issued_by,
            description=description,
            parameters=parameters or {},
            retry_count=0,
            max_retries=self.policy.max_retries,
            created_at=now,
            updated_at=now,
        )
        self.db.insert_command(command)
        LOGGER.info("Created command %s for bin %s: %s", command.id, bin_id, command_type)
        return command

    def get_pending_commands(self, bin_id: str) -> list[Command]:
        """Oldest-first batch of queued commands; polling does not mark them delivered."""
        return self.db.list_pending_commands(bin_id, limit=self.policy.pending_batch_size)

    def acknowledge_success(self, command_id: str, executed_at: datetime | None = None) -> Command:
        executed_at = executed_at or self.clock()

        def _mark_executed(command: Command) -> Command:
            if command.is_terminal:
                if command.status == "executed":
                    return command
                raise ValidationFailedError(
                    f"Command {command_id} already failed after {command.retry_count} attempts"
                )
            return command.model_copy(
                update={"status": "executed", "executed_at": executed_at, "updated_at": self.clock()}
            )

        command = self.db.modify_command(command_id, _mark_executed)
        if command is None:
            LOGGER.error("Acknowledged unknown command %s", command_id)
            raise NotFoundError("Command", command_id)

        LOGGER.info("Command %s marked as executed", command_id)
        return command

    def acknowledge_failure(self, command_id: str, reason: str) -> Command:
        def _record_failure(command: Command) -> Command:
            if command.is_terminal:
                if command.status == "executed":
                    raise ValidationFailedError(f"Command {command_id} was already executed")
                return command

            retry_count = command.retry_count + 1
            update: dict[str, Any] = {"retry_count": retry_count, "updated_at": self.clock()}
            if retry_count >= command.max_retries:
                update.update(status="failed", failure_reason=reason)
            else:
                update["status"] = "pending"
            return command.model_copy(update=update)

        command = self.db.modify_command(command_id, _record_failure)
        if command is None:
            LOGGER.error("Failure reported for unknown command %s", command_id)
            raise NotFoundError("Command", command_id)

        LOGGER.warning(
            "Command %s failed (attempt %d/%d): %s",
            command_id,
            command.retry_count,
            command.max_retries,
            reason,
        )
        return command

    def get_command(self, command_id: str) -> Command:
        command = self.db.get_command(command_id)
        if command is None:
            raise NotFoundError("Command", command_id)
        return command

    def list_commands(
        self,
        *,
        status: str | None = None,
        bin_id: str | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Command], int]:
        return self.db.list_commands(status=status, bin_id=bin_id, limit=limit, skip=skip)

    def delete_command(self, command_id: str) -> None:
        if not self.db.delete_command(command_id):
            raise NotFoundError("Command", command_id)
        LOGGER.info("Command %s deleted", command_id)
