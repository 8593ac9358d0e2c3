import hmac
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from binwatch.errors import NotFoundError
from binwatch.models.schemas import Bin, CommandAck, DeviceCommand, DeviceUpdate

LOGGER = logging.getLogger(__name__)

IOT_RATE_LIMIT = "60/minute"


def device_key(request: Request) -> str:
    return request.headers.get("x-api-key") or get_remote_address(request)


limiter = Limiter(key_func=device_key)
# One budget per key across every device route.
iot_limit = limiter.shared_limit(IOT_RATE_LIMIT, scope="iot")


def require_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> Bin | None:
    """Returns the calling bin for a per-bin key, or None for the shared fleet key."""
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key is required")

    shared_key = request.app.state.config.iot.api_key
    if shared_key and hmac.compare_digest(x_api_key, shared_key):
        return None

    device = request.app.state.db.get_bin_by_api_key(x_api_key)
    if device is not None:
        return device

    client = request.client.host if request.client else "unknown"
    LOGGER.warning("Invalid IoT API key attempt from %s", client)
    raise HTTPException(status_code=401, detail="Invalid API key")


def _ensure_own_bin(device: Bin | None, bin_id: str) -> None:
    if device is not None and device.bin_id != bin_id:
        LOGGER.warning("Key for bin %s used against bin %s", device.bin_id, bin_id)
        raise HTTPException(status_code=403, detail="API key does not belong to this bin")


router = APIRouter(prefix="/api/iot")


@router.post("/update")
@iot_limit
async def update_bin_data(
    request: Request,
    payload: DeviceUpdate,
    device: Bin | None = Depends(require_api_key),
) -> dict[str, Any]:
    _ensure_own_bin(device, payload.bin_id)

    updated = request.app.state.ingestor.apply_update(payload)
    data = {
        "bin_id": updated.bin_id,
        "fill_level": updated.fill_level,
        "status": updated.status,
        "last_updated": updated.last_updated.isoformat(),
    }
    request.app.state.ws_manager.publish({"type": "bin", "data": data})
    return data


@router.get("/commands/{bin_id}")
@iot_limit
async def get_commands(
    request: Request,
    bin_id: str,
    device: Bin | None = Depends(require_api_key),
) -> dict[str, Any]:
    _ensure_own_bin(device, bin_id)
    if request.app.state.db.get_bin(bin_id) is None:
        raise NotFoundError("Bin", bin_id)

    commands = request.app.state.commands.get_pending_commands(bin_id)
    return {
        "bin_id": bin_id,
        "commands": [
            DeviceCommand(
                id=command.id,
                command_type=command.command_type,
                parameters=command.parameters,
                description=command.description,
            ).model_dump(mode="json")
            for command in commands
        ],
    }


@router.patch("/commands/{command_id}/ack")
@iot_limit
async def acknowledge_command(
    request: Request,
    command_id: str,
    payload: CommandAck,
    device: Bin | None = Depends(require_api_key),
) -> dict[str, Any]:
    manager = request.app.state.commands
    _ensure_own_bin(device, manager.get_command(command_id).bin_id)

    if payload.status == "failed":
        command = manager.acknowledge_failure(command_id, payload.failure_reason or "Unknown error")
    else:
        command = manager.acknowledge_success(command_id, payload.executed_at)

    return {
        "command_id": command.id,
        "status": command.status,
        "retry_count": command.retry_count,
        "executed_at": command.executed_at.isoformat() if command.executed_at else None,
    }
