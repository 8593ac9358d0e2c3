from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from binwatch.api.iot import limiter, router as iot_router
from binwatch.api.routes import router as api_router
from binwatch.api.websocket import ConnectionManager, router as websocket_router
from binwatch.config import load_config
from binwatch.errors import DependencyUnavailableError, NotFoundError, ValidationFailedError
from binwatch.models.database import DatabaseManager
from binwatch.services.admin import (
    BinRegistry,
    FeedbackDesk,
    ImageReview,
    MaintenanceRegistry,
    WorkerRegistry,
)
from binwatch.services.alerts import AlertLedger
from binwatch.services.anomaly import AnomalyDetector, AnomalySweeper
from binwatch.services.commands import CommandLifecycleManager
from binwatch.services.ingestion import DeviceIngestor

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    db = DatabaseManager(config.database.path)
    limiter.reset()
    db.initialize()

    ws_manager = ConnectionManager()
    ws_manager.bind_loop(asyncio.get_running_loop())

    def publish_alert(alert) -> None:
        ws_manager.publish({"type": "alert", "data": alert.model_dump(mode="json")})

    detector = AnomalyDetector(db, config.thresholds, on_alert=publish_alert)
    sweeper = AnomalySweeper(detector, interval_seconds=config.sweep.interval_seconds)
    sweeper_task: asyncio.Task[Any] | None = None

    if config.sweep.auto_start:
        sweeper_task = asyncio.create_task(sweeper.run_forever())

    app.state.config = config
    app.state.db = db
    app.state.ws_manager = ws_manager
    app.state.detector = detector
    app.state.sweeper = sweeper
    app.state.sweeper_task = sweeper_task
    app.state.commands = CommandLifecycleManager(db, config.commands)
    app.state.alerts = AlertLedger(db)
    app.state.ingestor = DeviceIngestor(db, detector)
    app.state.bins = BinRegistry(db)
    app.state.workers = WorkerRegistry(db)
    app.state.maintenance = MaintenanceRegistry(db)
    app.state.images = ImageReview(db)
    app.state.feedback = FeedbackDesk(db)

    yield

    if sweeper_task:
        sweeper_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper_task

    await sweeper.stop()
    db.close()


app = FastAPI(
    title="Binwatch Admin API",
    version="1.0.0",
    description="Bin fleet administration, device command queue and anomaly alerts",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": f"{exc.entity} not found"})


@app.exception_handler(ValidationFailedError)
async def validation_failed_handler(request: Request, exc: ValidationFailedError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(DependencyUnavailableError)
async def dependency_unavailable_handler(
    request: Request, exc: DependencyUnavailableError
) -> JSONResponse:
    LOGGER.error("Store unavailable while handling %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Store unavailable"})


app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(api_router)
app.include_router(iot_router)
app.include_router(websocket_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
