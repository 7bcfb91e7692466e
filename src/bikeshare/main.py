"""FastAPI application entry point for the bike share pipeline.

The intake, scheduler and dashboard collaborators call this service over
HTTP:

- POST /submissions: process one checkout or return form submission
- POST /timers/usage: accrue usage timers of checked-out bikes
- POST /settings/refresh: reload settings after a config store change
- POST /dashboard/edits: react to a manual edit on the bikes dashboard
- GET /health, GET /metrics: liveness and Prometheus metrics

Endpoints are synchronous so FastAPI runs them in its worker thread pool,
where they block on the global lock without stalling the event loop.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from bikeshare.config import BikeShareSettings, get_settings
from bikeshare.errors import ConfigLoadError, LockTimeoutError, StateLoadError
from bikeshare.events.emitter import create_event_emitter
from bikeshare.events.metrics import generate_metrics_output
from bikeshare.events.notifications import LoggingNotificationSink, NotificationDispatcher
from bikeshare.intake.handler import IntakeHandler
from bikeshare.ledger import SubmissionLedger
from bikeshare.lock import get_global_lock
from bikeshare.manual import ManualEdit, ManualEditHandler
from bikeshare.orchestrator import PipelineOrchestrator, RunResult
from bikeshare.runs.models import RunStage
from bikeshare.settings.cache import SettingsCache, get_settings_cache
from bikeshare.store.memory import InMemoryRowStore
from bikeshare.timers import UsageTimerJob

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: BikeShareSettings
store: Optional[InMemoryRowStore] = None
settings_cache: Optional[SettingsCache] = None
intake_handler: Optional[IntakeHandler] = None
orchestrator: Optional[PipelineOrchestrator] = None
timer_job: Optional[UsageTimerJob] = None
edit_handler: Optional[ManualEditHandler] = None


def _log_configuration(cfg: BikeShareSettings) -> None:
    """Log process configuration on startup."""
    logger.info("Bike share configuration:")
    logger.info(f"  Lock Timeout Seconds: {cfg.lock_timeout_seconds}")
    logger.info(f"  Ledger Size: {cfg.ledger_size}")
    logger.info(f"  Event Sinks: {', '.join(cfg.event_sinks)}")
    logger.info(f"  Seed Path: {cfg.seed_path or '(empty store)'}")
    logger.info(f"  Host: {cfg.host}")
    logger.info(f"  Port: {cfg.port}")


def _create_store(cfg: BikeShareSettings) -> InMemoryRowStore:
    if cfg.seed_path:
        return InMemoryRowStore.from_json(cfg.seed_path)
    logger.warning("No seed path configured, starting with an empty store")
    return InMemoryRowStore()


def _build_orchestrator(
    cfg: BikeShareSettings,
    row_store: InMemoryRowStore,
    cache: SettingsCache,
) -> PipelineOrchestrator:
    """Wire all pipeline dependencies into a PipelineOrchestrator."""
    messages: Dict[str, str] = {}
    try:
        messages = cache.get_notification_messages()
    except ConfigLoadError:
        logger.warning("Settings unavailable at startup, notifications will use no templates")

    return PipelineOrchestrator(
        store=row_store,
        settings_cache=cache,
        lock=get_global_lock(cfg.lock_timeout_seconds),
        dispatcher=NotificationDispatcher(LoggingNotificationSink(messages)),
        event_emitter=create_event_emitter(cfg.event_sinks),
        ledger=SubmissionLedger(cfg.ledger_size),
        intake=intake_handler,
        lock_timeout_seconds=cfg.lock_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration and wire collaborators on startup."""
    global settings, store, settings_cache, intake_handler
    global orchestrator, timer_job, edit_handler

    logger.info("Bike share pipeline starting up...")

    settings = get_settings()
    _log_configuration(settings)

    store = _create_store(settings)
    settings_cache = get_settings_cache(store)
    intake_handler = IntakeHandler()
    orchestrator = _build_orchestrator(settings, store, settings_cache)

    lock = get_global_lock(settings.lock_timeout_seconds)
    timer_job = UsageTimerJob(store, settings_cache, lock)
    edit_handler = ManualEditHandler(store, settings_cache, lock)

    logger.info("Bike share pipeline started successfully")

    yield

    logger.info("Bike share pipeline shutting down...")
    orchestrator.event_emitter.close()
    logger.info("Bike share pipeline shutdown complete")


app = FastAPI(
    title="Bike Share Pipeline",
    description="Checkout and return processing for the campus bike share",
    version="1.0.0",
    lifespan=lifespan,
)


def _require(component: Any) -> Any:
    if component is None:
        logger.error("Pipeline not initialized")
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return component


def _run_response(result: RunResult) -> Dict[str, Any]:
    return {
        "status": "processed" if result.succeeded else result.stage.value,
        "run_id": result.record.run_id,
        "stage": result.stage.value,
        "error_code": result.error_code,
        "writes": sum(1 for r in result.commit_results if r.success),
        "notifications": [i.model_dump(mode="json") for i in result.notifications],
    }


@app.get("/health")
def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)


@app.post("/submissions")
def submit(payload: Dict[str, Any]):
    """Process one form submission.

    Lock timeouts answer 503 so the intake collaborator can retry; a
    validation failure is a processed submission and answers 200.
    """
    pipeline = _require(orchestrator)
    raw = _require(intake_handler).parse_payload(payload)
    if raw is None:
        raise HTTPException(status_code=400, detail="Invalid submission payload")

    try:
        result = pipeline.process_submission(raw)
    except ConfigLoadError as exc:
        raise HTTPException(status_code=503, detail=exc.message)

    body = _run_response(result)
    if result.stage == RunStage.LOCK_TIMEOUT:
        return JSONResponse(status_code=503, content=body)
    return body


@app.post("/timers/usage")
def update_usage_timers():
    """Recompute usage timers of checked-out bikes."""
    job = _require(timer_job)
    try:
        result = job.run()
    except (LockTimeoutError, ConfigLoadError, StateLoadError) as exc:
        raise HTTPException(status_code=503, detail=exc.message)
    return {**result.model_dump(), "overdue_count": result.overdue_count}


@app.post("/settings/refresh")
def refresh_settings():
    """Reload settings from the config store."""
    cache = _require(settings_cache)
    try:
        snapshot = cache.refresh()
    except ConfigLoadError as exc:
        raise HTTPException(status_code=503, detail=exc.message)
    return {"status": "refreshed", "sections": sorted(snapshot.sections)}


@app.post("/dashboard/edits")
def dashboard_edit(edit: ManualEdit):
    """Handle a manual edit made on the bikes dashboard."""
    handler = _require(edit_handler)
    try:
        cleared = handler.handle(edit)
    except (LockTimeoutError, ConfigLoadError) as exc:
        raise HTTPException(status_code=503, detail=exc.message)
    return {"cleared": cleared}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    cfg = get_settings()
    uvicorn.run("bikeshare.main:app", host=cfg.host, port=cfg.port)


if __name__ == "__main__":
    run()
