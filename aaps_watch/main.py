"""
FastAPI application for the AAPS watch companion.

This module exposes the watch face state to renderers (read-only), the
menu and dialog actions to the wearer's input layer, and sensor uploads
from the watch. The mailbox poller runs as a task on the same event loop,
so endpoint handlers and poll cycles never interleave.

Commands to the phone bridge are blocking ``requests`` calls made on the
event loop thread (from poll cycles and from handlers alike). Nothing else
runs while one is in flight, which is what keeps state mutation serial; a
slow bridge delays the loop by at most ``http_timeout`` seconds.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .constants import DEFAULT_LOG_FORMAT, TempTargetPreset
from .exceptions import (
    AapsWatchError,
    InvalidTransitionError,
    UnknownSampleKindError,
)
from .flows import EventKind, FlowEvent, MenuAction
from .models import (
    DialogResponse,
    FaceView,
    HealthResponse,
    HistoryResponse,
    SensorUploadResponse,
    StatusSnapshot,
)
from .poller import WatchFacePoller
from .state import coerce_kind

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format=DEFAULT_LOG_FORMAT,
)
logger = logging.getLogger(__name__)

# Dialog events the wearer can trigger directly
USER_EVENTS = {
    EventKind.INCREMENT,
    EventKind.DECREMENT,
    EventKind.OK,
    EventKind.BACK,
    EventKind.CONFIRM,
    EventKind.CANCEL,
}


# =============================================================================
# Dependency Injection
# =============================================================================

_poller: Optional[WatchFacePoller] = None


def get_poller() -> WatchFacePoller:
    """
    Get the singleton WatchFacePoller instance.

    Returns:
        Configured WatchFacePoller instance
    """
    global _poller
    if _poller is None:
        _poller = WatchFacePoller(get_settings())
    return _poller


def reset_poller() -> None:
    """Reset the singleton poller (useful for testing)."""
    global _poller
    _poller = None


# =============================================================================
# Background Polling
# =============================================================================

async def poll_forever(poller: WatchFacePoller, settings: Settings) -> None:
    """Run poll cycles every ``poll_interval`` and housekeeping every minute."""
    poller.start()
    last_housekeeping = time.monotonic()

    while True:
        await asyncio.sleep(settings.poll_interval)
        try:
            poller.run_once()
            if time.monotonic() - last_housekeeping >= settings.housekeeping_interval:
                poller.housekeeping()
                last_housekeeping = time.monotonic()
        except Exception as e:
            logger.error(f"Unexpected error in poll cycle: {e}", exc_info=True)


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    logger.info("AAPS watch companion starting up")

    task = None
    if settings.run_poller:
        task = asyncio.create_task(poll_forever(get_poller(), settings))

    yield

    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("AAPS watch companion shutting down")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="AAPS Watch Companion",
    description="Mirrors AndroidAPS status on a watch face and relays treatment commands",
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(AapsWatchError)
async def aaps_watch_error_handler(
    request: Request,
    exc: AapsWatchError,
) -> JSONResponse:
    """Handle custom application exceptions with structured error responses."""
    logger.error(
        "Application error",
        extra={
            "error_code": exc.error_code.value,
            "error_message": exc.message,
            "details": exc.details,
            "path": request.url.path,
        }
    )

    status_code = 500
    if isinstance(exc, UnknownSampleKindError):
        status_code = 404
    elif isinstance(exc, InvalidTransitionError):
        status_code = 409

    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(),
    )


# =============================================================================
# Middleware
# =============================================================================

@app.middleware("http")
async def add_request_context(request: Request, call_next):
    """Add request ID and timing to all requests."""
    request_id = str(uuid.uuid4())[:8]
    start_time = datetime.now()

    request.state.request_id = request_id

    response = await call_next(request)

    duration_ms = (datetime.now() - start_time).total_seconds() * 1000

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    logger.info(
        "Request completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }
    )

    return response


# =============================================================================
# Helpers
# =============================================================================

def dialog_response(poller: WatchFacePoller, sent=None) -> DialogResponse:
    flow = poller.flow
    entry = flow.entry
    return DialogResponse(
        state=flow.state.value,
        title=entry.title if entry else None,
        value=flow.value,
        unit=entry.unit if entry else None,
        prompt=flow.prompt,
        sent=sent or [],
    )


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/", response_model=HealthResponse)
async def root():
    """
    Root endpoint - service information.

    Returns service name and status for quick verification.
    """
    return HealthResponse(
        status="healthy",
        service="aaps-watch",
    )


@app.get("/health")
async def health_check():
    """Health check endpoint for liveness probes."""
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/status", response_model=StatusSnapshot)
async def get_status(poller: WatchFacePoller = Depends(get_poller)):
    """Latest current-status snapshot received from the phone."""
    return poller.state.snapshot


@app.get("/history/{kind}", response_model=HistoryResponse)
async def get_history(kind: str, poller: WatchFacePoller = Depends(get_poller)):
    """
    Contents of one history buffer, oldest sample first.

    **Kinds**: `glucose`, `treatments`, `basals`
    """
    sample_kind = coerce_kind(kind)
    state = poller.state
    return HistoryResponse(
        kind=sample_kind,
        updated=state.watermarks[sample_kind],
        stale=state.stale,
        samples=state.history(sample_kind),
    )


@app.get("/face", response_model=FaceView)
async def get_face(poller: WatchFacePoller = Depends(get_poller)):
    """
    Display-ready view of the watch face.

    **Response Fields**:
    - `glucose_text`: Glucose in mmol/L ("---" when unknown)
    - `minutes_ago`: Age of the reading
    - `delta_text`: Signed change in mmol/L
    - `graph`: Glucose points, basal bars and bolus markers positioned in the window
    """
    return poller.face_view()


@app.get("/dialog", response_model=DialogResponse)
async def get_dialog(poller: WatchFacePoller = Depends(get_poller)):
    """Current dialog state."""
    return dialog_response(poller)


@app.post("/dialog/events/{event}", response_model=DialogResponse)
async def post_dialog_event(event: EventKind, poller: WatchFacePoller = Depends(get_poller)):
    """
    Feed a wearer input to the dialog.

    **Events**: `increment`, `decrement`, `ok`, `back`, `confirm`, `cancel`

    Returns 409 when the event is not accepted in the current state.
    """
    if event not in USER_EVENTS:
        raise InvalidTransitionError(poller.flow.state.value, event.value)
    sent = poller.dispatch(FlowEvent(event))
    return dialog_response(poller, sent)


@app.post("/menu/{action}", response_model=DialogResponse)
async def post_menu_action(
    action: MenuAction,
    preset: Optional[TempTargetPreset] = None,
    poller: WatchFacePoller = Depends(get_poller),
):
    """
    Select a main menu entry.

    **Actions**: `treatment`, `temp_target` (with `preset`), `profile_switch`, `refresh_data`
    """
    if action == MenuAction.TEMP_TARGET and preset is None:
        return JSONResponse(
            status_code=422,
            content={"error": "preset_required", "message": "A temp target preset is required"},
        )
    sent = poller.select_menu(action, preset)
    return dialog_response(poller, sent)


@app.post("/sensors/heartrate", response_model=SensorUploadResponse)
async def post_heart_rate(
    bpm: int = Query(..., ge=0, le=300),
    confidence: int = Query(100, ge=0, le=100),
    poller: WatchFacePoller = Depends(get_poller),
):
    """
    Forward a heart-rate reading to the phone.

    Uploaded only when `upload_hr` is enabled, the confidence is above 80 %
    and the value changed since the last upload.
    """
    uploaded = poller.commands.upload_heart_rate(bpm, confidence)
    return SensorUploadResponse(sensor="heartrate", value=bpm, uploaded=uploaded)


@app.post("/sensors/steps", response_model=SensorUploadResponse)
async def post_steps(
    steps: int = Query(..., ge=0),
    poller: WatchFacePoller = Depends(get_poller),
):
    """
    Forward today's step count to the phone.

    Uploaded only when `upload_steps` is enabled and the count changed.
    """
    uploaded = poller.commands.upload_steps(steps)
    return SensorUploadResponse(sensor="steps", value=steps, uploaded=uploaded)


@app.get("/statistics")
async def get_statistics(poller: WatchFacePoller = Depends(get_poller)):
    """Poll loop and command delivery statistics."""
    return poller.get_statistics()
