"""Snapsolve host — FastAPI app around the processing orchestrator.

Loads configuration on startup, owns the screenshot store and the event
stream consumer, and exposes processing, cancellation and view/language
controls. Lifecycle events are streamed to clients over /events (SSE).
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from snapsolve.config import get_config, load_config
from snapsolve.consumer import EventStreamConsumer
from snapsolve.orchestrator import ProcessingOrchestrator
from snapsolve.schemas import LanguageRequest, ScreenshotRequest, ViewRequest
from snapsolve.screenshots import ScreenshotStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load config and build the orchestrator on startup."""
    config = load_config()
    consumer = EventStreamConsumer()
    store = ScreenshotStore(config.screenshot_dir, max_queue_size=config.max_queue_size)
    app.state.consumer = consumer
    app.state.store = store
    app.state.orchestrator = ProcessingOrchestrator(config, store, consumer)
    logger.info(
        f"Snapsolve started (provider={config.provider}, model={config.model}, "
        f"auth={'enabled' if config.access_key else 'disabled'})"
    )
    yield
    app.state.orchestrator.cancel_processing()
    logger.info("Snapsolve shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="Snapsolve", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------


async def verify_access_key(request: Request) -> None:
    """Validate X-API-Key header against the configured access key.
    If no access_key is set in config, auth is disabled (dev mode).
    """
    config = get_config()
    if not config.access_key:
        return

    key = request.headers.get("X-API-Key")
    if key != config.access_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Processing endpoints
# ---------------------------------------------------------------------------


@app.post("/process", dependencies=[Depends(verify_access_key)])
async def process(request: Request):
    """Run the branch selected by the current view and return its events."""
    consumer: EventStreamConsumer = request.app.state.consumer
    start = len(consumer.history)
    await request.app.state.orchestrator.process_screenshots()
    return {
        "view": consumer.get_current_view(),
        "events": [e.model_dump(mode="json") for e in consumer.history[start:]],
    }


@app.post("/cancel", dependencies=[Depends(verify_access_key)])
async def cancel(request: Request):
    """Abort in-flight requests and clear the session."""
    cancelled = request.app.state.orchestrator.cancel_ongoing_requests()
    return {"cancelled": cancelled}


@app.post("/reset", dependencies=[Depends(verify_access_key)])
async def reset(request: Request):
    """Cancel everything, empty the queues and go back to the queue view."""
    request.app.state.orchestrator.reset()
    return {"view": request.app.state.consumer.get_current_view()}


@app.get("/events")
async def events(request: Request):
    """Stream lifecycle events as Server-Sent Events (SSE)."""
    consumer: EventStreamConsumer = request.app.state.consumer
    queue = consumer.subscribe()

    async def stream():
        try:
            while True:
                message = await queue.get()
                data = json.dumps(message.model_dump(mode="json"))
                yield f"event: {message.event.value}\ndata: {data}\n\n"
        finally:
            consumer.unsubscribe(queue)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ---------------------------------------------------------------------------
# Screenshot queues
# ---------------------------------------------------------------------------


@app.post("/screenshots", dependencies=[Depends(verify_access_key)])
async def add_screenshot(body: ScreenshotRequest, request: Request):
    """Queue a captured image. In the solutions view it goes to the extra queue."""
    store: ScreenshotStore = request.app.state.store
    extra = request.app.state.consumer.get_current_view() == "solutions"
    try:
        queue = store.add(body.path, extra=extra)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"queue": "extra" if extra else "main", "screenshots": queue}


@app.get("/screenshots")
async def list_screenshots(request: Request):
    store: ScreenshotStore = request.app.state.store
    return {"main": store.list_main_queue(), "extra": store.list_extra_queue()}


# ---------------------------------------------------------------------------
# Consumer state
# ---------------------------------------------------------------------------


@app.put("/language", dependencies=[Depends(verify_access_key)])
async def set_language(body: LanguageRequest, request: Request):
    request.app.state.consumer.select_language(body.language)
    return {"language": body.language}


@app.put("/view", dependencies=[Depends(verify_access_key)])
async def set_view(body: ViewRequest, request: Request):
    request.app.state.consumer.set_view(body.view)
    return {"view": body.view}


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health(request: Request):
    """Liveness check."""
    consumer: EventStreamConsumer = request.app.state.consumer
    return {
        "status": "healthy",
        "view": consumer.get_current_view(),
        "has_debugged": consumer.has_debugged,
    }


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, credentials masked."""
    return get_config().redacted()
