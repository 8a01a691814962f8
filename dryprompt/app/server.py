"""
DryPrompt Server

Local FastAPI control surface for the running application.

Endpoints:
- GET /health: Health check
- GET /status: Controller and capture status
- POST /analyze: Run an analysis now
- GET /suggestions: Suggestions from the latest run
- POST /suggestions/{suggestion_id}/status: Record accept/reject in analytics
- POST /log: Log text directly (bypasses capture)
- POST /samples: Log the built-in sample prompts
- POST /credential: Store a new API key
- GET /archives: Archived prompt log segments
- GET /analytics: Suggestion stats and recent runs from the analytics store
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel

from ..analysis.synthesis import filter_quality_suggestions
from ..capture.log_store import LogStoreError
from ..common.config import load_config
from .runtime import Runtime, build_runtime

logger = logging.getLogger("dryprompt.app.server")


# Global state
runtime: Optional[Runtime] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build components and start the controller on startup"""
    global runtime

    logger.info("Starting up...")
    runtime = build_runtime()

    if await runtime.analytics.initialize():
        logger.info("Analytics store connected")
    else:
        logger.info("Analytics store not available")

    await runtime.controller.initialize()
    logger.info("Ready (state: %s)", runtime.controller.state.value)

    yield

    logger.info("Shutting down...")
    await runtime.controller.cleanup()
    runtime = None


app = FastAPI(
    title="DryPrompt",
    description="Repeated prompt detection and shortcut suggestions",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class LogRequest(BaseModel):
    text: str
    window_title: Optional[str] = None
    process_name: Optional[str] = None


class CredentialRequest(BaseModel):
    api_key: str


class StatusUpdate(BaseModel):
    status: str  # "accepted" or "rejected"


def _require_runtime() -> Runtime:
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not initialized")
    return runtime


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "dryprompt",
        "initialized": runtime is not None,
        "state": runtime.controller.state.value if runtime else None,
        "capture_mode": runtime.coordinator.status()["capture_mode"] if runtime else None,
        "analytics_available": runtime.analytics.is_available if runtime else False,
    }


@app.get("/status")
async def status():
    rt = _require_runtime()
    return rt.controller.detailed_status()


@app.post("/analyze")
async def analyze(background_tasks: BackgroundTasks, wait: bool = True):
    """
    Trigger a manual analysis run.

    With wait=false the run is started in the background and the response
    returns immediately.
    """
    rt = _require_runtime()

    if rt.controller.is_analyzing:
        raise HTTPException(status_code=409, detail="Analysis already in progress")

    if not wait:
        background_tasks.add_task(rt.controller.trigger_manual_analysis)
        return {"status": "started"}

    result = await rt.controller.trigger_manual_analysis()
    if result is None:
        raise HTTPException(status_code=500, detail="Analysis failed")
    return result.to_dict()


@app.get("/suggestions")
async def suggestions(all: bool = False):
    """Suggestions from the latest run; quality-filtered unless all=true"""
    rt = _require_runtime()
    items = rt.notifier.latest_suggestions
    if not all:
        items = filter_quality_suggestions(items)
    return {
        "count": len(items),
        "items": [s.model_dump() for s in items],
    }


@app.post("/suggestions/{suggestion_id}/status")
async def update_suggestion_status(suggestion_id: str, update: StatusUpdate):
    rt = _require_runtime()
    if update.status not in ("accepted", "rejected"):
        raise HTTPException(status_code=400, detail="status must be 'accepted' or 'rejected'")
    if not rt.analytics.is_available:
        raise HTTPException(status_code=503, detail="Analytics store not available")

    updated = await rt.analytics.update_suggestion_status(suggestion_id, update.status)
    if not updated:
        raise HTTPException(status_code=502, detail="Failed to update suggestion")
    return {"status": update.status, "suggestion_id": suggestion_id}


@app.post("/log")
async def log_text(request: LogRequest):
    rt = _require_runtime()
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="text must not be empty")

    try:
        entry = await rt.coordinator.manual_log(
            request.text,
            {"window_title": request.window_title, "process_name": request.process_name},
        )
    except LogStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return {"logged": True, "entry": entry.to_json() if entry else None}


@app.post("/samples")
async def add_samples():
    rt = _require_runtime()
    try:
        added = await rt.coordinator.add_sample_data()
    except LogStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"added": added, "total_entries": rt.log_store.count()}


@app.post("/credential")
async def set_credential(request: CredentialRequest):
    rt = _require_runtime()
    try:
        await rt.controller.handle_credential_update(request.api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"state": rt.controller.state.value}


@app.get("/archives")
async def archives():
    rt = _require_runtime()
    paths = rt.log_store.list_archives()
    return {
        "count": len(paths),
        "items": [
            {"name": p.name, "entries": len(rt.log_store.read_archive(p))}
            for p in paths
        ],
    }


@app.get("/analytics")
async def analytics():
    rt = _require_runtime()
    if not rt.analytics.is_available:
        return {"available": False, "stats": None, "recent": []}
    return {
        "available": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stats": await rt.analytics.get_suggestion_stats(),
        "recent": await rt.analytics.get_recent_analyses(limit=10),
    }


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the DryPrompt server"""
    import uvicorn

    config = load_config()
    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        "dryprompt.app.server:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
