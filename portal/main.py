import os
import logging
from datetime import datetime, timezone
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from portal.db import Base, engine, ensure_sqlite_schema
from portal.api import cards, categories, contacts, tasks
from portal.services.cache import cache
from portal.services.realtime import hub
from portal.services.scheduler import ScheduleEngine, SchedulerHandle
from portal.services.snapshot import SnapshotExporter
from portal.services.storage import store

Base.metadata.create_all(bind=engine)
ensure_sqlite_schema()

SCHEDULER_ENABLED = os.getenv("PORTAL_SCHEDULER_ENABLED", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_ACCESS_LOG = os.getenv("PORTAL_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

logger = logging.getLogger(__name__)

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_scheduler() -> SchedulerHandle:
    schedule_engine = ScheduleEngine(store, cache, hub)
    return SchedulerHandle(schedule_engine, SnapshotExporter(store))


app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.scheduler = build_scheduler()


@app.get("/")
def root():
    return {
        "ok": True,
        "service": "portal-api",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }


@app.get("/healthz")
def healthz():
    return {
        "ok": True,
        "scheduler_running": app.state.scheduler.running,
        "cache_available": cache.available,
        "listeners": hub.listener_count,
        "revision": hub.revision,
    }


@app.get("/api/server-time")
def server_time():
    # Clients align the schedule editor clock with the one the scheduler uses.
    now = datetime.now(timezone.utc)
    return {"now": int(now.timestamp() * 1000), "iso": now.isoformat()}


@app.websocket("/ws/updates")
async def ws_updates(websocket: WebSocket):
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)


@app.on_event("startup")
async def startup_events() -> None:
    if not SCHEDULER_ENABLED:
        logger.info("Scheduler disabled by PORTAL_SCHEDULER_ENABLED")
        return
    app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_events() -> None:
    await app.state.scheduler.stop()
    await cache.close()


app.include_router(cards.router)
app.include_router(tasks.router)
app.include_router(categories.router)
app.include_router(contacts.router)
