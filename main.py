import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from db.database import dispose_db, init_db
from api.dependencies import get_event_log
from api.routes import sanitize, scan, events
from services.security_events import DatabaseEventLog

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting InputGuard API")

    event_log = get_event_log()
    if isinstance(event_log, DatabaseEventLog):
        await init_db()
    logger.info(
        "Security events go to %s sink, safe threshold %d",
        settings.security_event_sink,
        settings.safe_threshold,
    )
    yield
    if isinstance(event_log, DatabaseEventLog):
        await event_log.drain()
        await dispose_db()
    logger.info("Shutting down InputGuard API")


app = FastAPI(
    title="InputGuard",
    description="Injection detection and input sanitization for content APIs",
    version="0.1.0",
    lifespan=lifespan,
)

cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With", "X-Request-ID"],
)

app.include_router(sanitize.router, prefix="/api/sanitize", tags=["sanitize"])
app.include_router(scan.router, prefix="/api/scan", tags=["scan"])
app.include_router(events.router, prefix="/api/security-events", tags=["security-events"])


@app.get("/api/health")
async def health():
    return {"status": "ok"}
