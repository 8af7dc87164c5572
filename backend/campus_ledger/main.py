"""FastAPI application entry point."""
import logging
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campus_ledger.config import settings
from campus_ledger.routers import organizer, verifier
from campus_ledger.store import EventStore, get_store
from campus_ledger.store.factory import init_event_store, is_degraded
from campus_ledger.timeutil import to_iso, utcnow

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Campus Ledger",
    description="Event registration, check-in and claim ledger with organizer analytics",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Total-Count"],
)

# Register routers
app.include_router(organizer.router, prefix="/api/organizer", tags=["Organizer"])
app.include_router(verifier.router, prefix="/api/verifier", tags=["Verifier"])


@app.on_event("startup")
def on_startup():
    """Initialize the configured store; aborts startup unless memory fallback is allowed."""
    app.state.store = init_event_store(settings)
    logger.info("Store mode: %s", app.state.store.mode)


@app.on_event("shutdown")
def on_shutdown():
    store = getattr(app.state, "store", None)
    if store is not None:
        store.close()


@app.get("/api/health")
def health_check(store: EventStore = Depends(get_store)):
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "store_mode": store.mode,
        "degraded": is_degraded(settings, store),
        "timestamp": to_iso(utcnow()),
    }
