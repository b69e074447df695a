"""Calendar Bridge web application."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from calendar_bridge.core.config import settings
from calendar_bridge.core.database import create_db_and_tables, engine
from calendar_bridge.core.kvstore import SQLKVStore
from calendar_bridge.core.scheduler import shutdown_scheduler, start_scheduler
from calendar_bridge.core.services import get_services, resume_watch_renewals
from calendar_bridge.routes import events, oauth, watch

# Configure logging
log_dir = Path.home() / ".logs" / "calendar_bridge"
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Calendar Bridge application")
    create_db_and_tables()
    start_scheduler(housekeeping=SQLKVStore(engine).purge_expired)
    resume_watch_renewals(get_services())
    yield
    # Shutdown
    shutdown_scheduler()
    logger.info("Calendar Bridge application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Links user accounts to Google Calendar and keeps them in sync via push notifications",
    version="0.1.0",
    lifespan=lifespan,
)

origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(oauth.router)
app.include_router(events.router)
app.include_router(watch.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
