from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
import uvicorn

from kiosk.api.routes import badges, checkin, equipment, health
from kiosk.core.config import settings
from kiosk.core.logging import setup_logging
from kiosk.db.base import Base
from kiosk.db.session import SessionLocal, engine
from kiosk.services.agent_client import AgentClient
from kiosk.services.backend_client import BackendClient
from kiosk.services.checkin import CheckinController
from kiosk.services.printing import BadgePrinter
from kiosk.services.scanner import CameraScanner, ScannerPoller
from kiosk.services.settings_store import SqlSettingsStore

# Setup logging
setup_logging(settings.LOG_FILE, logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)


def build_controller() -> CheckinController:
    backend = BackendClient()
    agent = AgentClient()
    return CheckinController(
        backend=backend,
        agent=agent,
        printer=BadgePrinter(agent, backend),
        settings_store=SqlSettingsStore(SessionLocal),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown"""
    # Startup
    logger.info("🚀 Starting Idento Kiosk...")

    logger.info("📦 Creating database tables...")
    Base.metadata.create_all(bind=engine)

    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("✅ Database connection successful")
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        raise

    controller = build_controller()
    await controller.refresh_agent()

    scanner = ScannerPoller(controller.agent, controller.submit_code)
    camera = CameraScanner(controller.submit_code, controller.on_camera_unavailable)
    for source in (scanner, camera):
        controller.attach_input(source)
        source.start()

    app.state.controller = controller
    logger.info(f"✅ Kiosk ready (mode: {controller.settings.checkin_mode})")

    yield

    # Shutdown
    logger.info("👋 Shutting down...")
    await controller.shutdown()


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Event check-in kiosk: attendee lookup, check-in and badge printing",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # kiosk UI runs on the same device
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(checkin.router, prefix="/api", tags=["Check-in"])
app.include_router(badges.router, prefix="/api", tags=["Badges"])
app.include_router(equipment.router, prefix="/api", tags=["Equipment"])


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "operational",
        "docs": "/docs",
        "endpoints": {
            "health": "/api/health",
            "settings": "/api/kiosk/settings",
            "open_event": "/api/kiosk/events/{event_id}/open",
            "scan": "/api/kiosk/scan",
            "state": "/api/kiosk/state",
            "badge_zpl": "/api/badges/zpl",
            "render_template": "/api/templates/render",
            "printers": "/api/equipment/printers",
        },
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, reload=False)
