import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from kiosk.api.deps import get_controller
from kiosk.db.session import get_db
from kiosk.services.checkin import CheckinController

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(db: Session = Depends(get_db),
                       controller: CheckinController = Depends(get_controller)):
    """Health check endpoint"""
    agent_connected = await controller.refresh_agent()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "agent": "connected" if agent_connected else "disconnected",
            "error": str(e),
        }

    return {
        "status": "healthy",
        "database": "connected",
        "agent": "connected" if agent_connected else "disconnected",
        "service": "idento-kiosk",
    }
