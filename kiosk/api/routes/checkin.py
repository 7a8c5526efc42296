import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from kiosk.api.deps import get_controller
from kiosk.core.errors import BackendError, KioskError
from kiosk.schemas import (
    AttendeeSummary,
    BlockRequest,
    PrintResponse,
    ScanRequest,
    ScanResponse,
    SettingsUpdate,
)
from kiosk.services.checkin import CheckinController

router = APIRouter(prefix="/kiosk")
logger = logging.getLogger(__name__)


def _backend_http_error(e: KioskError) -> HTTPException:
    code = getattr(e, "status_code", None)
    if isinstance(e, BackendError) and code in (400, 403, 404, 409):
        return HTTPException(status_code=code, detail=e.message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)


# ==============================================================================
# SETTINGS
# ==============================================================================

@router.get("/settings")
def get_settings(controller: CheckinController = Depends(get_controller)):
    return controller.settings.model_dump()


@router.put("/settings")
def update_settings(body: SettingsUpdate, controller: CheckinController = Depends(get_controller)):
    try:
        updated = controller.update_settings(**body.model_dump())
    except SQLAlchemyError as e:
        logger.error(f"❌ Could not persist settings: {e}")
        raise HTTPException(status_code=500, detail="Could not save settings")
    return updated.model_dump()


# ==============================================================================
# SESSION
# ==============================================================================

@router.post("/events/{event_id}/open")
async def open_event(event_id: str, controller: CheckinController = Depends(get_controller)):
    """Load an event and its attendees and start checking in"""
    loaded = await controller.open_event(event_id)
    if not loaded and controller.load_error:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=controller.load_error)
    return controller.snapshot()


@router.post("/close")
async def close_session(controller: CheckinController = Depends(get_controller)):
    await controller.close()
    return controller.snapshot()


@router.get("/state")
def get_state(controller: CheckinController = Depends(get_controller)):
    return controller.snapshot()


@router.post("/reload")
async def reload_attendees(controller: CheckinController = Depends(get_controller)):
    if controller.event is None:
        raise HTTPException(status_code=409, detail="No event open")
    await controller.reload_attendees()
    return controller.snapshot()


# ==============================================================================
# CHECK-IN
# ==============================================================================

@router.post("/scan", response_model=ScanResponse)
async def scan(body: ScanRequest, controller: CheckinController = Depends(get_controller)):
    """Submit a scanned or typed code"""
    if controller.event is None:
        raise HTTPException(status_code=409, detail="No event open")
    result = await controller.submit_code(body.code)
    return ScanResponse(
        accepted=result is not None,
        result=result.model_dump(mode="json") if result else None,
        state=controller.snapshot(),
    )


@router.post("/dismiss")
def dismiss(controller: CheckinController = Depends(get_controller)):
    controller.dismiss()
    return controller.snapshot()


@router.post("/notice/dismiss")
def dismiss_notice(controller: CheckinController = Depends(get_controller)):
    controller.clear_notice()
    return controller.snapshot()


@router.post("/print", response_model=PrintResponse)
async def print_badge(controller: CheckinController = Depends(get_controller)):
    if not controller.can_print:
        raise HTTPException(status_code=409, detail="Printing is available after a successful check-in")
    outcome = await controller.print_badge()
    return PrintResponse(**outcome.model_dump())


@router.get("/search", response_model=List[AttendeeSummary])
def search(q: str = Query("", description="Name, email or code"),
           controller: CheckinController = Depends(get_controller)):
    return [AttendeeSummary.model_validate(a, from_attributes=True) for a in controller.search(q)]


# ==============================================================================
# MODERATION
# ==============================================================================

@router.post("/attendees/{attendee_id}/block")
async def block_attendee(attendee_id: str, body: BlockRequest,
                         controller: CheckinController = Depends(get_controller)):
    try:
        await controller.block_attendee(attendee_id, body.reason)
    except KioskError as e:
        logger.error(f"❌ Block failed for {attendee_id}: {e.message}")
        raise _backend_http_error(e)
    return controller.snapshot()


@router.post("/attendees/{attendee_id}/unblock")
async def unblock_attendee(attendee_id: str, controller: CheckinController = Depends(get_controller)):
    try:
        await controller.unblock_attendee(attendee_id)
    except KioskError as e:
        logger.error(f"❌ Unblock failed for {attendee_id}: {e.message}")
        raise _backend_http_error(e)
    return controller.snapshot()
