from fastapi import HTTPException, Request, status

from kiosk.services.agent_client import AgentClient
from kiosk.services.checkin import CheckinController


def get_controller(request: Request) -> CheckinController:
    """Dependency for the check-in controller created at startup"""
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Kiosk is starting up",
        )
    return controller


def get_agent(request: Request) -> AgentClient:
    return get_controller(request).agent
