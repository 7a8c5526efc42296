import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from kiosk.api.deps import get_agent
from kiosk.core.errors import AgentError
from kiosk.schemas import AddScannerRequest, DefaultPrinterRequest, ScannerTestResponse
from kiosk.services.agent_client import AgentClient
from kiosk.services.scanner import wait_for_scan

router = APIRouter(prefix="/equipment")
logger = logging.getLogger(__name__)


def _agent_unavailable(e: AgentError) -> HTTPException:
    logger.warning(f"⚠️ {e.message}")
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


@router.get("/printers")
def list_printers(agent: AgentClient = Depends(get_agent)) -> List[Any]:
    try:
        return agent.printers()
    except AgentError as e:
        raise _agent_unavailable(e)


@router.get("/printers/default")
def get_default_printer(agent: AgentClient = Depends(get_agent)):
    try:
        return {"default": agent.default_printer()}
    except AgentError as e:
        raise _agent_unavailable(e)


@router.post("/printers/default")
def set_default_printer(body: DefaultPrinterRequest, agent: AgentClient = Depends(get_agent)):
    try:
        agent.set_default_printer(body.default)
    except AgentError as e:
        raise _agent_unavailable(e)
    logger.info(f"✅ Default printer set to {body.default}")
    return {"default": body.default}


@router.get("/scanners")
def list_scanners(agent: AgentClient = Depends(get_agent)) -> List[Any]:
    try:
        return agent.scanners()
    except AgentError as e:
        raise _agent_unavailable(e)


@router.get("/scanners/ports")
def list_scanner_ports(agent: AgentClient = Depends(get_agent)) -> List[Any]:
    try:
        return agent.scanner_ports()
    except AgentError as e:
        raise _agent_unavailable(e)


@router.post("/scanners")
def add_scanner(body: AddScannerRequest, agent: AgentClient = Depends(get_agent)):
    try:
        agent.add_scanner(body.port_name)
    except AgentError as e:
        raise _agent_unavailable(e)
    logger.info(f"✅ Scanner added on {body.port_name}")
    return {"port_name": body.port_name}


@router.post("/scanners/test", response_model=ScannerTestResponse)
async def test_scanner(timeout: Optional[float] = None, agent: AgentClient = Depends(get_agent)):
    """Wait for one scan from the hardware scanner"""
    code = await wait_for_scan(agent, timeout)
    return ScannerTestResponse(received=code is not None, code=code)
