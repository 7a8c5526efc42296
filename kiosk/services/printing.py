import logging
from typing import Optional

from kiosk.core.config import settings
from kiosk.core.errors import AgentError, BackendError, NoPrinterError, PrintError
from kiosk.models.attendee import Attendee, Event
from kiosk.services.agent_client import AgentClient
from kiosk.services.backend_client import BackendClient
from kiosk.services.zpl import generate_badge_zpl

logger = logging.getLogger(__name__)


class BadgePrinter:
    """Builds badge ZPL and hands it to the agent's default printer"""

    def __init__(self, agent: AgentClient, backend: BackendClient, zpl_source: Optional[str] = None):
        self.agent = agent
        self.backend = backend
        self.zpl_source = zpl_source or settings.ZPL_SOURCE

    def build_zpl(self, event: Event, attendee: Attendee) -> str:
        if self.zpl_source == "local":
            return generate_badge_zpl(event, attendee)
        try:
            return self.backend.badge_zpl(event.id, attendee.id)
        except BackendError as e:
            raise PrintError(f"Badge generation failed: {e.message}") from e

    def print_badge(self, event: Event, attendee: Attendee) -> str:
        """Print one badge; returns the printer name used"""
        try:
            printer_name = self.agent.default_printer()
        except AgentError as e:
            logger.warning(f"⚠️ Could not read default printer: {e}")
            printer_name = None
        if not printer_name:
            raise NoPrinterError()

        zpl = self.build_zpl(event, attendee)

        try:
            self.agent.print_zpl(printer_name, zpl)
        except AgentError as e:
            raise PrintError(f"Print failed: {e.message}") from e

        logger.info(f"✅ Badge printed for attendee {attendee.id} on {printer_name}")
        return printer_name
