import json
import logging
from typing import Any, Dict, List, Optional

import requests

from kiosk.core.config import settings
from kiosk.core.errors import AgentError

logger = logging.getLogger(__name__)


class AgentClient:
    """Client for the local printer/scanner agent (default http://localhost:12345)"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.AGENT_URL).strip().rstrip("/")
        self.timeout = timeout or settings.AGENT_TIMEOUT
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> str:
        try:
            response = self.session.request(
                method, f"{self.base_url}{path}", json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise AgentError(f"Agent unreachable: {e}") from e
        if response.status_code >= 400:
            raise AgentError(f"Agent error: {response.status_code}")
        return response.text

    def _json(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        text = self._request(method, path, payload)
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise AgentError(f"Invalid agent response from {path}") from e

    def health(self) -> bool:
        try:
            text = self._request("GET", "/health")
        except AgentError as e:
            logger.info(f"Agent not available: {e}")
            return False
        return "running" in text or "Idento" in text

    def printers(self) -> List[Any]:
        data = self._json("GET", "/printers")
        return data if isinstance(data, list) else []

    def default_printer(self) -> Optional[str]:
        data = self._json("GET", "/printers/default")
        if isinstance(data, dict) and data.get("default"):
            return str(data["default"])
        return None

    def set_default_printer(self, name: str) -> None:
        self._request("POST", "/printers/default", {"default": name})

    def scanners(self) -> List[Any]:
        data = self._json("GET", "/scanners")
        return data if isinstance(data, list) else []

    def scanner_ports(self) -> List[Any]:
        data = self._json("GET", "/scanners/ports")
        return data if isinstance(data, list) else []

    def add_scanner(self, port_name: str) -> None:
        self._request("POST", "/scanners/add", {"port_name": port_name})

    def last_scan(self) -> Optional[str]:
        data = self._json("GET", "/scan/last")
        if isinstance(data, dict):
            code = data.get("code")
            if isinstance(code, str) and code.strip():
                return code.strip()
        return None

    def clear_scan(self) -> None:
        self._request("POST", "/scan/clear")

    def consume_scan(self) -> Optional[str]:
        """Read the last scanned code and clear it so it is processed once"""
        code = self.last_scan()
        if code:
            self.clear_scan()
        return code

    def print_zpl(self, printer_name: str, zpl: str) -> None:
        self._request("POST", "/print", {"printer_name": printer_name, "zpl": zpl})
        logger.info(f"🖨️ Sent {len(zpl)} bytes of ZPL to {printer_name}")
