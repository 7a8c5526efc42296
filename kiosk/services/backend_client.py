import logging
from typing import Any, Dict, List, Optional

import requests

from kiosk.core.config import settings
from kiosk.core.errors import BackendError
from kiosk.models.attendee import Attendee, Event

logger = logging.getLogger(__name__)


class BackendClient:
    """Blocking client for the Idento backend REST API"""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.BACKEND_URL).strip().rstrip("/")
        self.token = token if token is not None else settings.BACKEND_TOKEN
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, json=json, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"❌ Backend unreachable ({method} {path}): {e}")
            raise BackendError(f"Backend unreachable: {e}") from e

        if response.status_code >= 400:
            message = f"{method} {path} failed with status {response.status_code}"
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("error"):
                    message = str(body["error"])
            except ValueError:
                pass
            if response.status_code == 401:
                logger.warning("⚠️ Backend rejected the kiosk token")
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON from {path}") from e

    def get_event(self, event_id: str) -> Event:
        return Event.model_validate(self._request("GET", f"/api/events/{event_id}"))

    def list_attendees(self, event_id: str) -> List[Attendee]:
        data = self._request("GET", f"/api/events/{event_id}/attendees")
        if not isinstance(data, list):
            return []
        return [Attendee.model_validate(item) for item in data]

    def check_in(self, attendee_id: str) -> Optional[Attendee]:
        """Mark an attendee checked in; returns the backend's updated record when it sends one"""
        data = self._request("PUT", f"/api/attendees/{attendee_id}", json={"checkin_status": True})
        return Attendee.model_validate(data) if isinstance(data, dict) and data.get("id") else None

    def block(self, attendee_id: str, reason: str) -> Optional[Attendee]:
        data = self._request("POST", f"/api/attendees/{attendee_id}/block", json={"reason": reason})
        return Attendee.model_validate(data) if isinstance(data, dict) and data.get("id") else None

    def unblock(self, attendee_id: str) -> Optional[Attendee]:
        data = self._request("POST", f"/api/attendees/{attendee_id}/unblock", json={})
        return Attendee.model_validate(data) if isinstance(data, dict) and data.get("id") else None

    def badge_zpl(self, event_id: str, attendee_id: str) -> str:
        data = self._request("POST", f"/api/events/{event_id}/badge-zpl", json={"attendee_id": attendee_id})
        zpl = data.get("zpl") if isinstance(data, dict) else None
        if not zpl:
            raise BackendError("Backend returned no ZPL")
        return zpl
