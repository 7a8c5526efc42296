import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kiosk.models.badge import LabelSpec

logger = logging.getLogger(__name__)

STANDARD_FIELDS = ("id", "first_name", "last_name", "email", "company", "position", "code")


class Attendee(BaseModel):
    """Attendee as returned by GET /api/events/{id}/attendees"""

    model_config = ConfigDict(extra="ignore")

    id: str
    code: str = ""
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None

    checkin_status: bool = False
    checked_in_at: Optional[datetime] = None

    blocked: bool = False
    block_reason: Optional[str] = None

    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "code", "first_name", "last_name", mode="before")
    @classmethod
    def _as_text(cls, value):
        return "" if value is None else str(value)

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _custom_fields_dict(cls, value):
        return value if isinstance(value, dict) else {}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def template_data(self) -> Dict[str, Any]:
        """Flat field map for display templates and badge labels.

        Custom fields come first; standard attendee keys override custom
        keys with the same name.
        """
        data: Dict[str, Any] = dict(self.custom_fields)
        data.update({
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email or "",
            "company": self.company or "",
            "position": self.position or "",
            "code": self.code,
        })
        return data


class Event(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    field_schema: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("field_schema", mode="before")
    @classmethod
    def _schema_list(cls, value):
        return value if isinstance(value, list) else []

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _custom_fields_dict(cls, value):
        return value if isinstance(value, dict) else {}

    @property
    def attendee_template(self) -> Optional[str]:
        template = self.custom_fields.get("attendeeTemplate")
        return template if isinstance(template, str) and template else None

    @property
    def badge_type_field(self) -> Optional[str]:
        field = self.custom_fields.get("badgeTypeField")
        return field if isinstance(field, str) and field else None

    @property
    def badge_template(self) -> Optional[LabelSpec]:
        raw = self.custom_fields.get("badgeTemplate")
        if raw is None:
            return None
        return LabelSpec.parse_lenient(raw)
