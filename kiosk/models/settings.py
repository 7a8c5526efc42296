from typing import Literal

from pydantic import BaseModel as PydanticBase
from pydantic import ConfigDict
from sqlalchemy import Column, JSON, String

from kiosk.db.base import Base, BaseModel


# Database Models
class KioskSettingRow(Base, BaseModel):
    __tablename__ = "kiosk_settings"

    device_id = Column(String, unique=True, nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<KioskSettingRow {self.device_id}>"


# Pydantic Schemas
class CheckinSettings(PydanticBase):
    """Per-device check-in preferences"""

    model_config = ConfigDict(frozen=True)

    checkin_mode: Literal["camera", "scanner"] = "scanner"
    print_enabled: bool = False
    manual_print: bool = False

    @classmethod
    def from_stored(cls, raw) -> "CheckinSettings":
        """Lenient decode of a stored payload; unknown values fall back to defaults"""
        if not isinstance(raw, dict):
            return cls()
        return cls(
            checkin_mode="camera" if raw.get("checkin_mode") == "camera" else "scanner",
            print_enabled=bool(raw.get("print_enabled")),
            manual_print=bool(raw.get("manual_print")),
        )

    def with_changes(self, **changes) -> "CheckinSettings":
        data = self.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        if not data["print_enabled"]:
            data["manual_print"] = False
        return CheckinSettings(**data)

    @property
    def auto_print(self) -> bool:
        return self.print_enabled and not self.manual_print
