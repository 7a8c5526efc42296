import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kiosk.core.config import settings
from kiosk.models.settings import CheckinSettings, KioskSettingRow

logger = logging.getLogger(__name__)


class SettingsStore:
    """Load/save interface for per-device check-in settings"""

    def load(self) -> CheckinSettings:
        raise NotImplementedError

    def save(self, value: CheckinSettings) -> None:
        raise NotImplementedError


class MemorySettingsStore(SettingsStore):
    def __init__(self, initial: Optional[CheckinSettings] = None):
        self.value = initial or CheckinSettings()
        self.saves = 0

    def load(self) -> CheckinSettings:
        return self.value

    def save(self, value: CheckinSettings) -> None:
        self.value = value
        self.saves += 1


class SqlSettingsStore(SettingsStore):
    """Settings persisted in the local kiosk database, one row per device"""

    def __init__(self, session_factory: Callable[[], Session], device_id: Optional[str] = None):
        self.session_factory = session_factory
        self.device_id = device_id or settings.DEVICE_ID

    def load(self) -> CheckinSettings:
        db = self.session_factory()
        try:
            row = db.query(KioskSettingRow).filter(KioskSettingRow.device_id == self.device_id).first()
            if not row:
                return CheckinSettings()
            return CheckinSettings.from_stored(row.payload)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load kiosk settings: {e}")
            return CheckinSettings()
        finally:
            db.close()

    def save(self, value: CheckinSettings) -> None:
        db = self.session_factory()
        try:
            row = db.query(KioskSettingRow).filter(KioskSettingRow.device_id == self.device_id).first()
            if row is None:
                row = KioskSettingRow(device_id=self.device_id, payload=value.model_dump())
                db.add(row)
            else:
                row.payload = value.model_dump()
            db.commit()
            logger.info(f"✅ Saved kiosk settings for device {self.device_id}")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to save kiosk settings: {e}")
            raise
        finally:
            db.close()
