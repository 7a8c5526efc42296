import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from kiosk.db.base import Base
from kiosk.db.session import make_engine
from kiosk.models.settings import CheckinSettings, KioskSettingRow
from kiosk.services.settings_store import SqlSettingsStore


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_defaults_when_nothing_saved(session_factory):
    store = SqlSettingsStore(session_factory, device_id="kiosk-1")
    assert store.load() == CheckinSettings()


def test_save_and_load_round_trip(session_factory):
    store = SqlSettingsStore(session_factory, device_id="kiosk-1")
    store.save(CheckinSettings(checkin_mode="camera", print_enabled=True))
    store.save(CheckinSettings(checkin_mode="camera", print_enabled=True, manual_print=True))

    assert store.load() == CheckinSettings(checkin_mode="camera", print_enabled=True, manual_print=True)

    db = session_factory()
    try:
        assert db.query(KioskSettingRow).count() == 1
    finally:
        db.close()


def test_settings_are_per_device(session_factory):
    SqlSettingsStore(session_factory, device_id="kiosk-1").save(CheckinSettings(print_enabled=True))
    assert SqlSettingsStore(session_factory, device_id="kiosk-2").load() == CheckinSettings()


def test_corrupt_payload_falls_back_to_defaults(session_factory):
    db = session_factory()
    db.add(KioskSettingRow(device_id="kiosk-1", payload={"checkin_mode": "laser", "print_enabled": "yes"}))
    db.commit()
    db.close()

    loaded = SqlSettingsStore(session_factory, device_id="kiosk-1").load()
    assert loaded.checkin_mode == "scanner"
    assert loaded.print_enabled


def test_missing_table_loads_defaults_and_save_raises():
    engine = make_engine("sqlite://")
    store = SqlSettingsStore(sessionmaker(bind=engine), device_id="kiosk-1")

    assert store.load() == CheckinSettings()
    with pytest.raises(OperationalError):
        store.save(CheckinSettings())


def test_manual_print_requires_printing():
    settings = CheckinSettings().with_changes(manual_print=True)
    assert not settings.manual_print
    assert not settings.auto_print

    settings = settings.with_changes(print_enabled=True)
    assert settings.auto_print
    assert settings.with_changes(manual_print=True, checkin_mode=None).manual_print
