import asyncio

import numpy as np
from sqlalchemy.exc import OperationalError

from kiosk.models.settings import CheckinSettings
from kiosk.services.checkin import CheckinController
from kiosk.services.scanner import CameraScanner, ScannerPoller, wait_for_scan
from kiosk.services.settings_store import MemorySettingsStore

from fakes import FakeAgent, FakeBackend, FakePrinter, make_attendee, make_controller, wait_until


class FakeCapture:
    def __init__(self, opened=True):
        self.opened = opened
        self.released = False

    def isOpened(self):
        return self.opened

    def read(self):
        return True, np.full((48, 64, 3), 255, dtype=np.uint8)

    def release(self):
        self.released = True


def test_poller_submits_only_while_armed():
    async def scenario():
        agent = FakeAgent()
        submitted = []

        async def submit(code):
            submitted.append(code)

        poller = ScannerPoller(agent, submit, interval=0.01)
        agent.codes = ["ABC1"]

        await poller.tick()
        assert submitted == []  # not armed: code is consumed but ignored

        agent.codes = ["XYZ2"]
        poller.arm()
        await poller.tick()
        assert submitted == ["XYZ2"]

    asyncio.run(scenario())


def test_poller_survives_agent_errors():
    async def scenario():
        agent = FakeAgent(connected=False)
        submitted = []

        async def submit(code):
            submitted.append(code)

        poller = ScannerPoller(agent, submit, interval=0.01)
        poller.arm()
        poller.start()
        await asyncio.sleep(0.05)

        agent.connected = True
        agent.codes = ["ABC1"]
        await wait_until(lambda: submitted == ["ABC1"])
        await poller.stop()

    asyncio.run(scenario())


def test_poller_feeds_controller_end_to_end():
    async def scenario():
        agent = FakeAgent()
        controller = make_controller(agent=agent)
        poller = ScannerPoller(agent, controller.submit_code, interval=0.01)
        controller.attach_input(poller)
        poller.start()
        await controller.open_event("ev1")
        assert poller.armed

        agent.codes = ["abc1"]
        await wait_until(lambda: controller.state.kind == "resolved")
        assert controller.state.result.message == "Checked in"
        assert not poller.armed
        await controller.shutdown()

    asyncio.run(scenario())


def test_camera_unavailable_is_reported():
    async def scenario():
        reasons = []

        async def submit(code):
            pass

        capture = FakeCapture(opened=False)
        camera = CameraScanner(submit, reasons.append, camera_index=0, interval=0.01,
                               capture_factory=lambda index: capture)
        camera.arm()
        await camera.tick()

        assert reasons == ["Camera not available"]
        assert not camera.armed
        assert capture.released

    asyncio.run(scenario())


def test_camera_frame_without_code():
    async def scenario():
        submitted = []

        async def submit(code):
            submitted.append(code)

        capture = FakeCapture()
        camera = CameraScanner(submit, lambda reason: None, interval=0.01,
                               capture_factory=lambda index: capture)
        camera.arm()
        await camera.tick()
        await camera.stop()

        assert submitted == []
        assert capture.released

    asyncio.run(scenario())


def test_wait_for_scan():
    async def scenario():
        agent = FakeAgent()
        agent.codes = [None, "TEST1"]

        assert await wait_for_scan(agent, timeout=1, interval=0.01) == "TEST1"
        assert agent.cleared == 1
        assert await wait_for_scan(agent, timeout=0.05, interval=0.01) is None

    asyncio.run(scenario())


class BrokenStore(MemorySettingsStore):
    def save(self, value):
        raise OperationalError("UPDATE kiosk_settings", {}, Exception("database is locked"))


def test_camera_loop_survives_unsaved_fallback():
    async def scenario():
        controller = CheckinController(
            backend=FakeBackend([make_attendee()]),
            agent=FakeAgent(),
            printer=FakePrinter(),
            settings_store=BrokenStore(CheckinSettings(checkin_mode="camera")),
            auto_close_seconds=30,
        )
        capture = FakeCapture(opened=False)
        camera = CameraScanner(controller.submit_code, controller.on_camera_unavailable,
                               interval=0.01, capture_factory=lambda index: capture)
        controller.attach_input(camera)
        camera.start()
        await controller.open_event("ev1")

        await wait_until(lambda: controller.notice is not None)
        assert controller.settings.checkin_mode == "scanner"
        assert controller.notice.level == "warning"
        assert not camera.armed
        assert not camera._task.done()
        await controller.shutdown()

    asyncio.run(scenario())


def test_loop_keeps_running_after_unexpected_error():
    async def scenario():
        calls = []

        async def submit(code):
            calls.append(code)
            if len(calls) == 1:
                raise ValueError("boom")

        agent = FakeAgent()
        agent.codes = ["ONE", "TWO"]
        poller = ScannerPoller(agent, submit, interval=0.01)
        poller.arm()
        poller.start()

        await wait_until(lambda: calls == ["ONE", "TWO"])
        assert not poller._task.done()
        await poller.stop()

    asyncio.run(scenario())
