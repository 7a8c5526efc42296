import asyncio

from kiosk.core.errors import BackendError, NoPrinterError
from kiosk.models.settings import CheckinSettings
from kiosk.services.checkin import Idle, Resolved, Resolving, ResultStatus

from fakes import (
    T0,
    T1,
    FakeAgent,
    FakeBackend,
    FakeInput,
    FakePrinter,
    make_attendee,
    make_controller,
    wait_until,
)


async def opened(controller, event_id="ev1"):
    assert await controller.open_event(event_id)
    return controller


def test_first_checkin_calls_backend_and_patches_cache():
    async def scenario():
        backend = FakeBackend([make_attendee()])
        controller = await opened(make_controller(backend=backend))

        result = await controller.submit_code("abc1")

        assert backend.check_in_calls == [{"id": "a1", "checkin_status": True}]
        assert result.status == ResultStatus.SUCCESS
        assert result.message == "Checked in"
        assert result.attendee.checked_in_at == T1
        assert isinstance(controller.state, Resolved)
        assert controller.attendees[0].checkin_status
        assert controller.attendees[0].checked_in_at == T1
        assert controller.checked_in_count == 1
        assert result.display["text"].splitlines()[0] == "Jane Doe"

    asyncio.run(scenario())


def test_repeat_checkin_is_read_only():
    async def scenario():
        backend = FakeBackend([make_attendee(checkin_status=True, checked_in_at=T0)])
        controller = await opened(make_controller(backend=backend))

        result = await controller.submit_code("ABC1")

        assert backend.check_in_calls == []
        assert result.status == ResultStatus.WARNING
        assert result.message == "Already checked in"
        assert result.attendee.checked_in_at == T0
        assert controller.attendees[0].checked_in_at == T0

    asyncio.run(scenario())


def test_second_scan_after_success_keeps_first_timestamp():
    async def scenario():
        backend = FakeBackend([make_attendee()])
        controller = await opened(make_controller(backend=backend))

        first = await controller.submit_code("abc1")
        controller.dismiss()
        second = await controller.submit_code("abc1")

        assert len(backend.check_in_calls) == 1
        assert second.status == ResultStatus.WARNING
        assert second.attendee.checked_in_at == first.attendee.checked_in_at

    asyncio.run(scenario())


def test_blocked_attendee_is_never_checked_in():
    async def scenario():
        for checked_in in (False, True):
            backend = FakeBackend([make_attendee(blocked=True, block_reason="banned", checkin_status=checked_in)])
            controller = await opened(make_controller(backend=backend))

            result = await controller.submit_code("abc1")

            assert result.status == ResultStatus.ERROR
            assert result.message == "banned"
            assert len(backend.check_in_calls) == 0

    asyncio.run(scenario())


def test_unknown_code():
    async def scenario():
        backend = FakeBackend([make_attendee()])
        controller = await opened(make_controller(backend=backend))

        result = await controller.submit_code("missing")

        assert result.status == ResultStatus.ERROR
        assert result.message == "Attendee not found"
        assert result.attendee is None
        assert backend.check_in_calls == []

    asyncio.run(scenario())


def test_checkin_failure_leaves_cache_untouched():
    async def scenario():
        backend = FakeBackend([make_attendee()])
        backend.fail_check_in = BackendError("Backend unreachable: timeout")
        controller = await opened(make_controller(backend=backend))

        result = await controller.submit_code("abc1")

        assert result.status == ResultStatus.ERROR
        assert result.message == "Backend unreachable: timeout"
        assert not controller.attendees[0].checkin_status
        assert controller.attendees[0].checked_in_at is None

    asyncio.run(scenario())


def test_single_in_flight_submission(gate):
    async def scenario():
        backend = FakeBackend([make_attendee(), make_attendee(id="a2", code="XYZ2")])
        backend.gate = gate
        controller = await opened(make_controller(backend=backend))

        first = asyncio.create_task(controller.submit_code("abc1"))
        await wait_until(lambda: isinstance(controller.state, Resolving))

        assert await controller.submit_code("xyz2") is None
        gate.set()
        result = await first

        assert result.attendee.id == "a1"
        assert [call["id"] for call in backend.check_in_calls] == ["a1"]
        # a shown result also blocks new submissions until dismissed
        assert await controller.submit_code("xyz2") is None
        assert controller.dismiss()
        assert (await controller.submit_code("xyz2")).attendee.id == "a2"

    asyncio.run(scenario())


def test_stale_result_is_dropped_after_event_change(gate):
    async def scenario():
        backend = FakeBackend([make_attendee()])
        backend.gate = gate
        controller = await opened(make_controller(backend=backend))

        pending = asyncio.create_task(controller.submit_code("abc1"))
        await wait_until(lambda: isinstance(controller.state, Resolving))

        backend.attendees = [make_attendee(id="b1", code="NEW1")]
        assert await controller.open_event("ev2")
        gate.set()

        assert await pending is None
        assert controller.state == Idle()
        assert controller.event.id == "ev2"
        assert [a.id for a in controller.attendees] == ["b1"]

    asyncio.run(scenario())


def test_close_discards_in_flight_result(gate):
    async def scenario():
        backend = FakeBackend([make_attendee()])
        backend.gate = gate
        controller = await opened(make_controller(backend=backend))

        pending = asyncio.create_task(controller.submit_code("abc1"))
        await wait_until(lambda: isinstance(controller.state, Resolving))
        await controller.close()
        gate.set()

        assert await pending is None
        assert controller.state == Idle()
        assert await controller.submit_code("abc1") is None

    asyncio.run(scenario())


def test_auto_dismiss_rearms_input():
    async def scenario():
        controller = make_controller(auto_close=0.05)
        scanner = FakeInput("scanner")
        controller.attach_input(scanner)
        await opened(controller)
        assert scanner.armed

        await controller.submit_code("abc1")
        assert not scanner.armed

        await wait_until(lambda: controller.state == Idle())
        assert scanner.armed
        assert scanner.arm_count == 2
        assert (await controller.submit_code("abc1")).status == ResultStatus.WARNING

    asyncio.run(scenario())


def test_manual_dismiss_cancels_timer_and_rearms():
    async def scenario():
        controller = make_controller(auto_close=0.05)
        scanner = FakeInput("scanner")
        controller.attach_input(scanner)
        await opened(controller)

        await controller.submit_code("missing")
        assert controller.dismiss()
        assert scanner.armed
        assert not controller.dismiss()

        await controller.submit_code("abc1")
        await asyncio.sleep(0.02)
        # the first result's timer must not dismiss the second result early
        assert isinstance(controller.state, Resolved)
        await wait_until(lambda: controller.state == Idle())

    asyncio.run(scenario())


def test_inputs_follow_mode_and_agent():
    async def scenario():
        agent = FakeAgent(connected=False)
        controller = make_controller(agent=agent)
        scanner, camera = FakeInput("scanner"), FakeInput("camera")
        controller.attach_input(scanner)
        controller.attach_input(camera)
        await opened(controller)

        # scanner mode without the agent: nothing polls
        assert not scanner.armed and not camera.armed
        assert controller.notice.level == "warning"

        controller.update_settings(checkin_mode="camera")
        assert camera.armed and not scanner.armed

        agent.connected = True
        controller.update_settings(checkin_mode="scanner")
        await controller.refresh_agent()
        assert scanner.armed and not camera.armed

    asyncio.run(scenario())


def test_auto_print_after_first_checkin():
    async def scenario():
        printer = FakePrinter()
        settings = CheckinSettings(print_enabled=True, manual_print=False)
        controller = await opened(make_controller(printer=printer, settings=settings))

        await controller.submit_code("abc1")
        await wait_until(lambda: controller.notice is not None and controller.notice.level == "success")
        assert printer.calls == ["a1"]

        controller.dismiss()
        await controller.submit_code("abc1")
        await asyncio.sleep(0.05)
        assert printer.calls == ["a1"]

    asyncio.run(scenario())


def test_auto_print_failure_is_a_notice():
    async def scenario():
        printer = FakePrinter(error=NoPrinterError())
        settings = CheckinSettings(print_enabled=True)
        controller = await opened(make_controller(printer=printer, settings=settings))

        result = await controller.submit_code("abc1")
        await wait_until(lambda: controller.notice is not None and controller.notice.level == "error")

        assert controller.notice.message == "No default printer configured"
        assert controller.state == Resolved(result=result)
        assert controller.can_print

    asyncio.run(scenario())


def test_manual_print_only_after_success():
    async def scenario():
        printer = FakePrinter()
        settings = CheckinSettings(print_enabled=True, manual_print=True)
        controller = await opened(make_controller(printer=printer, settings=settings))

        assert not controller.can_print
        await controller.submit_code("missing")
        assert not controller.can_print
        assert not (await controller.print_badge()).ok
        controller.dismiss()

        await controller.submit_code("abc1")
        await asyncio.sleep(0.05)
        assert printer.calls == []

        outcome = await controller.print_badge()
        assert outcome.ok
        assert outcome.printer == "Zebra ZD420"
        assert printer.calls == ["a1"]
        assert isinstance(controller.state, Resolved)

    asyncio.run(scenario())


def test_print_without_agent():
    async def scenario():
        printer = FakePrinter()
        settings = CheckinSettings(print_enabled=True, manual_print=True)
        controller = await opened(make_controller(agent=FakeAgent(connected=False), printer=printer,
                                                  settings=settings))
        await controller.submit_code("abc1")

        outcome = await controller.print_badge()
        assert not outcome.ok
        assert outcome.message == "Printer agent not connected"
        assert printer.calls == []

    asyncio.run(scenario())


def test_settings_are_persisted():
    controller = make_controller()
    updated = controller.update_settings(print_enabled=True, manual_print=True)

    assert updated.manual_print
    assert controller.settings_store.saves == 1
    assert controller.settings_store.value == updated

    controller.update_settings(print_enabled=False)
    assert not controller.settings.manual_print
    assert controller.settings_store.saves == 2


def test_camera_unavailable_switches_to_scanner():
    controller = make_controller(settings=CheckinSettings(checkin_mode="camera"))
    controller.on_camera_unavailable()

    assert controller.settings.checkin_mode == "scanner"
    assert controller.settings_store.value.checkin_mode == "scanner"
    assert controller.notice.level == "warning"


def test_search():
    async def scenario():
        attendees = [make_attendee(id=f"a{i}", code=f"C{i}", first_name="Ann", last_name=f"Lee{i}")
                     for i in range(8)]
        attendees.append(make_attendee(id="z", code="ZED", first_name="Zoe", email="zoe@corp.io"))
        controller = await opened(make_controller(backend=FakeBackend(attendees)))

        assert len(controller.search("ann")) == 5
        assert [a.id for a in controller.search("CORP")] == ["z"]
        assert [a.id for a in controller.search("zed")] == ["z"]
        assert controller.search("  ") == []

    asyncio.run(scenario())


def test_block_and_unblock_reload_attendees():
    async def scenario():
        backend = FakeBackend([make_attendee()])
        controller = await opened(make_controller(backend=backend))

        await controller.block_attendee("a1", "banned")
        assert backend.block_calls == [("a1", "banned")]
        assert controller.attendees[0].blocked
        assert (await controller.submit_code("abc1")).message == "banned"
        controller.dismiss()

        await controller.unblock_attendee("a1")
        assert not controller.attendees[0].blocked
        assert backend.list_calls == 3

    asyncio.run(scenario())


def test_load_failure_is_reported():
    async def scenario():
        backend = FakeBackend([make_attendee()])
        backend.fail_load = BackendError("Event not found", status_code=404)
        controller = make_controller(backend=backend)

        assert not await controller.open_event("ev1")
        assert controller.load_error == "Event not found"
        assert controller.event is None
        assert await controller.submit_code("abc1") is None

    asyncio.run(scenario())


def test_listeners_and_snapshot():
    async def scenario():
        controller = make_controller()
        seen = []
        unsubscribe = controller.subscribe(lambda c: seen.append(c.state.kind))
        await opened(controller)
        await controller.submit_code("abc1")

        assert "resolving" in seen and seen[-1] == "resolved"
        unsubscribe()
        controller.dismiss()
        assert seen[-1] == "resolved"

        snapshot = controller.snapshot()
        assert snapshot["state"] == "idle"
        assert snapshot["event"] == {"id": "ev1", "name": "Expo"}
        assert snapshot["checked_in"] == 1
        assert snapshot["total"] == 1

    asyncio.run(scenario())


def test_non_positive_auto_close_still_expires_results():
    async def scenario():
        controller = make_controller(auto_close=0)
        assert controller.auto_close_seconds == 1.0
        await opened(controller)

        await controller.submit_code("missing")
        await wait_until(lambda: controller.state == Idle(), timeout=3.0)

    asyncio.run(scenario())


def test_clear_notice():
    controller = make_controller()
    assert not controller.clear_notice()

    controller.on_camera_unavailable()
    assert controller.notice is not None
    assert controller.clear_notice()
    assert controller.notice is None
