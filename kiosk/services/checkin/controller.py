import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, Field, ValidationError

from kiosk.core.config import settings
from kiosk.core.errors import KioskError
from kiosk.models.attendee import Attendee, Event
from kiosk.models.settings import CheckinSettings
from kiosk.services.checkin.state import (
    MESSAGES,
    CheckinEvent,
    CheckinState,
    Complete,
    Dismiss,
    Idle,
    Outcome,
    Reset,
    Resolved,
    Resolving,
    ResultStatus,
    ScanResult,
    Submit,
    classify,
    find_attendee,
    normalize_code,
    result_for,
    transition,
)
from kiosk.services.settings_store import SettingsStore
from kiosk.services.template import display_block

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5
MIN_AUTO_CLOSE_SECONDS = 1.0

Listener = Callable[["CheckinController"], None]


class Notice(BaseModel):
    """Non-blocking banner/toast shown next to the result screen"""

    level: str  # info, success, warning, error
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None

    def expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


class PrintOutcome(BaseModel):
    ok: bool
    message: str
    printer: Optional[str] = None


class InputSource:
    """Something that feeds codes into the controller while armed"""

    mode = "scanner"

    def arm(self) -> None:
        raise NotImplementedError

    def disarm(self) -> None:
        raise NotImplementedError


class CheckinController:
    """Owns the check-in session for one event: attendee cache, result
    state, auto-dismiss timer, printing and input arming.

    Blocking backend/agent calls run in worker threads via
    ``asyncio.to_thread``; all state changes happen on the event loop.
    """

    def __init__(self, backend, agent, printer, settings_store: SettingsStore,
                 auto_close_seconds: Optional[float] = None):
        self.backend = backend
        self.agent = agent
        self.printer = printer
        self.settings_store = settings_store
        if auto_close_seconds is None:
            auto_close_seconds = settings.RESULT_AUTO_CLOSE_SECONDS
        # results always expire
        if auto_close_seconds <= 0:
            auto_close_seconds = MIN_AUTO_CLOSE_SECONDS
        self.auto_close_seconds = auto_close_seconds

        self.settings: CheckinSettings = settings_store.load()
        self.state: CheckinState = Idle()
        self.event: Optional[Event] = None
        self.attendees: List[Attendee] = []
        self.load_error: Optional[str] = None
        self.agent_connected = False
        self._agent_probed = False

        self._notice: Optional[Notice] = None
        self._epoch = 0
        self._result_seq = 0
        self._dismiss_handle: Optional[asyncio.TimerHandle] = None
        self._print_tasks: Set[asyncio.Task] = set()
        self._inputs: List[InputSource] = []
        self._listeners: List[Listener] = []

    # ---- state plumbing ----

    def _dispatch(self, event: CheckinEvent) -> None:
        self.state = transition(self.state, event)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"❌ State listener failed: {e}")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def attach_input(self, source: InputSource) -> None:
        self._inputs.append(source)
        self._rearm()

    def _input_wanted(self, source: InputSource) -> bool:
        if self.event is None or not isinstance(self.state, Idle):
            return False
        if source.mode != self.settings.checkin_mode:
            return False
        # scanner codes come from the agent
        return source.mode != "scanner" or self.agent_connected

    def _rearm(self) -> None:
        for source in self._inputs:
            if self._input_wanted(source):
                source.arm()
            else:
                source.disarm()

    def _set_notice(self, level: str, message: str) -> None:
        ttl = max(self.auto_close_seconds, MIN_AUTO_CLOSE_SECONDS)
        now = datetime.now(timezone.utc)
        self._notice = Notice(level=level, message=message, created_at=now,
                              expires_at=now + timedelta(seconds=ttl))
        self._notify()

    @property
    def notice(self) -> Optional[Notice]:
        if self._notice is not None and self._notice.expired():
            self._notice = None
        return self._notice

    def clear_notice(self) -> bool:
        if self._notice is None:
            return False
        self._notice = None
        self._notify()
        return True

    @property
    def checked_in_count(self) -> int:
        return sum(1 for attendee in self.attendees if attendee.checkin_status)

    @property
    def can_print(self) -> bool:
        return (
            self.settings.print_enabled
            and isinstance(self.state, Resolved)
            and self.state.result.status == ResultStatus.SUCCESS
            and self.state.result.attendee is not None
        )

    # ---- session ----

    async def open_event(self, event_id: str) -> bool:
        """Start a session for an event; any earlier session is cancelled"""
        self._epoch += 1
        epoch = self._epoch
        self._cancel_timer()
        self._dispatch(Reset())
        self.event = None
        self.attendees = []
        self.load_error = None
        self._rearm()
        self._notify()

        try:
            event = await asyncio.to_thread(self.backend.get_event, event_id)
            attendees = await asyncio.to_thread(self.backend.list_attendees, event_id)
        except (KioskError, ValidationError) as e:
            if epoch != self._epoch:
                return False
            message = e.message if isinstance(e, KioskError) else "Invalid event data"
            logger.error(f"❌ Failed to load event {event_id}: {message}")
            self.load_error = message
            self._set_notice("error", message)
            return False

        if epoch != self._epoch:
            logger.info(f"Dropping stale load for event {event_id}")
            return False

        self.event = event
        self.attendees = list(attendees)
        logger.info(f"✅ Event {event.id} loaded with {len(self.attendees)} attendees")

        await self.refresh_agent()
        if epoch != self._epoch:
            return False
        self._rearm()
        self._notify()
        return True

    async def close(self) -> None:
        """Leave the check-in screen; in-flight results are discarded"""
        self._epoch += 1
        self._cancel_timer()
        self._dispatch(Reset())
        self.event = None
        self.attendees = []
        self.load_error = None
        self._rearm()
        self._notify()
        logger.info("Check-in session closed")

    async def shutdown(self) -> None:
        await self.close()
        for task in list(self._print_tasks):
            task.cancel()
        for source in self._inputs:
            stop = getattr(source, "stop", None)
            if stop is not None:
                await stop()

    # ---- check-in flow ----

    def _display(self, attendee: Optional[Attendee]) -> Optional[Dict[str, Any]]:
        if attendee is None or self.event is None:
            return None
        return display_block(
            self.event.attendee_template, attendee.template_data(), self.event.badge_type_field
        )

    async def submit_code(self, code: str) -> Optional[ScanResult]:
        """Resolve a scanned or typed code.

        Returns the result, or None when the submission was not accepted
        (no event open, empty code, or another result in flight or shown).
        """
        if self.event is None:
            logger.warning("⚠️ Code submitted with no event open")
            return None
        if not isinstance(self.state, Idle):
            logger.info(f"Ignoring code while {self.state.kind}")
            return None
        normalized = normalize_code(code)
        if not normalized:
            return None

        epoch = self._epoch
        self._dispatch(Submit(code=normalized))
        self._rearm()
        self._notify()

        attendee = find_attendee(self.attendees, normalized)
        outcome = classify(attendee)

        if outcome != Outcome.NEEDS_CHECKIN:
            result = result_for(outcome, attendee, self._display(attendee))
            logger.info(f"Scan {normalized}: {outcome.value}")
            self._complete(result)
            return result

        try:
            updated = await asyncio.to_thread(self.backend.check_in, attendee.id)
        except Exception as e:
            if epoch != self._epoch:
                return None
            message = e.message if isinstance(e, KioskError) else MESSAGES["checkin_failed"]
            logger.error(f"❌ Check-in failed for attendee {attendee.id}: {e}")
            result = ScanResult(
                status=ResultStatus.ERROR,
                attendee=attendee,
                message=message,
                display=self._display(attendee),
            )
            self._complete(result)
            return result

        if epoch != self._epoch:
            logger.info(f"Dropping stale check-in result for attendee {attendee.id}")
            return None

        patched = self._patch_checked_in(attendee, updated)
        result = ScanResult(
            status=ResultStatus.SUCCESS,
            attendee=patched,
            message=MESSAGES["checked_in"],
            display=self._display(patched),
        )
        logger.info(f"✅ Checked in attendee {patched.id}")
        self._complete(result)

        if self.settings.auto_print:
            self._schedule_print(patched)
        return result

    def _patch_checked_in(self, attendee: Attendee, updated: Optional[Attendee]) -> Attendee:
        """Patch the cached attendee in place; checked_in_at is set once"""
        checked_in_at = attendee.checked_in_at
        if checked_in_at is None:
            checked_in_at = (updated.checked_in_at if updated else None) or datetime.now(timezone.utc)
        patched = attendee.model_copy(update={"checkin_status": True, "checked_in_at": checked_in_at})

        for index, cached in enumerate(self.attendees):
            if cached.id == attendee.id:
                self.attendees[index] = patched
                break
        return patched

    def _complete(self, result: ScanResult) -> None:
        self._dispatch(Complete(result=result))
        self._result_seq += 1
        self._start_timer(self._epoch, self._result_seq)
        self._notify()

    # ---- result lifecycle ----

    def _cancel_timer(self) -> None:
        if self._dismiss_handle is not None:
            self._dismiss_handle.cancel()
            self._dismiss_handle = None

    def _start_timer(self, epoch: int, seq: int) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._dismiss_handle = loop.call_later(self.auto_close_seconds, self._auto_dismiss, epoch, seq)

    def _auto_dismiss(self, epoch: int, seq: int) -> None:
        self._dismiss_handle = None
        if epoch != self._epoch or seq != self._result_seq:
            return
        if isinstance(self.state, Resolved):
            logger.debug("Result auto-dismissed")
            self._to_idle()

    def _to_idle(self) -> None:
        self._dispatch(Dismiss())
        self._rearm()
        self._notify()

    def dismiss(self) -> bool:
        if not isinstance(self.state, Resolved):
            return False
        self._cancel_timer()
        self._to_idle()
        return True

    def _schedule_print(self, attendee: Attendee) -> None:
        task = asyncio.create_task(self._print(attendee, self._epoch))
        self._print_tasks.add(task)
        task.add_done_callback(self._print_tasks.discard)

    async def _print(self, attendee: Attendee, epoch: int) -> PrintOutcome:
        if not self.agent_connected:
            outcome = PrintOutcome(ok=False, message="Printer agent not connected")
        elif self.event is None:
            outcome = PrintOutcome(ok=False, message="No event open")
        else:
            try:
                printer = await asyncio.to_thread(self.printer.print_badge, self.event, attendee)
                outcome = PrintOutcome(ok=True, message="Badge sent to printer", printer=printer)
            except KioskError as e:
                logger.error(f"❌ Badge print failed for attendee {attendee.id}: {e.message}")
                outcome = PrintOutcome(ok=False, message=e.message)
            except Exception as e:
                logger.error(f"❌ Badge print failed for attendee {attendee.id}: {e}")
                outcome = PrintOutcome(ok=False, message="Print failed")

        if epoch == self._epoch:
            self._set_notice("success" if outcome.ok else "error", outcome.message)
        return outcome

    async def print_badge(self) -> PrintOutcome:
        """Manual print for the attendee on the current success result"""
        if not self.can_print:
            return PrintOutcome(ok=False, message="Nothing to print")
        return await self._print(self.state.result.attendee, self._epoch)

    # ---- settings and attendee management ----

    def update_settings(self, **changes) -> CheckinSettings:
        updated = self.settings.with_changes(**changes)
        if updated != self.settings:
            self.settings_store.save(updated)
            self.settings = updated
            logger.info(f"Kiosk settings updated: {updated.model_dump()}")
        self._rearm()
        self._notify()
        return self.settings

    def on_camera_unavailable(self, reason: str = "Camera not available") -> None:
        logger.warning(f"⚠️ {reason}, switching to scanner mode")
        try:
            self.update_settings(checkin_mode="scanner")
        except Exception as e:
            # switch for this session even if the store is unavailable
            logger.error(f"❌ Could not persist scanner mode: {e}")
            self.settings = self.settings.with_changes(checkin_mode="scanner")
            self._rearm()
        self._set_notice("warning", f"{reason}. Switched to scanner mode")

    def search(self, query: str) -> List[Attendee]:
        """Name, email or code substring matches for manual lookup"""
        needle = (query or "").strip().lower()
        if not needle:
            return []
        matches = []
        for attendee in self.attendees:
            haystacks = (attendee.full_name, attendee.email or "", attendee.code)
            if any(needle in value.lower() for value in haystacks):
                matches.append(attendee)
                if len(matches) >= SEARCH_LIMIT:
                    break
        return matches

    async def reload_attendees(self) -> bool:
        if self.event is None:
            return False
        epoch = self._epoch
        event_id = self.event.id
        try:
            attendees = await asyncio.to_thread(self.backend.list_attendees, event_id)
        except (KioskError, ValidationError) as e:
            if epoch == self._epoch:
                logger.error(f"❌ Failed to reload attendees: {e}")
                self._set_notice("error", "Failed to reload attendees")
            return False
        if epoch != self._epoch:
            return False
        self.attendees = list(attendees)
        self._notify()
        return True

    async def block_attendee(self, attendee_id: str, reason: str) -> None:
        await asyncio.to_thread(self.backend.block, attendee_id, reason)
        logger.info(f"🚫 Blocked attendee {attendee_id}")
        await self.reload_attendees()

    async def unblock_attendee(self, attendee_id: str) -> None:
        await asyncio.to_thread(self.backend.unblock, attendee_id)
        logger.info(f"Unblocked attendee {attendee_id}")
        await self.reload_attendees()

    async def refresh_agent(self) -> bool:
        connected = await asyncio.to_thread(self.agent.health)
        changed = connected != self.agent_connected or not self._agent_probed
        self._agent_probed = True
        if changed:
            self.agent_connected = connected
            if connected:
                logger.info("✅ Printer agent connected")
            else:
                self._set_notice("warning", "Printer agent not connected. Printing and scanner are disabled")
        self._rearm()
        return connected

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the session for the UI"""
        result = self.state.result.model_dump(mode="json") if isinstance(self.state, Resolved) else None
        notice = self.notice
        return {
            "state": self.state.kind,
            "code": self.state.code if isinstance(self.state, Resolving) else None,
            "result": result,
            "event": {"id": self.event.id, "name": self.event.name} if self.event else None,
            "load_error": self.load_error,
            "settings": self.settings.model_dump(),
            "agent_connected": self.agent_connected,
            "can_print": self.can_print,
            "total": len(self.attendees),
            "checked_in": self.checked_in_count,
            "notice": notice.model_dump(mode="json") if notice else None,
        }
