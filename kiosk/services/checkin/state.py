"""Pure check-in state machine.

States are ``Idle -> Resolving -> Resolved -> Idle``. ``transition`` never
performs I/O; the controller feeds it events and runs the side effects.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from kiosk.models.attendee import Attendee

MESSAGES = {
    "checked_in": "Checked in",
    "already_checked_in": "Already checked in",
    "not_found": "Attendee not found",
    "blocked": "Attendee is blocked",
    "checkin_failed": "Check-in failed",
}


class ResultStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Outcome(str, Enum):
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    ALREADY_CHECKED_IN = "already_checked_in"
    NEEDS_CHECKIN = "needs_checkin"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ScanResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ResultStatus
    message: str
    attendee: Optional[Attendee] = None
    display: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=_now)


class Idle(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["idle"] = "idle"


class Resolving(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["resolving"] = "resolving"
    code: str


class Resolved(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["resolved"] = "resolved"
    result: ScanResult


CheckinState = Union[Idle, Resolving, Resolved]


# Events
class Submit(BaseModel):
    code: str


class Complete(BaseModel):
    result: ScanResult


class Dismiss(BaseModel):
    pass


class Reset(BaseModel):
    pass


CheckinEvent = Union[Submit, Complete, Dismiss, Reset]


def transition(state: CheckinState, event: CheckinEvent) -> CheckinState:
    """Next state for an event; events that do not apply leave the state unchanged"""
    if isinstance(event, Reset):
        return Idle()
    if isinstance(state, Idle) and isinstance(event, Submit):
        return Resolving(code=event.code) if event.code else state
    if isinstance(state, Resolving) and isinstance(event, Complete):
        return Resolved(result=event.result)
    if isinstance(state, Resolved) and isinstance(event, Dismiss):
        return Idle()
    return state


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().lower()


def find_attendee(attendees: Iterable[Attendee], code: str) -> Optional[Attendee]:
    """Case-insensitive match on attendee code or id"""
    wanted = normalize_code(code)
    if not wanted:
        return None
    for attendee in attendees:
        if normalize_code(attendee.code) == wanted or normalize_code(attendee.id) == wanted:
            return attendee
    return None


def classify(attendee: Optional[Attendee]) -> Outcome:
    if attendee is None:
        return Outcome.NOT_FOUND
    # blocked wins over any check-in state
    if attendee.blocked:
        return Outcome.BLOCKED
    if attendee.checkin_status:
        return Outcome.ALREADY_CHECKED_IN
    return Outcome.NEEDS_CHECKIN


def result_for(outcome: Outcome, attendee: Optional[Attendee],
               display: Optional[Dict[str, Any]] = None) -> ScanResult:
    """Result for the outcomes that need no backend write"""
    if outcome == Outcome.NOT_FOUND:
        return ScanResult(status=ResultStatus.ERROR, message=MESSAGES["not_found"])
    if outcome == Outcome.BLOCKED:
        return ScanResult(
            status=ResultStatus.ERROR,
            attendee=attendee,
            message=attendee.block_reason or MESSAGES["blocked"],
            display=display,
        )
    if outcome == Outcome.ALREADY_CHECKED_IN:
        return ScanResult(
            status=ResultStatus.WARNING,
            attendee=attendee,
            message=MESSAGES["already_checked_in"],
            display=display,
        )
    raise ValueError(f"{outcome.value} requires a check-in call")
