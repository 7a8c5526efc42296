from kiosk.services.checkin.controller import CheckinController, InputSource, Notice, PrintOutcome
from kiosk.services.checkin.state import Idle, Outcome, Resolved, Resolving, ResultStatus, ScanResult
