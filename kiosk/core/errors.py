from typing import Optional


class KioskError(Exception):
    """Base class for errors raised by kiosk services"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendError(KioskError):
    """The backend REST API failed or returned an error"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AgentError(KioskError):
    """The local printer/scanner agent is unreachable or rejected a request"""


class PrintError(KioskError):
    pass


class NoPrinterError(PrintError):
    def __init__(self, message: str = "No default printer configured"):
        super().__init__(message)


class TemplateNotConfigured(PrintError):
    def __init__(self, message: str = "Badge template not configured"):
        super().__init__(message)
