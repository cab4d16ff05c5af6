"""Error codes and the structured error raised by browser features."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCodes:
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    MAX_SESSIONS_REACHED = "MAX_SESSIONS_REACHED"

    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
    ELEMENT_NOT_CLICKABLE = "ELEMENT_NOT_CLICKABLE"
    ELEMENT_NOT_EDITABLE = "ELEMENT_NOT_EDITABLE"
    INVALID_SELECTOR = "INVALID_SELECTOR"
    WAIT_FOR_ELEMENT_TIMEOUT = "WAIT_FOR_ELEMENT_TIMEOUT"
    SCREENSHOT_FAILED = "SCREENSHOT_FAILED"
    SCROLL_FAILED = "SCROLL_FAILED"

    SCRIPT_EXECUTION_FAILED = "SCRIPT_EXECUTION_FAILED"

    INVALID_PAGE_INDEX = "INVALID_PAGE_INDEX"
    CANNOT_CLOSE_LAST_PAGE = "CANNOT_CLOSE_LAST_PAGE"
    PAGE_ALREADY_CLOSED = "PAGE_ALREADY_CLOSED"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"

    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    INVALID_TOOL = "INVALID_TOOL"
    BROWSER_ERROR = "BROWSER_ERROR"
    INSTALL_FAILED = "INSTALL_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class BrowserServerError(Exception):
    """Failure that maps onto a structured error payload."""

    def __init__(
        self,
        error_code: str,
        message: str,
        *,
        session_id: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.session_id = session_id
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"errorCode": self.error_code, "message": self.message}
        if self.session_id is not None:
            payload["sessionId"] = self.session_id
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"BrowserServerError({self.error_code!r}, {self.message!r})"


def session_not_found(session_id: str) -> BrowserServerError:
    return BrowserServerError(
        ErrorCodes.SESSION_NOT_FOUND, f"Session not found: {session_id}", session_id=session_id
    )


def session_expired(session_id: str) -> BrowserServerError:
    return BrowserServerError(
        ErrorCodes.SESSION_EXPIRED, f"Session expired: {session_id}", session_id=session_id
    )


def max_sessions_reached(max_sessions: int) -> BrowserServerError:
    return BrowserServerError(
        ErrorCodes.MAX_SESSIONS_REACHED, f"Maximum number of sessions ({max_sessions}) reached"
    )


def element_not_found(session_id: str, selector: str) -> BrowserServerError:
    return BrowserServerError(
        ErrorCodes.ELEMENT_NOT_FOUND, f"Element not found: {selector}", session_id=session_id
    )


def invalid_parameters(message: str, details: Any = None) -> BrowserServerError:
    return BrowserServerError(ErrorCodes.INVALID_PARAMETERS, message, details=details)
