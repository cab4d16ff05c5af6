"""Playwright browser session server: isolated sessions, page tools and network capture."""

from .errors import BrowserServerError, ErrorCodes
from .event_logger import BrowserEventLogger
from .models import NetworkRequest, ServerConfig, SessionState
from .network_capture import NetworkCapture, NetworkRecorder
from .network_inspector import NetworkInspectorFeature
from .page_actions import PageActionsFeature, mcp_tool
from .page_inspector import PageInspectorFeature, synthesize_selector
from .session import SessionManager
from .session_tools import SessionToolsFeature
from .toolkit import BrowserToolkit

__all__ = [
    "BrowserEventLogger",
    "BrowserServerError",
    "BrowserToolkit",
    "ErrorCodes",
    "NetworkCapture",
    "NetworkInspectorFeature",
    "NetworkRecorder",
    "NetworkRequest",
    "PageActionsFeature",
    "PageInspectorFeature",
    "ServerConfig",
    "SessionManager",
    "SessionState",
    "SessionToolsFeature",
    "mcp_tool",
    "synthesize_selector",
]
