"""Shared models for the browser session server."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")


@dataclass(frozen=True)
class ServerConfig:
    """Immutable process-level configuration."""

    browser: str = "chromium"
    headless: bool = False
    session_timeout_ms: int = 300000
    max_sessions: int = 10
    max_network_requests: int = 1000
    executable_path: Optional[str] = None
    default_timeout_ms: int = 30000
    event_log_path: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """Build config from ``BROWSER_SERVER_*`` variables, keeping defaults for bad values."""
        env = os.environ if environ is None else environ
        defaults = cls()

        browser = str(env.get("BROWSER_SERVER_BROWSER") or "").strip().lower()
        if browser not in SUPPORTED_BROWSERS:
            browser = defaults.browser

        headless_raw = env.get("BROWSER_SERVER_HEADLESS")
        if headless_raw is None:
            headless = defaults.headless
        else:
            headless = str(headless_raw).strip().lower() in {"true", "1"}

        return cls(
            browser=browser,
            headless=headless,
            session_timeout_ms=_positive_int(
                env.get("BROWSER_SERVER_SESSION_TIMEOUT"), defaults.session_timeout_ms
            ),
            max_sessions=_positive_int(env.get("BROWSER_SERVER_MAX_SESSIONS"), defaults.max_sessions),
            max_network_requests=_positive_int(
                env.get("BROWSER_SERVER_MAX_NETWORK_REQUESTS"), defaults.max_network_requests
            ),
            executable_path=env.get("BROWSER_SERVER_EXECUTABLE_PATH") or None,
            event_log_path=env.get("BROWSER_SERVER_EVENT_LOG") or None,
        )


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(str(raw).strip())
    except Exception:
        return default
    return value if value > 0 else default


@dataclass
class SessionState:
    """Mutable runtime state for one registered session."""

    session_id: str
    created_at: int
    expires_at: int
    browser_context: Any = None
    page: Any = None
    network_capture: Any = None
    network_recorder: Any = None
    expiry_task: Optional[asyncio.Task] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def open_pages(self) -> List[Any]:
        pages = list(getattr(self.browser_context, "pages", None) or [])
        return [p for p in pages if not p.is_closed()]


@dataclass
class NetworkRequest:
    """One captured request and, once it arrives, its response."""

    id: str
    timestamp: int
    url: str
    method: str
    resource_type: str
    request_headers: Dict[str, str] = field(default_factory=dict)
    post_data: Optional[str] = None
    response: Optional[Dict[str, Any]] = None

    def request_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"headers": dict(self.request_headers)}
        if self.post_data is not None:
            payload["postData"] = self.post_data
        return payload

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "url": self.url,
            "method": self.method,
            "resourceType": self.resource_type,
            "request": self.request_payload(),
        }
        if self.response is not None:
            out["response"] = dict(self.response)
        return out

    def summary(self) -> Dict[str, Any]:
        response = self.response or {}
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "url": self.url,
            "method": self.method,
            "resourceType": self.resource_type,
            "status": response.get("status"),
            "statusText": response.get("statusText"),
        }
