"""Playwright engine and session lifecycle."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from .errors import (
    BrowserServerError,
    ErrorCodes,
    max_sessions_reached,
    session_expired,
    session_not_found,
)
from .event_logger import BrowserEventLogger
from .models import SUPPORTED_BROWSERS, ServerConfig, SessionState
from .network_capture import NetworkCapture, NetworkRecorder

try:
    from playwright.async_api import async_playwright
except Exception:
    async_playwright = None  # type: ignore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionManager:
    """
    Own the shared browser and the registry of isolated sessions.

    Every session gets its own browser context, an active page, a network
    capture buffer and a cancellable expiry task. Expiry is fixed at
    creation; nothing extends it.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        event_logger: Optional[BrowserEventLogger] = None,
    ):
        self.config = config or ServerConfig()
        self.event_logger = event_logger
        self.sessions: Dict[str, SessionState] = {}
        self.playwright: Any = None
        self.browser: Any = None
        self._init_lock = asyncio.Lock()
        self._pending_creates = 0

    async def initialize(self) -> None:
        """Launch the shared browser once; later calls are no-ops."""
        async with self._init_lock:
            if self.browser is not None:
                return
            if self.config.browser not in SUPPORTED_BROWSERS:
                raise BrowserServerError(
                    ErrorCodes.BROWSER_ERROR,
                    f"Unsupported browser type: {self.config.browser}",
                )
            if self.playwright is None:
                if async_playwright is None:
                    raise ImportError(
                        "Playwright is not available. Install with: pip install playwright "
                        "and install browser binaries."
                    )
                self.playwright = await async_playwright().start()

            launch_options: Dict[str, Any] = {"headless": bool(self.config.headless)}
            if self.config.executable_path:
                launch_options["executable_path"] = self.config.executable_path

            browser_type = getattr(self.playwright, self.config.browser)
            self.browser = await browser_type.launch(**launch_options)
            logger.info(
                "Launched %s (headless=%s)", self.config.browser, bool(self.config.headless)
            )

    async def create_session(self) -> Dict[str, Any]:
        """Register a new isolated session and return ``{sessionId, expiresAt}``."""
        if len(self.sessions) + self._pending_creates >= self.config.max_sessions:
            raise max_sessions_reached(self.config.max_sessions)

        session_id = str(uuid.uuid4())
        self._pending_creates += 1
        try:
            if self.browser is None:
                await self.initialize()
            context = await self.browser.new_context()
            try:
                page = await context.new_page()
            except Exception:
                await _close_quietly(context, f"context of unborn session {session_id}")
                raise
        finally:
            self._pending_creates -= 1

        timeout_ms = int(self.config.default_timeout_ms)
        context.set_default_timeout(float(timeout_ms))
        context.set_default_navigation_timeout(float(timeout_ms))

        capture = NetworkCapture(self.config.max_network_requests)
        recorder = NetworkRecorder(capture, session_id=session_id, event_logger=self.event_logger)
        recorder.attach(page)
        # Tabs and popups opened later in this context are captured too.
        context.on("page", recorder.attach)

        created_at = _now_ms()
        expires_at = created_at + int(self.config.session_timeout_ms)
        state = SessionState(
            session_id=session_id,
            created_at=created_at,
            expires_at=expires_at,
            browser_context=context,
            page=page,
            network_capture=capture,
            network_recorder=recorder,
        )
        self.sessions[session_id] = state
        state.expiry_task = asyncio.ensure_future(
            self._expire_after(session_id, self.config.session_timeout_ms / 1000.0)
        )

        if self.event_logger is not None:
            self.event_logger.session_opened(session_id, created_at, expires_at)
        logger.info("Created session %s (expires at %s)", session_id, expires_at)
        return {"sessionId": session_id, "expiresAt": expires_at}

    def get_session(self, session_id: str) -> Optional[SessionState]:
        return self.sessions.get(session_id)

    def validate_session(self, session_id: str) -> Dict[str, Any]:
        """
        Check that a session exists and has not expired.

        Advisory only: an expired session is reported, not torn down.
        """
        state = self.sessions.get(session_id)
        if state is None:
            return {"valid": False, "error": session_not_found(session_id)}
        if _now_ms() >= state.expires_at:
            return {"valid": False, "error": session_expired(session_id)}
        return {"valid": True}

    def require_session(self, session_id: str) -> SessionState:
        """Validate then fetch a session, raising the validation error."""
        result = self.validate_session(session_id)
        if not result["valid"]:
            raise result["error"]
        state = self.sessions.get(session_id)
        if state is None:
            raise session_not_found(session_id)
        return state

    def get_active_page(self, state: SessionState) -> Any:
        """Return the session's active page, falling back to any open page."""
        page = state.page
        if page is not None and not page.is_closed():
            return page
        for candidate in state.open_pages():
            state.page = candidate
            return candidate
        raise BrowserServerError(
            ErrorCodes.BROWSER_ERROR,
            "Session has no open page",
            session_id=state.session_id,
        )

    async def close_session(self, session_id: str) -> None:
        state = self.sessions.get(session_id)
        if state is None:
            raise session_not_found(session_id)

        task = state.expiry_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        try:
            await self._release(state)
        finally:
            self.sessions.pop(session_id, None)
        if self.event_logger is not None:
            self.event_logger.session_closed(session_id, "closed")
        logger.info("Closed session %s", session_id)

    async def shutdown(self) -> None:
        """Close every session, cancel pending expiries and stop the engine."""
        tasks: List[asyncio.Task] = []
        for session_id in list(self.sessions):
            state = self.sessions.get(session_id)
            if state is not None and state.expiry_task is not None:
                tasks.append(state.expiry_task)
            try:
                await self.close_session(session_id)
            except BrowserServerError:
                # Expired concurrently.
                pass
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self.browser is not None:
            await _close_quietly(self.browser, "browser")
            self.browser = None
        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.warning("Failed to stop Playwright: %s", e)
            self.playwright = None
        if self.event_logger is not None:
            self.event_logger.close()

    async def _expire_after(self, session_id: str, delay_s: float) -> None:
        await asyncio.sleep(max(0.0, delay_s))
        await self._expire(session_id)

    async def _expire(self, session_id: str) -> None:
        state = self.sessions.get(session_id)
        if state is None:
            return
        logger.info("Auto-cleaning expired session: %s", session_id)
        try:
            await self._release(state)
        finally:
            self.sessions.pop(session_id, None)
        if self.event_logger is not None:
            self.event_logger.session_closed(session_id, "expired")

    async def _release(self, state: SessionState) -> None:
        # Each close is isolated so the registry entry is always removed.
        # Pages close before the recorder drains: closing fails pending body reads.
        if state.page is not None:
            await _close_quietly(state.page, f"page of session {state.session_id}")
        if state.browser_context is not None:
            await _close_quietly(state.browser_context, f"context of session {state.session_id}")
        recorder = state.network_recorder
        if recorder is not None:
            try:
                await recorder.detach()
            except Exception as e:
                logger.warning("Failed to detach network capture of %s: %s", state.session_id, e)


async def _close_quietly(resource: Any, label: str) -> None:
    try:
        await resource.close()
    except Exception as e:
        logger.warning("Error closing %s: %s", label, e)
