"""Shared fakes for the Playwright engine objects the server drives."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from browser_server.models import ServerConfig
from browser_server.session import SessionManager


class FakeEmitter:
    def __init__(self) -> None:
        self.listeners: Dict[str, List[Callable[..., Any]]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
        handlers = self.listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self.listeners.get(event, [])):
            handler(*args)


class FakeRequest:
    def __init__(
        self,
        url: str,
        method: str = "GET",
        resource_type: str = "xhr",
        headers: Optional[Dict[str, str]] = None,
        post_data: Optional[str] = None,
    ) -> None:
        self.url = url
        self.method = method
        self.resource_type = resource_type
        self.headers = headers or {}
        self.post_data = post_data


class FakeResponse:
    def __init__(
        self,
        request: Any,
        status: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        status_text: str = "OK",
        url: Optional[str] = None,
    ) -> None:
        self.request = request
        self.url = url if url is not None else getattr(request, "url", "")
        self.status = status
        self.status_text = status_text
        self.headers = headers or {"content-type": "application/json"}
        self._body = body

    async def body(self) -> bytes:
        return self._body


class FakePage(FakeEmitter):
    def __init__(self, context: "FakeContext", url: str = "about:blank") -> None:
        super().__init__()
        self.context = context
        self.url = url
        self._closed = False
        self.close_error: Optional[Exception] = None
        self.goto = AsyncMock(side_effect=self._goto)
        self.title = AsyncMock(return_value="Fake Title")
        self.bring_to_front = AsyncMock()
        self.click = AsyncMock()
        self.fill = AsyncMock()
        self.evaluate = AsyncMock(return_value={})
        self.screenshot = AsyncMock()
        self.query_selector = AsyncMock(return_value=None)
        self.wait_for_selector = AsyncMock()
        self.locator = MagicMock()

    async def _goto(self, url: str, **_: Any) -> Any:
        self.url = url
        return MagicMock(status=200)

    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self._closed = True
        if self in self.context.pages:
            self.context.pages.remove(self)


class FakeContext(FakeEmitter):
    def __init__(self) -> None:
        super().__init__()
        self.pages: List[FakePage] = []
        self.closed = False
        self.close_error: Optional[Exception] = None
        self.set_default_timeout = MagicMock()
        self.set_default_navigation_timeout = MagicMock()

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        self.emit("page", page)
        return page

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True
        for page in list(self.pages):
            page._closed = True
        self.pages = []


class FakeBrowser:
    def __init__(self) -> None:
        self.contexts: List[FakeContext] = []
        self.closed = False

    async def new_context(self, **_: Any) -> FakeContext:
        context = FakeContext()
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def make_manager(fake_browser):
    """Build a SessionManager whose shared browser is already a fake."""

    def _make(**overrides: Any) -> SessionManager:
        event_logger = overrides.pop("event_logger", None)
        manager = SessionManager(ServerConfig(**overrides), event_logger)
        manager.browser = fake_browser
        return manager

    return _make
