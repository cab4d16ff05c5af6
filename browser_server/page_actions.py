"""Navigate and interact with the active page of a session."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type

from .errors import BrowserServerError, ErrorCodes, element_not_found
from .params import (
    ClickParams,
    ExecuteScriptParams,
    NavigateParams,
    ScreenshotParams,
    ScrollParams,
    ToolParams,
    TypeParams,
    WaitForElementParams,
)
from .dom_scripts import EXECUTE_SCRIPT_JS, SCROLL_JS
from .session import SessionManager


def mcp_tool(
    _func: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    params: Optional[Type[ToolParams]] = None,
    examples: Optional[List[str]] = None,
) -> Any:
    """Decorator to mark a method as an MCP-exposed tool."""

    def _decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, "_is_mcp_tool", True)
        setattr(func, "_mcp_name", name or func.__name__)
        setattr(func, "_mcp_params", params)
        setattr(func, "_mcp_examples", examples or [])
        return func

    if _func is None:
        return _decorate
    return _decorate(_func)


def _is_missing_element(error: Exception) -> bool:
    """
    True when the engine never got hold of the element.

    Playwright appends a call log ("waiting for locator(...)") to every
    failure, so only the headline is inspected, plus timeouts whose log
    shows the locator never resolved.
    """
    message = str(error)
    headline = message.split("Call log:", 1)[0].lower()
    if "not found" in headline or "not visible" in headline:
        return True
    return "timeout" in headline and "locator resolved to" not in message.lower()


class PageActionsFeature:
    """Navigation and element interaction."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    @mcp_tool(
        name="browser_navigate",
        params=NavigateParams,
        examples=[
            "browser_navigate(session_id='...', url='https://example.com')",
            "browser_navigate(session_id='...', url='https://example.com', wait_until='networkidle')",
        ],
    )
    async def navigate(self, params: NavigateParams) -> Dict[str, Any]:
        """
        Navigate the session's active page to a URL.

        Returns:
            Dict with `success`, final `url`, page `title` and HTTP `status`
            (0 when the engine reports no response, e.g. same-document navigation).
        """
        state = self.session_manager.require_session(params.session_id)
        page = self.session_manager.get_active_page(state)
        options: Dict[str, Any] = {"wait_until": params.wait_until}
        if params.timeout:
            options["timeout"] = params.timeout
        try:
            response = await page.goto(params.url, **options)
            title = await page.title()
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.NAVIGATION_FAILED,
                f"Navigation failed for URL: {params.url}",
                session_id=params.session_id,
                details=str(e),
            ) from e

        status = 0
        if response is not None:
            status = int(getattr(response, "status", 0) or 0)
        return {"success": True, "title": title, "url": page.url, "status": status}

    @mcp_tool(
        name="browser_click",
        params=ClickParams,
        examples=[
            "browser_click(session_id='...', selector='button[type=submit]')",
            "browser_click(session_id='...', selector='#menu', click_count=2, timeout=5000)",
        ],
    )
    async def click(self, params: ClickParams) -> Dict[str, Any]:
        """Click an element on the active page."""
        state = self.session_manager.require_session(params.session_id)
        page = self.session_manager.get_active_page(state)
        options: Dict[str, Any] = {"click_count": params.click_count}
        if params.timeout:
            options["timeout"] = params.timeout
        if params.force is not None:
            options["force"] = params.force
        try:
            await page.click(params.selector, **options)
        except Exception as e:
            if _is_missing_element(e):
                raise element_not_found(params.session_id, params.selector) from e
            raise BrowserServerError(
                ErrorCodes.ELEMENT_NOT_CLICKABLE,
                f"Element not clickable: {params.selector}",
                session_id=params.session_id,
                details=str(e),
            ) from e
        return {"success": True, "message": "Click successful"}

    @mcp_tool(
        name="browser_type",
        params=TypeParams,
        examples=[
            "browser_type(session_id='...', selector='input[name=q]', text='playwright')",
            "browser_type(session_id='...', selector='#email', text='a@b.c', delay=40, clear=True)",
        ],
    )
    async def type_text(self, params: TypeParams) -> Dict[str, Any]:
        """
        Type text into an input element.

        Without a delay the value is set with `fill()`; with a delay it is
        typed key by key.
        """
        state = self.session_manager.require_session(params.session_id)
        page = self.session_manager.get_active_page(state)
        options: Dict[str, Any] = {}
        if params.timeout:
            options["timeout"] = params.timeout
        try:
            if params.clear:
                await page.fill(params.selector, "", **options)
            if params.delay:
                await page.locator(params.selector).press_sequentially(
                    params.text, delay=params.delay, **options
                )
            else:
                await page.fill(params.selector, params.text, **options)
        except Exception as e:
            if _is_missing_element(e):
                raise element_not_found(params.session_id, params.selector) from e
            raise BrowserServerError(
                ErrorCodes.ELEMENT_NOT_EDITABLE,
                f"Element not editable: {params.selector}",
                session_id=params.session_id,
                details=str(e),
            ) from e
        return {"success": True, "message": "Type successful"}

    @mcp_tool(
        name="browser_screenshot",
        params=ScreenshotParams,
        examples=[
            "browser_screenshot(session_id='...', path='shots/page.png', full_page=True)",
            "browser_screenshot(session_id='...', path='shots/header.png', selector='header')",
        ],
    )
    async def screenshot(self, params: ScreenshotParams) -> Dict[str, Any]:
        """Save a screenshot of the page, or of one element, to a file."""
        state = self.session_manager.require_session(params.session_id)
        page = self.session_manager.get_active_page(state)
        target = Path(params.path).expanduser().resolve()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if params.selector:
                element = await page.query_selector(params.selector)
                if element is None:
                    raise element_not_found(params.session_id, params.selector)
                await element.screenshot(path=str(target))
            else:
                await page.screenshot(path=str(target), full_page=bool(params.full_page))
        except BrowserServerError:
            raise
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.SCREENSHOT_FAILED,
                str(e) or "Failed to take screenshot",
                session_id=params.session_id,
            ) from e
        return {"success": True, "path": str(target), "message": "Screenshot saved successfully"}

    @mcp_tool(
        name="browser_wait_for_element",
        params=WaitForElementParams,
        examples=["browser_wait_for_element(session_id='...', selector='.results', timeout=10000)"],
    )
    async def wait_for_element(self, params: WaitForElementParams) -> Dict[str, Any]:
        """Wait until an element reaches the requested state."""
        state = self.session_manager.require_session(params.session_id)
        page = self.session_manager.get_active_page(state)
        try:
            await page.wait_for_selector(params.selector, timeout=params.timeout, state=params.state)
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.WAIT_FOR_ELEMENT_TIMEOUT,
                f"Timeout waiting for element: {params.selector}",
                session_id=params.session_id,
                details={"timeout": params.timeout, "error": str(e)},
            ) from e
        return {
            "success": True,
            "selector": params.selector,
            "message": f"Element found: {params.selector}",
        }

    @mcp_tool(
        name="browser_scroll",
        params=ScrollParams,
        examples=[
            "browser_scroll(session_id='...', target='bottom')",
            "browser_scroll(session_id='...', target='element', selector='#footer', smooth=False)",
            "browser_scroll(session_id='...', y=1200)",
        ],
    )
    async def scroll(self, params: ScrollParams) -> Dict[str, Any]:
        """Scroll to the top, the bottom, an element, or an explicit x/y position."""
        state = self.session_manager.require_session(params.session_id)
        page = self.session_manager.get_active_page(state)
        try:
            result = await page.evaluate(
                SCROLL_JS,
                {
                    "target": params.target,
                    "selector": params.selector,
                    "x": params.x,
                    "y": params.y,
                    "smooth": params.smooth,
                },
            )
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.SCROLL_FAILED, str(e) or "Failed to scroll", session_id=params.session_id
            ) from e

        if result.get("error"):
            raise BrowserServerError(
                ErrorCodes.SCROLL_FAILED,
                str(result["error"]),
                session_id=params.session_id,
                details=result,
            )
        # Let smooth scrolling settle.
        await asyncio.sleep(0.5 if params.smooth else 0.1)
        return {"success": True, **result}

    @mcp_tool(
        name="browser_execute_script",
        params=ExecuteScriptParams,
        examples=[
            "browser_execute_script(session_id='...', script='return document.title;')",
            "browser_execute_script(session_id='...', script='return args[0] * 2;', args=[21])",
        ],
    )
    async def execute_script(self, params: ExecuteScriptParams) -> Dict[str, Any]:
        """
        Run a JavaScript function body in the page.

        The body sees the call arguments as `args` and may `await`. Its return
        value must be JSON-serialisable.
        """
        state = self.session_manager.require_session(params.session_id)
        page = self.session_manager.get_active_page(state)
        try:
            outcome = await page.evaluate(
                EXECUTE_SCRIPT_JS, {"script": params.script, "args": list(params.args)}
            )
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.SCRIPT_EXECUTION_FAILED,
                str(e) or "Script execution failed",
                session_id=params.session_id,
            ) from e

        if not outcome.get("success"):
            raise BrowserServerError(
                ErrorCodes.SCRIPT_EXECUTION_FAILED,
                outcome.get("error") or "Script execution failed",
                session_id=params.session_id,
                details={"stack": outcome.get("stack")},
            )
        return {"success": True, "result": outcome.get("result")}
