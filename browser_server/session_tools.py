"""Session lifecycle and tab management tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from .errors import BrowserServerError, ErrorCodes
from .models import SessionState
from .page_actions import mcp_tool
from .params import NewPageParams, NoParams, PageIndexParams, SessionParams
from .session import SessionManager

logger = logging.getLogger(__name__)


async def _safe_title(page: Any) -> str:
    try:
        return await page.title()
    except Exception:
        return ""


class SessionToolsFeature:
    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    @mcp_tool(
        name="browser_create_session",
        params=NoParams,
        examples=["browser_create_session()"],
    )
    async def create_session(self, params: NoParams) -> Dict[str, Any]:
        """
        Create an isolated browser session (own context, cookies and storage).

        The session expires at `expiresAt` (epoch ms) and is then closed
        automatically.
        """
        created = await self.session_manager.create_session()
        return {**created, "message": "Session created successfully"}

    @mcp_tool(
        name="browser_close_session",
        params=SessionParams,
        examples=["browser_close_session(session_id='...')"],
    )
    async def close_session(self, params: SessionParams) -> Dict[str, Any]:
        """Close a session and release its browser context."""
        await self.session_manager.close_session(params.session_id)
        return {"success": True, "message": "Session closed successfully"}

    @mcp_tool(
        name="browser_get_pages",
        params=SessionParams,
        examples=["browser_get_pages(session_id='...')"],
    )
    async def get_pages(self, params: SessionParams) -> Dict[str, Any]:
        """List the session's pages (tabs) and mark the active one."""
        state = self.session_manager.require_session(params.session_id)
        pages = self._pages(state)
        infos: List[Dict[str, Any]] = []
        for index, page in enumerate(pages):
            infos.append(
                {
                    "index": index,
                    "url": page.url,
                    "title": await _safe_title(page),
                    "isClosed": page.is_closed(),
                    "isActive": page is state.page,
                }
            )
        return {"sessionId": params.session_id, "totalPages": len(pages), "pages": infos}

    @mcp_tool(
        name="browser_new_page",
        params=NewPageParams,
        examples=[
            "browser_new_page(session_id='...')",
            "browser_new_page(session_id='...', url='https://example.com/docs')",
        ],
    )
    async def new_page(self, params: NewPageParams) -> Dict[str, Any]:
        """Open a new tab, optionally navigate it, and make it the active page."""
        state = self.session_manager.require_session(params.session_id)
        context = state.browser_context
        page = None
        try:
            page = await context.new_page()
            # The context "page" listener normally wires this already.
            if state.network_recorder is not None:
                state.network_recorder.attach(page)
            if params.url:
                await page.goto(params.url, wait_until="load")
            await page.bring_to_front()
        except Exception as e:
            if page is not None:
                await _discard_page(page, params.session_id)
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                f"Failed to create new page: {e}",
                session_id=params.session_id,
            ) from e
        state.page = page

        pages = self._pages(state)
        return {
            "success": True,
            "sessionId": params.session_id,
            "pageIndex": _index_of(pages, page),
            "url": page.url,
            "title": await _safe_title(page),
            "totalPages": len(pages),
        }

    @mcp_tool(
        name="browser_switch_page",
        params=PageIndexParams,
        examples=["browser_switch_page(session_id='...', page_index=1)"],
    )
    async def switch_page(self, params: PageIndexParams) -> Dict[str, Any]:
        """Make the page at `page_index` the active page."""
        state = self.session_manager.require_session(params.session_id)
        pages = self._pages(state)
        page = self._page_at(pages, params)
        try:
            await page.bring_to_front()
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                f"Failed to switch page: {e}",
                session_id=params.session_id,
            ) from e
        state.page = page
        return {
            "success": True,
            "sessionId": params.session_id,
            "pageIndex": params.page_index,
            "url": page.url,
            "title": await _safe_title(page),
        }

    @mcp_tool(
        name="browser_close_page",
        params=PageIndexParams,
        examples=["browser_close_page(session_id='...', page_index=1)"],
    )
    async def close_page(self, params: PageIndexParams) -> Dict[str, Any]:
        """
        Close the page at `page_index`.

        The last open page cannot be closed; close the session instead. When
        the active page is closed, the first remaining page becomes active.
        """
        state = self.session_manager.require_session(params.session_id)
        pages = self._pages(state)
        page = self._page_at(pages, params)
        if len([p for p in pages if not p.is_closed()]) <= 1:
            raise BrowserServerError(
                ErrorCodes.CANNOT_CLOSE_LAST_PAGE,
                "Cannot close the last page. Use browser_close_session to close the session.",
                session_id=params.session_id,
            )

        was_active = page is state.page
        try:
            await page.close()
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                f"Failed to close page {params.page_index}: {e}",
                session_id=params.session_id,
            ) from e

        remaining = state.open_pages()
        if was_active and remaining:
            state.page = remaining[0]
            try:
                await remaining[0].bring_to_front()
            except Exception as e:
                logger.warning("Failed to focus page of session %s: %s", params.session_id, e)
        logger.debug("Closed page %s of session %s", params.page_index, params.session_id)
        return {
            "success": True,
            "sessionId": params.session_id,
            "closedPageIndex": params.page_index,
            "remainingPages": len(remaining),
        }

    @staticmethod
    def _pages(state: SessionState) -> List[Any]:
        return list(getattr(state.browser_context, "pages", None) or [])

    @staticmethod
    def _page_at(pages: List[Any], params: PageIndexParams) -> Any:
        if params.page_index < 0 or params.page_index >= len(pages):
            raise BrowserServerError(
                ErrorCodes.INVALID_PAGE_INDEX,
                f"Invalid page index: {params.page_index}. Valid range: 0-{len(pages) - 1}",
                session_id=params.session_id,
            )
        page = pages[params.page_index]
        if page.is_closed():
            raise BrowserServerError(
                ErrorCodes.PAGE_ALREADY_CLOSED,
                f"Page at index {params.page_index} is already closed",
                session_id=params.session_id,
            )
        return page


def _index_of(pages: List[Any], page: Any) -> int:
    for index, candidate in enumerate(pages):
        if candidate is page:
            return index
    return -1


async def _discard_page(page: Any, session_id: str) -> None:
    try:
        await page.close()
    except Exception as e:
        logger.warning("Failed to close abandoned page of session %s: %s", session_id, e)
