"""Read-only inspection of the active page: structure, text matching, queries."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .dom_scripts import (
    FIND_ELEMENT_BY_TEXT_JS,
    PAGE_CONTENT_JS,
    PAGE_STRUCTURE_JS,
    QUERY_SELECTOR_JS,
    SYNTHESIZE_SELECTOR_JS,
)
from .errors import BrowserServerError, ErrorCodes, element_not_found
from .page_actions import mcp_tool
from .params import (
    FindElementByTextParams,
    PageContentParams,
    PageStructureParams,
    QuerySelectorParams,
    SelectorParams,
)
from .session import SessionManager


async def synthesize_selector(page: Any, selector: str) -> Optional[str]:
    """
    Build a stable selector for the first element matching `selector`.

    Returns None when nothing matches. The result is unique in the document
    when the element has an id, a unique class combination, or an anchored
    ancestor; otherwise it is a positional path from `body`.
    """
    result = await page.evaluate(SYNTHESIZE_SELECTOR_JS, {"selector": selector})
    if result.get("error"):
        raise BrowserServerError(
            ErrorCodes.INVALID_SELECTOR,
            f"Invalid selector: {selector}",
            details=result.get("message"),
        )
    if not result.get("found"):
        return None
    return result.get("selector")


class PageInspectorFeature:
    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    def _page(self, session_id: str) -> Any:
        state = self.session_manager.require_session(session_id)
        return self.session_manager.get_active_page(state)

    @mcp_tool(
        name="browser_get_page_structure",
        params=PageStructureParams,
        examples=[
            "browser_get_page_structure(session_id='...')",
            "browser_get_page_structure(session_id='...', selector='form#login', include_hidden=True)",
        ],
    )
    async def get_page_structure(self, params: PageStructureParams) -> Dict[str, Any]:
        """
        List interactive elements (links, buttons, inputs, role/onclick elements).

        Each entry carries a synthesized selector usable with the other tools.
        Candidates are visited per category in document order and the list is
        capped at `max_elements`.
        """
        page = self._page(params.session_id)
        try:
            return await page.evaluate(
                PAGE_STRUCTURE_JS,
                {
                    "selector": params.selector,
                    "includeHidden": params.include_hidden,
                    "maxElements": params.max_elements,
                },
            )
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                f"Failed to analyze page structure: {e}",
                session_id=params.session_id,
            ) from e

    @mcp_tool(
        name="browser_find_element_by_text",
        params=FindElementByTextParams,
        examples=[
            "browser_find_element_by_text(session_id='...', text='Sign in', element_type='button')",
            "browser_find_element_by_text(session_id='...', text='Docs', exact=True)",
        ],
    )
    async def find_element_by_text(self, params: FindElementByTextParams) -> Dict[str, Any]:
        """
        Find the best clickable element for a piece of visible text.

        Own text beats descendant text, which beats aria-label/title/placeholder;
        visible elements win ties.
        """
        page = self._page(params.session_id)
        try:
            match = await page.evaluate(
                FIND_ELEMENT_BY_TEXT_JS,
                {"text": params.text, "exact": params.exact, "elementType": params.element_type},
            )
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                f"Failed to search for text: {e}",
                session_id=params.session_id,
            ) from e
        if not match:
            return {"found": False, "message": f'No element found with text: "{params.text}"'}
        return {"found": True, **match}

    @mcp_tool(
        name="browser_get_text_content",
        params=SelectorParams,
        examples=["browser_get_text_content(session_id='...', selector='h1')"],
    )
    async def get_text_content(self, params: SelectorParams) -> Dict[str, Any]:
        page = self._page(params.session_id)
        try:
            element = await page.query_selector(params.selector)
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.INVALID_SELECTOR,
                f"Invalid selector: {params.selector}",
                session_id=params.session_id,
                details=str(e),
            ) from e
        if element is None:
            raise element_not_found(params.session_id, params.selector)
        text_content = await element.text_content()
        inner_text = await element.inner_text()
        return {
            "success": True,
            "selector": params.selector,
            "textContent": (text_content or "").strip(),
            "innerText": (inner_text or "").strip(),
        }

    @mcp_tool(
        name="browser_query_selector",
        params=QuerySelectorParams,
        examples=[
            "browser_query_selector(session_id='...', selector='a.nav-link', multiple=True)",
        ],
    )
    async def query_selector(self, params: QuerySelectorParams) -> Dict[str, Any]:
        """Describe the element(s) matching a selector: tag, text, visibility, box, attributes."""
        page = self._page(params.session_id)
        try:
            result = await page.evaluate(
                QUERY_SELECTOR_JS,
                {
                    "selector": params.selector,
                    "multiple": params.multiple,
                    "includeAttributes": params.include_attributes,
                },
            )
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                f"Failed to query selector: {e}",
                session_id=params.session_id,
            ) from e
        if result.get("error"):
            raise BrowserServerError(
                ErrorCodes.INVALID_SELECTOR,
                f"Invalid selector: {params.selector}",
                session_id=params.session_id,
                details=result.get("message"),
            )
        return {"selector": params.selector, **result}

    @mcp_tool(
        name="browser_get_page_content",
        params=PageContentParams,
        examples=[
            "browser_get_page_content(session_id='...', format='text')",
            "browser_get_page_content(session_id='...', format='markdown', selector='article')",
        ],
    )
    async def get_page_content(self, params: PageContentParams) -> Dict[str, Any]:
        """Return the page (or one element) as html, text or naive markdown."""
        page = self._page(params.session_id)
        try:
            result = await page.evaluate(
                PAGE_CONTENT_JS, {"format": params.format, "selector": params.selector}
            )
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                f"Failed to get page content: {e}",
                session_id=params.session_id,
            ) from e
        if result.get("error") == "Element not found":
            raise element_not_found(params.session_id, params.selector or "")
        if result.get("error"):
            raise BrowserServerError(
                ErrorCodes.INVALID_SELECTOR,
                f"Invalid selector: {params.selector}",
                session_id=params.session_id,
                details=result.get("message"),
            )
        return result
