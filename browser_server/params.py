"""
Validated parameter models, one per tool.

The tool name -> model mapping in ``toolkit`` is the tagged union of call
arguments: a call is validated against its model before the engine is
touched. Both snake_case names and the camelCase protocol aliases
(``sessionId``, ``waitUntil``, ...) are accepted.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ToolParams(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NoParams(ToolParams):
    pass


class SessionParams(ToolParams):
    session_id: str = Field(..., min_length=1, description="The session ID")


class NavigateParams(SessionParams):
    url: str = Field(..., min_length=1, description="The URL to navigate to")
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = Field(
        "load", description="When to consider navigation successful"
    )
    timeout: Optional[int] = Field(None, gt=0, description="Navigation timeout in milliseconds")


class ClickParams(SessionParams):
    selector: str = Field(..., min_length=1, description="Selector of the element to click")
    timeout: Optional[int] = Field(None, gt=0, description="Timeout in milliseconds")
    force: Optional[bool] = Field(None, description="Skip actionability checks")
    click_count: int = Field(1, ge=1, description="Number of times to click")


class TypeParams(SessionParams):
    selector: str = Field(..., min_length=1, description="Selector of the input element")
    text: str = Field(..., description="The text to type")
    delay: Optional[int] = Field(None, ge=0, description="Delay between key presses in ms")
    timeout: Optional[int] = Field(None, gt=0, description="Timeout in milliseconds")
    clear: bool = Field(False, description="Clear the input before typing")


class ScreenshotParams(SessionParams):
    path: str = Field(..., min_length=1, description="File path for the screenshot")
    selector: Optional[str] = Field(None, description="Capture only this element")
    full_page: bool = Field(False, description="Capture the full scrollable page")


class WaitForElementParams(SessionParams):
    selector: str = Field(..., min_length=1, description="Selector to wait for")
    timeout: int = Field(30000, gt=0, description="Maximum wait in milliseconds")
    state: Literal["attached", "detached", "visible", "hidden"] = Field(
        "visible", description="State the element must reach"
    )


class SelectorParams(SessionParams):
    selector: str = Field(..., min_length=1, description="Selector of the element")


class QuerySelectorParams(SelectorParams):
    multiple: bool = Field(False, description="Return all matches instead of the first")
    include_attributes: bool = Field(True, description="Include element attributes")


class PageContentParams(SessionParams):
    format: Literal["html", "text", "markdown"] = Field("html", description="Content format")
    selector: Optional[str] = Field(None, description="Limit content to this element")


class ScrollParams(SessionParams):
    target: Optional[Literal["top", "bottom", "element"]] = Field(
        None, description="Scroll destination; defaults to bottom unless x/y are given"
    )
    selector: Optional[str] = Field(None, description="Element to scroll to for target=element")
    x: Optional[float] = Field(None, description="Horizontal scroll position in pixels")
    y: Optional[float] = Field(None, description="Vertical scroll position in pixels")
    smooth: bool = Field(True, description="Use smooth scrolling")

    @model_validator(mode="after")
    def _element_needs_selector(self) -> "ScrollParams":
        if self.target == "element" and not self.selector:
            raise ValueError("selector is required when target is 'element'")
        return self


class ExecuteScriptParams(SessionParams):
    script: str = Field(..., min_length=1, description="JavaScript function body to run")
    args: List[Any] = Field(default_factory=list, description="Arguments exposed as `args`")


class PageStructureParams(SessionParams):
    selector: Optional[str] = Field(None, description="Root of the region to analyze")
    include_hidden: bool = Field(False, description="Include hidden elements")
    max_elements: int = Field(100, ge=1, description="Maximum number of elements to return")


class FindElementByTextParams(SessionParams):
    text: str = Field(..., min_length=1, description="Text to search for")
    exact: bool = Field(False, description="Require an exact (trimmed) match")
    element_type: Literal["link", "button", "any"] = Field("any", description="Element kind")

    @model_validator(mode="after")
    def _text_not_blank(self) -> "FindElementByTextParams":
        if not self.text.strip():
            raise ValueError("text must not be blank")
        return self


class RequestFilter(ToolParams):
    method: Optional[str] = None
    url_contains: Optional[str] = None
    resource_type: Optional[str] = None
    status_code: Optional[int] = None


class GetRequestsParams(SessionParams):
    filter: Optional[RequestFilter] = Field(None, description="Optional request filter")
    limit: int = Field(50, ge=1, description="Maximum number of (most recent) results")


class RequestDetailParams(SessionParams):
    request_id: str = Field(..., min_length=1, description="The request ID")


class SearchRequestsParams(SessionParams):
    keyword: str = Field(..., min_length=1, description="Keyword or pattern to search for")
    search_in: List[Literal["url", "request", "response"]] = Field(
        default_factory=lambda: ["url", "response"], min_length=1, description="Fields to search"
    )
    is_regex: bool = Field(False, description="Treat the keyword as a regular expression")
    limit: int = Field(10, ge=1, description="Maximum number of results")


class NewPageParams(SessionParams):
    url: Optional[str] = Field(None, description="Optional URL to open in the new page")


class PageIndexParams(SessionParams):
    page_index: int = Field(..., description="0-based page index")


class InstallBrowserParams(ToolParams):
    browser: Literal["chromium", "firefox", "webkit", "all"] = Field(
        "chromium", description="Which browser to install"
    )
    with_deps: bool = Field(False, description="Also install system dependencies (Linux)")
