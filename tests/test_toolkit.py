"""Tests for tool registration, argument validation and dispatch."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from langchain_core.tools import StructuredTool

from browser_server.errors import ErrorCodes
from browser_server.event_logger import BrowserEventLogger
from browser_server.models import ServerConfig
from browser_server.session import SessionManager
from browser_server.toolkit import BrowserToolkit

EXPECTED_TOOLS = {
    "browser_install",
    "browser_create_session",
    "browser_close_session",
    "browser_navigate",
    "browser_click",
    "browser_type",
    "browser_screenshot",
    "browser_wait_for_element",
    "browser_get_text_content",
    "browser_query_selector",
    "browser_get_page_content",
    "browser_scroll",
    "browser_execute_script",
    "browser_get_page_structure",
    "browser_find_element_by_text",
    "browser_get_requests",
    "browser_get_request_detail",
    "browser_search_requests",
    "browser_clear_requests",
    "browser_get_pages",
    "browser_new_page",
    "browser_switch_page",
    "browser_close_page",
}


@pytest.fixture
def toolkit(make_manager):
    return BrowserToolkit(session_manager=make_manager())


class TestRegistry:
    def test_every_tool_is_registered(self, toolkit):
        assert set(toolkit.tool_names) == EXPECTED_TOOLS

    def test_get_tools_builds_structured_tools(self, toolkit):
        tools = toolkit.get_tools()

        assert {t.name for t in tools} == EXPECTED_TOOLS
        assert all(isinstance(t, StructuredTool) for t in tools)
        navigate = next(t for t in tools if t.name == "browser_navigate")
        assert "Examples:" in navigate.description
        assert toolkit.get_tools() is tools

    @pytest.mark.asyncio
    async def test_structured_tool_dispatches_through_call_tool(self, toolkit):
        tool = next(t for t in toolkit.get_tools() if t.name == "browser_get_pages")

        result = await tool.ainvoke({"session_id": "missing"})

        assert result["ok"] is False
        assert result["error"]["errorCode"] == ErrorCodes.SESSION_NOT_FOUND


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, toolkit):
        result = await toolkit.call_tool("browser_teleport", {})
        assert result == {
            "ok": False,
            "error": {"errorCode": ErrorCodes.INVALID_TOOL, "message": "Unknown tool: browser_teleport"},
        }

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, toolkit, fake_browser):
        result = await toolkit.call_tool("browser_navigate", {"url": "https://example.com"})

        assert result["ok"] is False
        assert result["error"]["errorCode"] == ErrorCodes.INVALID_PARAMETERS
        assert any("session_id" in d["loc"] or "sessionId" in d["loc"] for d in result["error"]["details"])
        assert fake_browser.contexts == []

    @pytest.mark.asyncio
    async def test_bounds_are_checked(self, toolkit):
        result = await toolkit.call_tool(
            "browser_get_page_structure", {"session_id": "s", "max_elements": 0}
        )
        assert result["error"]["errorCode"] == ErrorCodes.INVALID_PARAMETERS

    @pytest.mark.asyncio
    async def test_enum_values_are_checked(self, toolkit):
        result = await toolkit.call_tool(
            "browser_navigate", {"session_id": "s", "url": "https://a.b", "wait_until": "never"}
        )
        assert result["error"]["errorCode"] == ErrorCodes.INVALID_PARAMETERS

    @pytest.mark.asyncio
    async def test_unknown_session(self, toolkit):
        result = await toolkit.call_tool("browser_navigate", {"session_id": "nope", "url": "https://a.b"})
        assert result["error"]["errorCode"] == ErrorCodes.SESSION_NOT_FOUND
        assert result["error"]["sessionId"] == "nope"

    @pytest.mark.asyncio
    async def test_camel_case_arguments_are_accepted(self, toolkit):
        created = await toolkit.call_tool("browser_create_session", {})
        assert created["ok"] is True
        assert created["message"] == "Session created successfully"

        result = await toolkit.call_tool(
            "browser_navigate",
            {"sessionId": created["sessionId"], "url": "https://example.com", "waitUntil": "domcontentloaded"},
        )

        assert result["ok"] is True
        assert result["status"] == 200
        page = toolkit.session_manager.get_session(created["sessionId"]).page
        page.goto.assert_awaited_once_with("https://example.com", wait_until="domcontentloaded")
        await toolkit.shutdown()

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_internal_error(self, toolkit):
        toolkit.session_manager.create_session = AsyncMock(side_effect=RuntimeError("driver crashed"))

        result = await toolkit.call_tool("browser_create_session", {})

        assert result["ok"] is False
        error = result["error"]
        assert error["errorCode"] == ErrorCodes.INTERNAL_ERROR
        assert error["message"] == "driver crashed"
        assert error["details"]["type"] == "RuntimeError"
        assert "driver crashed" in error["details"]["traceback"]

    @pytest.mark.asyncio
    async def test_max_sessions_error_payload(self, make_manager):
        toolkit = BrowserToolkit(session_manager=make_manager(max_sessions=1))
        await toolkit.call_tool("browser_create_session", {})

        result = await toolkit.call_tool("browser_create_session", {})

        assert result["error"]["errorCode"] == ErrorCodes.MAX_SESSIONS_REACHED
        await toolkit.shutdown()


class TestJournal:
    @pytest.mark.asyncio
    async def test_calls_are_journalled(self, tmp_path, fake_browser):
        journal = BrowserEventLogger(tmp_path / "events.sqlite")
        manager = SessionManager(ServerConfig(), journal)
        manager.browser = fake_browser
        toolkit = BrowserToolkit(session_manager=manager, event_logger=journal)

        created = await toolkit.call_tool("browser_create_session", {})
        await toolkit.call_tool("browser_get_pages", {"sessionId": "missing"})

        events = journal.fetch_events("action_events")
        assert [e["payload"]["tool"] for e in events] == ["browser_create_session", "browser_get_pages"]
        assert events[0]["payload"]["ok"] is True
        assert events[1]["session_id"] == "missing"
        assert events[1]["payload"]["errorCode"] == ErrorCodes.SESSION_NOT_FOUND
        assert journal.fetch_session(created["sessionId"])["close_reason"] is None

        await toolkit.call_tool("browser_close_session", {"session_id": created["sessionId"]})
        assert journal.fetch_session(created["sessionId"])["close_reason"] == "closed"
        await toolkit.shutdown()

    def test_journal_created_from_config(self, tmp_path):
        path = tmp_path / "nested" / "journal.sqlite"
        toolkit = BrowserToolkit(ServerConfig(event_log_path=str(path)))

        assert toolkit.event_logger is not None
        assert toolkit.session_manager.event_logger is toolkit.event_logger
        assert path.exists()
        toolkit.event_logger.close()
