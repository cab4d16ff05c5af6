"""Tests for network query tools and tab management through the toolkit."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio

from browser_server.errors import ErrorCodes
from browser_server.installer import install_command
from browser_server.toolkit import BrowserToolkit

from .conftest import FakeRequest, FakeResponse


@pytest_asyncio.fixture
async def session(make_manager):
    toolkit = BrowserToolkit(session_manager=make_manager())
    created = await toolkit.call_tool("browser_create_session", {})
    state = toolkit.session_manager.get_session(created["sessionId"])
    yield toolkit, created["sessionId"], state
    await toolkit.shutdown()


async def _traffic(state, url, *, method="GET", status=200, body=b"", post_data=None, resource_type="xhr"):
    request = FakeRequest(url, method=method, post_data=post_data, resource_type=resource_type)
    state.page.emit("request", request)
    state.page.emit("response", FakeResponse(request, status=status, body=body))
    await state.network_recorder.drain()


class TestNetworkTools:
    @pytest.mark.asyncio
    async def test_get_requests_returns_most_recent(self, session):
        toolkit, sid, state = session
        for i in range(5):
            await _traffic(state, f"https://example.com/{i}")

        result = await toolkit.call_tool("browser_get_requests", {"session_id": sid, "limit": 2})

        assert result["total"] == 5
        assert result["returned"] == 2
        assert [r["id"] for r in result["requests"]] == ["req-4", "req-5"]
        assert result["requests"][0]["status"] == 200
        assert result["requests"][0]["statusText"] == "OK"

    @pytest.mark.asyncio
    async def test_get_requests_filter(self, session):
        toolkit, sid, state = session
        await _traffic(state, "https://example.com/api/a", status=200)
        await _traffic(state, "https://example.com/api/b", status=404)
        await _traffic(state, "https://example.com/app.js", resource_type="script")

        result = await toolkit.call_tool(
            "browser_get_requests",
            {"sessionId": sid, "filter": {"urlContains": "/api/", "statusCode": 404}},
        )

        assert [r["url"] for r in result["requests"]] == ["https://example.com/api/b"]

    @pytest.mark.asyncio
    async def test_request_detail_and_missing_request(self, session):
        toolkit, sid, state = session
        await _traffic(state, "https://example.com/login", method="POST", post_data="a=1", body=b"welcome")

        detail = await toolkit.call_tool("browser_get_request_detail", {"session_id": sid, "request_id": "req-1"})
        missing = await toolkit.call_tool("browser_get_request_detail", {"session_id": sid, "request_id": "req-9"})

        assert detail["request"]["postData"] == "a=1"
        assert detail["response"]["body"] == "welcome"
        assert detail["curl"].startswith("curl \\\n  -X POST")
        assert missing["error"]["errorCode"] == ErrorCodes.REQUEST_NOT_FOUND

    @pytest.mark.asyncio
    async def test_search_snippet_and_limit(self, session):
        toolkit, sid, state = session
        body = ("x" * 80 + "TOKEN=abc" + "y" * 80).encode()
        await _traffic(state, "https://example.com/one", body=body)
        await _traffic(state, "https://example.com/two", body=body)

        result = await toolkit.call_tool(
            "browser_search_requests", {"session_id": sid, "keyword": "token", "limit": 1}
        )

        assert result["total"] == 2
        assert result["returned"] == 1
        match = result["matches"][0]
        assert match["matchedIn"] == "response"
        assert match["matchedText"] == "..." + "x" * 50 + "TOKEN" + "=abc" + "y" * 46 + "..."
        assert match["curl"].startswith("curl")

    @pytest.mark.asyncio
    async def test_search_url_match_returns_url(self, session):
        toolkit, sid, state = session
        await _traffic(state, "https://example.com/api/ITEM")

        result = await toolkit.call_tool("browser_search_requests", {"session_id": sid, "keyword": "item"})

        assert result["matches"][0]["matchedIn"] == "url"
        assert result["matches"][0]["matchedText"] == "https://example.com/api/ITEM"

    @pytest.mark.asyncio
    async def test_search_invalid_regex(self, session):
        toolkit, sid, _ = session

        result = await toolkit.call_tool(
            "browser_search_requests", {"session_id": sid, "keyword": "(unclosed", "isRegex": True}
        )

        assert result["error"]["errorCode"] == ErrorCodes.INVALID_PARAMETERS

    @pytest.mark.asyncio
    async def test_clear_requests(self, session):
        toolkit, sid, state = session
        await _traffic(state, "https://example.com/a")

        cleared = await toolkit.call_tool("browser_clear_requests", {"session_id": sid})
        listed = await toolkit.call_tool("browser_get_requests", {"session_id": sid})

        assert cleared["cleared"] == 1
        assert listed["total"] == 0


class TestPageTools:
    @pytest.mark.asyncio
    async def test_new_page_becomes_active(self, session):
        toolkit, sid, state = session

        result = await toolkit.call_tool("browser_new_page", {"session_id": sid, "url": "https://example.com/b"})
        pages = await toolkit.call_tool("browser_get_pages", {"session_id": sid})

        assert result["pageIndex"] == 1
        assert result["totalPages"] == 2
        assert pages["totalPages"] == 2
        assert [p["isActive"] for p in pages["pages"]] == [False, True]
        assert pages["pages"][1]["url"] == "https://example.com/b"
        assert state.network_recorder.is_attached(state.page)

    @pytest.mark.asyncio
    async def test_new_page_navigation_failure_closes_the_tab(self, session):
        toolkit, sid, state = session
        first = state.page
        context = state.browser_context
        open_page = context.new_page
        opened = []

        async def _new_page_that_fails_to_load():
            page = await open_page()
            page.goto.side_effect = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
            opened.append(page)
            return page

        context.new_page = _new_page_that_fails_to_load
        result = await toolkit.call_tool(
            "browser_new_page", {"session_id": sid, "url": "https://nowhere.invalid"}
        )

        assert result["error"]["errorCode"] == ErrorCodes.BROWSER_ERROR
        assert opened[0].is_closed()
        assert context.pages == [first]
        assert state.page is first

    @pytest.mark.asyncio
    async def test_switch_page_engine_failure_is_browser_error(self, session):
        toolkit, sid, state = session
        first = state.page
        await toolkit.call_tool("browser_new_page", {"session_id": sid})
        second = state.page
        first.bring_to_front.side_effect = RuntimeError("Target closed")

        result = await toolkit.call_tool("browser_switch_page", {"session_id": sid, "page_index": 0})

        assert result["error"]["errorCode"] == ErrorCodes.BROWSER_ERROR
        assert state.page is second

    @pytest.mark.asyncio
    async def test_close_page_engine_failure_is_browser_error(self, session):
        toolkit, sid, state = session
        await toolkit.call_tool("browser_new_page", {"session_id": sid})
        second = state.page
        second.close_error = RuntimeError("Target crashed")

        result = await toolkit.call_tool("browser_close_page", {"session_id": sid, "page_index": 1})

        assert result["error"]["errorCode"] == ErrorCodes.BROWSER_ERROR
        assert state.page is second
        assert len(state.browser_context.pages) == 2

    @pytest.mark.asyncio
    async def test_switch_page(self, session):
        toolkit, sid, state = session
        first = state.page
        await toolkit.call_tool("browser_new_page", {"session_id": sid})

        result = await toolkit.call_tool("browser_switch_page", {"session_id": sid, "pageIndex": 0})

        assert result["ok"] is True
        assert state.page is first
        first.bring_to_front.assert_awaited()

    @pytest.mark.asyncio
    async def test_invalid_page_index(self, session):
        toolkit, sid, _ = session
        for tool in ("browser_switch_page", "browser_close_page"):
            for index in (-1, 1):
                result = await toolkit.call_tool(tool, {"session_id": sid, "page_index": index})
                assert result["error"]["errorCode"] == ErrorCodes.INVALID_PAGE_INDEX

    @pytest.mark.asyncio
    async def test_cannot_close_last_page(self, session):
        toolkit, sid, state = session

        result = await toolkit.call_tool("browser_close_page", {"session_id": sid, "page_index": 0})

        assert result["error"]["errorCode"] == ErrorCodes.CANNOT_CLOSE_LAST_PAGE
        assert not state.page.is_closed()

    @pytest.mark.asyncio
    async def test_closing_active_page_activates_first_remaining(self, session):
        toolkit, sid, state = session
        first = state.page
        await toolkit.call_tool("browser_new_page", {"session_id": sid})

        result = await toolkit.call_tool("browser_close_page", {"session_id": sid, "page_index": 1})

        assert result["remainingPages"] == 1
        assert result["closedPageIndex"] == 1
        assert state.page is first

    @pytest.mark.asyncio
    async def test_closed_page_is_rejected(self, session):
        toolkit, sid, state = session
        await toolkit.call_tool("browser_new_page", {"session_id": sid})
        stale = state.browser_context.pages[0]
        stale._closed = True

        result = await toolkit.call_tool("browser_switch_page", {"session_id": sid, "page_index": 0})

        assert result["error"]["errorCode"] == ErrorCodes.PAGE_ALREADY_CLOSED


class TestInstaller:
    def test_command(self):
        assert install_command("all", False)[-2:] == ["playwright", "install"]
        assert install_command("firefox", True)[-3:] == ["install", "firefox", "--with-deps"]

    @pytest.mark.asyncio
    async def test_install_success_truncates_output(self, make_manager):
        toolkit = BrowserToolkit(session_manager=make_manager())
        proc = MagicMock(returncode=0)
        proc.communicate = AsyncMock(return_value=(b"d" * 1500, b""))

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            result = await toolkit.call_tool("browser_install", {"browser": "webkit"})

        assert result["ok"] is True
        assert result["browser"] == "webkit"
        assert len(result["output"]) == 1000
        assert spawn.await_args.args[-1] == "webkit"

    @pytest.mark.asyncio
    async def test_install_failure(self, make_manager):
        toolkit = BrowserToolkit(session_manager=make_manager())
        proc = MagicMock(returncode=1)
        proc.communicate = AsyncMock(return_value=(b"", b"Host system is missing dependencies"))

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await toolkit.call_tool("browser_install", {"withDeps": True})

        assert result["error"]["errorCode"] == ErrorCodes.INSTALL_FAILED
        assert "missing dependencies" in result["error"]["details"]["stderr"]
