"""Inspect and search the network traffic captured for a session."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Pattern, Tuple

from .errors import BrowserServerError, ErrorCodes, invalid_parameters
from .models import NetworkRequest, SessionState
from .network_capture import NetworkCapture
from .page_actions import mcp_tool
from .params import GetRequestsParams, RequestDetailParams, RequestFilter, SearchRequestsParams, SessionParams
from .session import SessionManager

SNIPPET_RADIUS = 50


def _matches_filter(record: NetworkRequest, flt: Optional[RequestFilter]) -> bool:
    if flt is None:
        return True
    if flt.method and record.method != flt.method:
        return False
    if flt.url_contains and flt.url_contains not in record.url:
        return False
    if flt.resource_type and record.resource_type != flt.resource_type:
        return False
    if flt.status_code is not None:
        status = (record.response or {}).get("status")
        if status != flt.status_code:
            return False
    return True


def _locate(text: str, keyword: str, pattern: Optional[Pattern[str]]) -> Optional[Tuple[int, int]]:
    if pattern is not None:
        m = pattern.search(text)
        return (m.start(), m.end()) if m else None
    index = text.lower().find(keyword.lower())
    if index < 0:
        return None
    return index, index + len(keyword)


def _snippet(text: str, span: Tuple[int, int]) -> str:
    start = max(0, span[0] - SNIPPET_RADIUS)
    end = min(len(text), span[1] + SNIPPET_RADIUS)
    return "..." + text[start:end] + "..."


def _match_location(
    record: NetworkRequest, keyword: str, fields: List[str], pattern: Optional[Pattern[str]]
) -> Tuple[str, str]:
    """Return which field matched and a snippet around the first hit."""
    response = record.response or {}
    candidates: List[Tuple[str, Optional[str]]] = []
    if "url" in fields:
        candidates.append(("url", record.url))
    if "response" in fields:
        candidates.append(("response", response.get("body")))
    if "request" in fields:
        candidates.append(("request", record.post_data))

    for field_name, text in candidates:
        if not text:
            continue
        span = _locate(text, keyword, pattern)
        if span is None:
            continue
        return field_name, text if field_name == "url" else _snippet(text, span)

    # Hit inside headers or status metadata: name the field only.
    for field_name in ("response", "request"):
        if field_name in fields:
            return field_name, ""
    return "", ""


class NetworkInspectorFeature:
    """Query the per-session request buffer."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    def _capture(self, session_id: str) -> Tuple[SessionState, NetworkCapture]:
        state = self.session_manager.require_session(session_id)
        capture = state.network_capture
        if capture is None:
            raise BrowserServerError(
                ErrorCodes.BROWSER_ERROR,
                "Network capture is not enabled for this session",
                session_id=session_id,
            )
        return state, capture

    @mcp_tool(
        name="browser_get_requests",
        params=GetRequestsParams,
        examples=[
            "browser_get_requests(session_id='...', limit=20)",
            "browser_get_requests(session_id='...', filter={'resource_type': 'xhr', 'status_code': 200})",
        ],
    )
    async def get_requests(self, params: GetRequestsParams) -> Dict[str, Any]:
        """
        List captured requests, most recent `limit` after filtering.

        `total` counts all filtered requests; `returned` counts the slice.
        """
        _, capture = self._capture(params.session_id)
        records = [r for r in capture.get_requests() if _matches_filter(r, params.filter)]
        recent = records[-params.limit:]
        return {
            "total": len(records),
            "returned": len(recent),
            "requests": [r.summary() for r in recent],
        }

    @mcp_tool(
        name="browser_get_request_detail",
        params=RequestDetailParams,
        examples=["browser_get_request_detail(session_id='...', request_id='req-3')"],
    )
    async def get_request_detail(self, params: RequestDetailParams) -> Dict[str, Any]:
        """Return one captured request with headers, bodies and a curl command."""
        _, capture = self._capture(params.session_id)
        record = capture.get(params.request_id)
        if record is None:
            raise BrowserServerError(
                ErrorCodes.REQUEST_NOT_FOUND,
                f"Request not found: {params.request_id}",
                session_id=params.session_id,
            )
        return {**record.to_dict(), "curl": capture.to_curl(record)}

    @mcp_tool(
        name="browser_search_requests",
        params=SearchRequestsParams,
        examples=[
            "browser_search_requests(session_id='...', keyword='access_token')",
            "browser_search_requests(session_id='...', keyword='/api/v[0-9]+/', is_regex=True, search_in=['url'])",
        ],
    )
    async def search_requests(self, params: SearchRequestsParams) -> Dict[str, Any]:
        """
        Search captured traffic by keyword or regular expression.

        Matching is case-insensitive over the URL and the serialized request
        and response payloads (bodies and headers).
        """
        _, capture = self._capture(params.session_id)
        fields = list(dict.fromkeys(params.search_in))
        try:
            pattern = re.compile(params.keyword, re.IGNORECASE) if params.is_regex else None
            found = capture.search_requests(params.keyword, fields, params.is_regex)
        except re.error as e:
            raise invalid_parameters(f"Invalid regular expression: {params.keyword}", str(e)) from e

        matches = []
        for record in found[: params.limit]:
            matched_in, matched_text = _match_location(record, params.keyword, fields, pattern)
            matches.append(
                {
                    "id": record.id,
                    "url": record.url,
                    "method": record.method,
                    "resourceType": record.resource_type,
                    "matchedIn": matched_in,
                    "matchedText": matched_text,
                    "curl": capture.to_curl(record),
                    "request": record.request_payload(),
                    "response": record.response,
                }
            )
        return {"total": len(found), "returned": len(matches), "matches": matches}

    @mcp_tool(
        name="browser_clear_requests",
        params=SessionParams,
        examples=["browser_clear_requests(session_id='...')"],
    )
    async def clear_requests(self, params: SessionParams) -> Dict[str, Any]:
        """Drop every captured request of the session."""
        _, capture = self._capture(params.session_id)
        cleared = len(capture)
        capture.clear()
        return {"success": True, "cleared": cleared, "message": "Network requests cleared"}
