"""Per-session network traffic capture."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from .models import NetworkRequest

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("url", "request", "response")
# curl computes these itself
_CURL_SKIPPED_HEADERS = {"host", "content-length"}


class NetworkCapture:
    """Bounded FIFO buffer of captured requests for one session."""

    def __init__(self, max_requests: int = 1000):
        self.max_requests = max(1, int(max_requests or 1000))
        self._requests: Deque[NetworkRequest] = deque()
        self._index: Dict[str, NetworkRequest] = {}
        self._counter = 0

    def __len__(self) -> int:
        return len(self._requests)

    def add_request(self, request: Any) -> str:
        """Record an outgoing request and return its ``req-N`` id."""
        self._counter += 1
        request_id = f"req-{self._counter}"
        record = NetworkRequest(
            id=request_id,
            timestamp=int(time.time() * 1000),
            url=str(getattr(request, "url", "") or ""),
            method=str(getattr(request, "method", "") or ""),
            resource_type=str(getattr(request, "resource_type", "") or ""),
            request_headers=_safe_headers(request),
            post_data=_safe_post_data(request),
        )
        self._requests.append(record)
        self._index[request_id] = record
        while len(self._requests) > self.max_requests:
            evicted = self._requests.popleft()
            self._index.pop(evicted.id, None)
        return request_id

    async def update_response(self, request_id: str, response: Any) -> None:
        """Attach response metadata, and the body when it can still be read."""
        record = self._index.get(request_id)
        if record is None:
            return

        payload: Dict[str, Any] = {
            "status": int(getattr(response, "status", 0) or 0),
            "statusText": str(getattr(response, "status_text", "") or ""),
            "headers": _safe_headers(response),
        }
        # Metadata is visible even while the body is still streaming.
        record.response = payload
        try:
            body = await response.body()
        except Exception as e:
            logger.debug("Response body unavailable for %s: %s", record.url, e)
        else:
            if isinstance(body, (bytes, bytearray)):
                payload["body"] = bytes(body).decode("utf-8", errors="replace")

    def get(self, request_id: str) -> Optional[NetworkRequest]:
        return self._index.get(request_id)

    def get_requests(self) -> List[NetworkRequest]:
        return list(self._requests)

    def clear(self) -> None:
        self._requests.clear()
        self._index.clear()

    def search_requests(
        self,
        keyword: str,
        fields: Iterable[str] = ("url", "response"),
        is_regex: bool = False,
    ) -> List[NetworkRequest]:
        """
        Return requests where any selected field matches ``keyword``.

        Matching is case-insensitive: a substring test, or ``re.search`` when
        ``is_regex`` is set. ``request``/``response`` are matched against their
        JSON serialization. Raises ``re.error`` for an invalid pattern.
        """
        selected = [f for f in fields if f in SEARCH_FIELDS]
        pattern = re.compile(keyword, re.IGNORECASE) if is_regex else None
        needle = str(keyword).lower()

        def _matches(text: str) -> bool:
            if pattern is not None:
                return pattern.search(text) is not None
            return needle in text.lower()

        out: List[NetworkRequest] = []
        for record in self._requests:
            for field_name in selected:
                text = _field_text(record, field_name)
                if text is not None and _matches(text):
                    out.append(record)
                    break
        return out

    @staticmethod
    def to_curl(record: NetworkRequest) -> str:
        """Render a request as a reproducible curl command line."""
        parts = ["curl"]
        if record.method and record.method.upper() != "GET":
            parts.append(f"-X {record.method}")
        parts.append(_shell_quote(record.url))
        for key, value in record.request_headers.items():
            if str(key).lower() in _CURL_SKIPPED_HEADERS:
                continue
            parts.append(f"-H {_shell_quote(f'{key}: {value}')}")
        if record.post_data:
            parts.append(f"-d {_shell_quote(record.post_data)}")
        return " \\\n  ".join(parts)


class NetworkRecorder:
    """
    Wire page request/response events into a NetworkCapture.

    Request events are recorded synchronously so ids follow engine order.
    Response bodies are awaited in tracked tasks on the event loop, which
    keeps every buffer mutation on a single execution context.

    Correlation first uses the engine's request object; when that is
    unknown it falls back to the most recent outstanding request with the
    same URL.
    """

    def __init__(
        self,
        capture: NetworkCapture,
        *,
        session_id: str = "",
        event_logger: Any = None,
        drain_timeout: float = 2.0,
    ):
        self.capture = capture
        self.drain_timeout = drain_timeout
        self.session_id = session_id
        self.event_logger = event_logger
        self._pending_by_request: "OrderedDict[int, Tuple[Any, str]]" = OrderedDict()
        self._pending_by_url: "OrderedDict[str, str]" = OrderedDict()
        self._handlers: List[Tuple[Any, Dict[str, Any]]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def is_attached(self, page: Any) -> bool:
        return any(p is page for p, _ in self._handlers)

    def attach(self, page: Any) -> None:
        if page is None or self.is_attached(page):
            return
        handlers = {
            "request": self._on_request,
            "response": self._on_response,
            "requestfailed": self._on_request_failed,
        }
        for event, handler in handlers.items():
            page.on(event, handler)
        self._handlers.append((page, handlers))

    async def detach(self) -> None:
        """
        Stop listening and settle in-flight response handling.

        Body reads that outlive ``drain_timeout`` (event streams, long polls)
        are cancelled; their requests keep status and headers without a body.
        """
        for page, handlers in self._handlers:
            for event, handler in handlers.items():
                try:
                    page.remove_listener(event, handler)
                except Exception as e:
                    logger.debug("Failed to remove %s listener: %s", event, e)
        self._handlers = []
        tasks = list(self._tasks)
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.drain_timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._pending_by_request.clear()
        self._pending_by_url.clear()

    async def drain(self) -> None:
        """Wait for in-flight response handling to finish."""
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_request(self, request: Any) -> None:
        request_id = self.capture.add_request(request)
        self._pending_by_request[id(request)] = (request, request_id)
        url = str(getattr(request, "url", "") or "")
        self._pending_by_url.pop(url, None)
        self._pending_by_url[url] = request_id
        self._trim_pending()
        self._journal("request", {"id": request_id, "url": url})

    def _on_response(self, response: Any) -> None:
        request_id = self._take_pending(getattr(response, "request", None), getattr(response, "url", ""))
        if request_id is None:
            return
        task = asyncio.ensure_future(self._handle_response(request_id, response))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_request_failed(self, request: Any) -> None:
        self._take_pending(request, getattr(request, "url", ""))

    async def _handle_response(self, request_id: str, response: Any) -> None:
        await self.capture.update_response(request_id, response)
        self._journal(
            "response",
            {
                "id": request_id,
                "url": str(getattr(response, "url", "") or ""),
                "status": getattr(response, "status", None),
            },
        )

    def _take_pending(self, request: Any, url: Any) -> Optional[str]:
        url = str(url or "")
        request_id: Optional[str] = None
        if request is not None:
            entry = self._pending_by_request.get(id(request))
            if entry is not None and entry[0] is request:
                request_id = entry[1]
                del self._pending_by_request[id(request)]
        if request_id is None:
            request_id = self._pending_by_url.pop(url, None)
            if request_id is not None:
                for key, (_, rid) in list(self._pending_by_request.items()):
                    if rid == request_id:
                        del self._pending_by_request[key]
                        break
        elif self._pending_by_url.get(url) == request_id:
            del self._pending_by_url[url]
        return request_id

    def _trim_pending(self) -> None:
        limit = self.capture.max_requests
        while len(self._pending_by_request) > limit:
            self._pending_by_request.popitem(last=False)
        while len(self._pending_by_url) > limit:
            self._pending_by_url.popitem(last=False)

    def _journal(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.event_logger is None:
            return
        self.event_logger.log_network_event(
            {
                "session_id": self.session_id,
                "event_type": event_type,
                "ts": time.time(),
                "payload": payload,
            }
        )


def _field_text(record: NetworkRequest, field_name: str) -> Optional[str]:
    if field_name == "url":
        return record.url
    if field_name == "request":
        return json.dumps(record.request_payload(), ensure_ascii=False, separators=(",", ":"))
    if field_name == "response" and record.response is not None:
        return json.dumps(record.response, ensure_ascii=False, separators=(",", ":"))
    return None


def _safe_headers(obj: Any) -> Dict[str, str]:
    try:
        return {str(k): str(v) for k, v in dict(getattr(obj, "headers", {}) or {}).items()}
    except Exception:
        return {}


def _safe_post_data(request: Any) -> Optional[str]:
    # post_data raises for bodies that are not valid UTF-8
    try:
        data = request.post_data
    except Exception:
        return None
    return str(data) if data else None


def _shell_quote(value: str) -> str:
    return "'" + str(value).replace("'", "'\\''") + "'"
