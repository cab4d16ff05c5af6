"""Tool registry and dispatch for the browser session server."""

from __future__ import annotations

import inspect
import logging
import time
import traceback
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from langchain_core.tools import StructuredTool
from pydantic import ValidationError

from .errors import BrowserServerError, ErrorCodes, invalid_parameters
from .event_logger import BrowserEventLogger
from .installer import InstallerFeature
from .models import ServerConfig
from .network_inspector import NetworkInspectorFeature
from .page_actions import PageActionsFeature
from .page_inspector import PageInspectorFeature
from .params import ToolParams
from .session import SessionManager
from .session_tools import SessionToolsFeature

logger = logging.getLogger(__name__)

ToolEntry = Tuple[Callable[..., Any], Type[ToolParams], str]


def _collect_tools(feature: Any) -> Dict[str, ToolEntry]:
    tools: Dict[str, ToolEntry] = {}
    for attr in dir(feature):
        method = getattr(feature, attr, None)
        if not callable(method) or not bool(getattr(method, "_is_mcp_tool", False)):
            continue
        name = str(getattr(method, "_mcp_name", method.__name__) or method.__name__)
        params_model = getattr(method, "_mcp_params", None)
        if params_model is None:
            raise TypeError(f"Tool {name} declares no params model")
        doc = inspect.getdoc(method) or f"MCP tool: {name}"
        examples = list(getattr(method, "_mcp_examples", []) or [])
        if examples:
            doc = f"{doc}\n\nExamples:\n" + "\n".join(f"- {x}" for x in examples)
        tools[name] = (method, params_model, doc)
    return tools


def _validation_details(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in error.errors()
    ]


class BrowserToolkit:
    """
    Expose every browser operation as a named tool.

    `call_tool()` is the single dispatch entry: it validates arguments,
    runs the operation and always returns a dict, either
    ``{"ok": True, ...result}`` or ``{"ok": False, "error": {...}}``.
    `get_tools()` wraps the same entry as langchain StructuredTools.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        *,
        session_manager: Optional[SessionManager] = None,
        event_logger: Optional[BrowserEventLogger] = None,
    ):
        self.config = config or ServerConfig()
        if event_logger is None and self.config.event_log_path:
            event_logger = BrowserEventLogger(self.config.event_log_path)
            event_logger.start()
        self.event_logger = event_logger
        self.session_manager = session_manager or SessionManager(self.config, event_logger)

        self.features = [
            SessionToolsFeature(self.session_manager),
            PageActionsFeature(self.session_manager),
            PageInspectorFeature(self.session_manager),
            NetworkInspectorFeature(self.session_manager),
            InstallerFeature(),
        ]
        self._registry: Dict[str, ToolEntry] = {}
        for feature in self.features:
            self._registry.update(_collect_tools(feature))
        self._tools: List[StructuredTool] = []

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BrowserToolkit":
        return cls(ServerConfig.from_env(environ))

    @property
    def tool_names(self) -> List[str]:
        return sorted(self._registry)

    def params_model(self, name: str) -> Optional[Type[ToolParams]]:
        entry = self._registry.get(name)
        return entry[1] if entry else None

    def get_tools(self) -> List[StructuredTool]:
        if self._tools:
            return self._tools
        tools: List[StructuredTool] = []
        for name in self.tool_names:
            _, params_model, doc = self._registry[name]
            tools.append(
                StructuredTool.from_function(
                    name=name,
                    description=doc,
                    coroutine=self._tool_coroutine(name),
                    args_schema=params_model,
                )
            )
        self._tools = tools
        return self._tools

    def _tool_coroutine(self, name: str) -> Callable[..., Any]:
        async def _run(**kwargs: Any) -> Dict[str, Any]:
            return await self.call_tool(name, kwargs)

        _run.__name__ = name
        return _run

    async def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Validate, dispatch and journal one tool call."""
        args = dict(arguments or {})
        session_id = str(args.get("session_id") or args.get("sessionId") or "")
        started = time.time()
        try:
            result = await self._dispatch(name, args)
            response: Dict[str, Any] = {"ok": True, **result}
        except BrowserServerError as e:
            response = {"ok": False, "error": e.to_payload()}
        except Exception as e:
            logger.error("Tool %s failed unexpectedly", name, exc_info=True)
            response = {
                "ok": False,
                "error": BrowserServerError(
                    ErrorCodes.INTERNAL_ERROR,
                    str(e) or type(e).__name__,
                    details={"type": type(e).__name__, "traceback": traceback.format_exc()},
                ).to_payload(),
            }

        self._journal(name, session_id, response, started)
        return response

    async def _dispatch(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        entry = self._registry.get(name)
        if entry is None:
            raise BrowserServerError(ErrorCodes.INVALID_TOOL, f"Unknown tool: {name}")
        method, params_model, _ = entry
        try:
            params = params_model.model_validate(args)
        except ValidationError as e:
            raise invalid_parameters(f"Invalid parameters for {name}", _validation_details(e)) from e
        return await method(params)

    def _journal(self, name: str, session_id: str, response: Dict[str, Any], started: float) -> None:
        if self.event_logger is None:
            return
        error = response.get("error") or {}
        self.event_logger.log_action_event(
            {
                "session_id": session_id,
                "event_type": "tool_call",
                "ts": started,
                "payload": {
                    "tool": name,
                    "ok": bool(response.get("ok")),
                    "errorCode": error.get("errorCode"),
                    "elapsed_ms": int((time.time() - started) * 1000),
                },
            }
        )

    async def shutdown(self) -> None:
        await self.session_manager.shutdown()
