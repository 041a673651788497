"""HTTP routes, the SSE transport and JSON-RPC dispatch of tool calls."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from aiohttp import web

from billing_mcp.invoices.ports import InvoicesController
from billing_mcp.mcp.protocol import CallToolRequest, CallToolResult, Tool
from billing_mcp.mcp.tools import invoice_tool, invoices_tool

logger = logging.getLogger(__name__)

PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26")
ToolHandler = Callable[[CallToolRequest], CallToolResult]


def _result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


class HealthController:
    async def is_healthy(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})


class McpServer:
    """Dispatches JSON-RPC messages to registered tools."""

    def __init__(self, name: str, version: str) -> None:
        self.name = name
        self.version = version
        self._tools: dict[str, tuple[Tool, ToolHandler]] = {}

    def add_tool(self, tool: Tool, handler: ToolHandler) -> None:
        self._tools[tool.name] = (tool, handler)

    def handle_message(self, message: Any) -> Optional[dict[str, Any]]:
        """Answer one JSON-RPC message; notifications and responses get ``None``."""
        if not isinstance(message, dict):
            return _error(None, -32600, "Invalid Request")
        method = message.get("method")
        if method is None and ("result" in message or "error" in message):
            return None
        if not isinstance(method, str):
            return _error(message.get("id"), -32600, "Invalid Request")
        if "id" not in message:
            return None
        rid = message["id"]
        params = message.get("params") or {}
        if not isinstance(params, dict):
            return _error(rid, -32602, "Invalid params")

        if method == "initialize":
            requested = params.get("protocolVersion")
            return _result(rid, {
                "protocolVersion": requested if requested in PROTOCOL_VERSIONS else PROTOCOL_VERSIONS[-1],
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": self.version},
            })
        if method == "ping":
            return _result(rid, {})
        if method == "tools/list":
            return _result(rid, {"tools": [self._tools[n][0].to_dict() for n in sorted(self._tools)]})
        if method != "tools/call":
            return _error(rid, -32601, f"Method {method} not found")

        name = params.get("name")
        if not isinstance(name, str) or name not in self._tools:
            return _error(rid, -32602, f"tool '{name}' not found")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            return _error(rid, -32602, "Invalid params")
        try:
            result = self._tools[name][1](CallToolRequest(name=name, arguments=arguments))
        except Exception as exc:
            logger.error("Tool %s failed: %s", name, exc)
            return _error(rid, -32603, str(exc))
        return _result(rid, result.to_dict())


@dataclass
class ApiServer:
    health_controller: HealthController
    invoices_controller: InvoicesController


def _event(name: str, data: str) -> bytes:
    return f"event: {name}\ndata: {data}\n\n".encode("utf-8")


class SseServer:
    """Server-sent-events transport: one stream per session, replies posted to it."""

    def __init__(self, server: McpServer, *, keepalive_interval: float = 30.0) -> None:
        self._server = server
        self._keepalive_interval = keepalive_interval
        self._sessions: dict[str, asyncio.Queue[Optional[dict[str, Any]]]] = {}

    async def sse_handler(self, request: web.Request) -> web.StreamResponse:
        session_id = str(uuid.uuid4())
        queue: asyncio.Queue[Optional[dict[str, Any]]] = asyncio.Queue()
        self._sessions[session_id] = queue
        response = web.StreamResponse(headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        })
        try:
            await response.prepare(request)
            endpoint = f"{request.scheme}://{request.host}/message?sessionId={session_id}"
            await response.write(_event("endpoint", endpoint))
            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), self._keepalive_interval)
                except asyncio.TimeoutError:
                    await response.write(b": ping\n\n")
                    continue
                if message is None:
                    break
                await response.write(_event("message", json.dumps(message)))
        except ConnectionError as exc:
            logger.info("SSE session %s closed: %s", session_id, exc)
        finally:
            self._sessions.pop(session_id, None)
        return response

    async def message_handler(self, request: web.Request) -> web.Response:
        session_id = request.query.get("sessionId")
        if not session_id:
            return web.json_response(_error(None, -32602, "Missing sessionId"), status=400)
        queue = self._sessions.get(session_id)
        if queue is None:
            return web.json_response(_error(None, -32602, "Invalid session ID"), status=400)
        try:
            message = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response(_error(None, -32700, "Parse error"), status=400)
        reply = await asyncio.to_thread(self._server.handle_message, message)
        if reply is not None:
            await queue.put(reply)
        return web.Response(status=202, text="Accepted")

    async def _close_sessions(self, app: web.Application) -> None:
        for queue in list(self._sessions.values()):
            queue.put_nowait(None)


def setup(app: web.Application, server: McpServer, api: ApiServer) -> SseServer:
    """Register the HTTP routes and the invoice tools."""
    sse = SseServer(server)
    app.router.add_get("/health", api.health_controller.is_healthy)
    app.router.add_get("/sse", sse.sse_handler)
    app.router.add_post("/message", sse.message_handler)
    app.on_shutdown.append(sse._close_sessions)
    server.add_tool(invoice_tool(), api.invoices_controller.get_invoice)
    server.add_tool(invoices_tool(), api.invoices_controller.get_invoices)
    return sse