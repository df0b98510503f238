"""MCP JSON-RPC protocol handler for one session."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, cast

from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import (
    LATEST_PROTOCOL_VERSION,
    CallToolResult,
    Implementation,
    InitializeRequest,
    InitializeResult,
    PromptsCapability,
    ResourcesCapability,
    ServerCapabilities,
    TextContent,
    Tool,
    ToolsCapability,
)
from pydantic import ValidationError

from horizon_mcp.core.types import ErrorCode, ResourceResponse
from horizon_mcp.mcp_gateway.constants import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    SERVER_NAME,
    SERVER_VERSION,
)
from horizon_mcp.mcp_gateway.tools.exchange_tools import TOOL_NAME, TOOL_SPEC, ExchangeTools

if TYPE_CHECKING:
    from horizon_mcp.mcp_gateway.transport import SessionTransport

_protocol_log = logging.getLogger("horizon_mcp.mcp_gateway.protocol")

SERVER_INSTRUCTIONS = """
You have access to one tool: 'exchange'.

'exchange' performs IBM Open Horizon Management Hub (Exchange) API operations.
Use it if the request is about services, nodes, policies, deployments, or statuses.

You can:
- list resources:   { action: "list", target: "service" }
- get details:      { action: "details", target: "node", name: "node-1" }
- create resources: { action: "create", target: "policy", data: { ... } }
- delete resources: { action: "delete", target: "service", name: "service-id" }
- get status:       { action: "status", target: "node", name: "node-1" }

'target' is one of 'service', 'node' or 'policy'; for policies set 'policyType'
to 'node', 'service' or 'deployment'. 'name' identifies a specific resource and
'data' carries the payload for create.
"""


def jsonrpc_result(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def jsonrpc_error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def is_initialize_message(message: Any) -> bool:
    """True for a well-formed ``initialize`` request, params included."""
    if not (
        isinstance(message, dict)
        and message.get("jsonrpc") == "2.0"
        and message.get("method") == "initialize"
        and "id" in message
    ):
        return False
    message_dict = cast(dict[str, Any], message)
    try:
        InitializeRequest.model_validate(
            {"method": "initialize", "params": message_dict.get("params")}
        )
    except ValidationError:
        return False
    return True


def is_initialize_request(body: Any) -> bool:
    """True when ``body`` (a message or a batch) carries an ``initialize`` request."""
    if isinstance(body, list):
        return any(is_initialize_message(item) for item in cast(list[Any], body))
    return is_initialize_message(body)


def _make_tool(spec: dict[str, Any]) -> Tool:
    annotations = cast(dict[str, Any], spec.get("annotations") or {})
    return Tool(
        name=str(spec["name"]),
        description=str(spec["description"]),
        inputSchema=cast(dict[str, Any], spec["input_schema"]),
        annotations=annotations or None,
    )


def tool_result(response: ResourceResponse) -> dict[str, Any]:
    """Render a ``ResourceResponse`` as an MCP ``CallToolResult`` payload."""
    result = CallToolResult(
        content=[TextContent(type="text", text=response.text())],
        isError=response.is_error,
    ).model_dump(mode="json", by_alias=True, exclude_none=True)
    result["structuredContent"] = response.to_dict()
    return result


RpcHandler = Callable[[Any, dict[str, Any]], Awaitable[dict[str, Any]]]


class ExchangeProtocolHandler:
    """Serves the MCP methods for a single session.

    One instance is created per session and connected to that session's
    transport; it never moves to another transport.
    """

    def __init__(
        self,
        tools: ExchangeTools,
        initial_headers: Mapping[str, str] | None = None,
    ) -> None:
        self.tools = tools
        self.initial_headers: dict[str, str] = dict(initial_headers or {})
        self.transport: "SessionTransport | None" = None
        self.client_info: dict[str, Any] | None = None
        self.protocol_version: str | None = None
        self._handlers: dict[str, RpcHandler] = {
            "initialize": self._rpc_initialize,
            "ping": self._rpc_ping,
            "tools/list": self._rpc_tools_list,
            "tools/call": self._rpc_tools_call,
            "resources/list": self._rpc_resources_list,
            "prompts/list": self._rpc_prompts_list,
        }

    def connect(self, transport: "SessionTransport") -> None:
        if self.transport is not None and self.transport is not transport:
            raise RuntimeError("Protocol handler is already connected to a transport")
        self.transport = transport
        transport.attach(self)

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Handle one JSON-RPC message; notifications and responses yield ``None``."""
        request_id = message.get("id")
        method = message.get("method")

        if method is None:
            # A client response to a server request; nothing is ever pending.
            return None
        if not isinstance(method, str) or method == "":
            return jsonrpc_error(request_id, INVALID_REQUEST, "Invalid Request: missing method")
        if "id" not in message:
            _protocol_log.debug("notification method=%s", method)
            return None

        handler = self._handlers.get(method)
        if handler is None:
            return jsonrpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        params = message.get("params") or {}
        if not isinstance(params, dict):
            return jsonrpc_error(request_id, INVALID_PARAMS, "Invalid params: expected an object")
        return await handler(request_id, cast(dict[str, Any], params))

    async def _rpc_initialize(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        requested = params.get("protocolVersion")
        self.protocol_version = (
            requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        )
        client_info = params.get("clientInfo")
        self.client_info = cast(dict[str, Any], client_info) if isinstance(client_info, dict) else None
        result = InitializeResult(
            protocolVersion=self.protocol_version,
            capabilities=ServerCapabilities(
                tools=ToolsCapability(listChanged=True),
                resources=ResourcesCapability(listChanged=True),
                prompts=PromptsCapability(listChanged=True),
            ),
            serverInfo=Implementation(name=SERVER_NAME, version=SERVER_VERSION),
            instructions=SERVER_INSTRUCTIONS,
        )
        _protocol_log.info(
            "initialize protocol_version=%s client=%s",
            self.protocol_version,
            (self.client_info or {}).get("name"),
            extra={"protocol_version": self.protocol_version},
        )
        return jsonrpc_result(
            request_id, result.model_dump(mode="json", by_alias=True, exclude_none=True)
        )

    async def _rpc_ping(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        _ = params
        return jsonrpc_result(request_id, {})

    async def _rpc_tools_list(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        _ = params
        tool = _make_tool(TOOL_SPEC)
        return jsonrpc_result(
            request_id,
            {"tools": [tool.model_dump(mode="json", by_alias=True, exclude_none=True)]},
        )

    async def _rpc_tools_call(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        tool_name = params.get("name")
        arguments = params.get("arguments") or {}
        session_id = self.transport.session_id if self.transport else None
        _protocol_log.info(
            "tool_call tool=%s session_id=%s",
            tool_name,
            session_id or "(none)",
            extra={"tool": tool_name, "session_id": session_id},
        )

        if tool_name != TOOL_NAME:
            response = ResourceResponse.error(ErrorCode.UNKNOWN_TOOL, f"Unknown tool: {tool_name}")
        elif not isinstance(arguments, dict):
            return jsonrpc_error(request_id, INVALID_PARAMS, "Invalid params: arguments must be an object")
        else:
            # The Exchange client blocks; keep the event loop free for other sessions.
            response = await asyncio.to_thread(self.tools.call, cast(dict[str, Any], arguments))
        return jsonrpc_result(request_id, tool_result(response))

    async def _rpc_resources_list(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        _ = params
        return jsonrpc_result(request_id, {"resources": []})

    async def _rpc_prompts_list(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        _ = params
        return jsonrpc_result(request_id, {"prompts": []})
