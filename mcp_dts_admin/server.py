"""
DurableTaskAdminServer - expose task hub operations as MCP tools.

This class can be used two ways:
1. Create a new MCP server that serves the task hub tools
2. Add the task hub tools to an existing MCP server

Tools:
- list_schedulers: schedulers and task hubs in a subscription
- list_instances: orchestration instances in a task hub
- create_instance: schedule a new orchestration instance
- delete_instances / resume_instances / suspend_instances / terminate_instances
"""

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Union

from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.types import CallToolResult, TextContent, Tool
from starlette.applications import Starlette
from starlette.routing import Route, Mount
from starlette.responses import Response
import uvicorn

from .config import Settings, get_settings
from .errors import DurableTaskToolError, InvalidArgument, UpstreamFailure
from .tools import DurableTaskHubTools

logger = logging.getLogger(__name__)

_TASK_HUB_PROPERTIES = {
    "taskHubName": {"type": "string", "description": "The name of the task hub."},
    "schedulerEndpoint": {
        "type": "string",
        "description": "The endpoint of the scheduler for the task hub, e.g. https://my-scheduler.westus2.durabletask.io",
    },
}

_INSTANCE_IDS = {
    "type": "array",
    "items": {"type": "string"},
    "minItems": 1,
    "description": "The IDs of the orchestration instances.",
}


def _bulk_tool(name: str, verb: str) -> Tool:
    return Tool(
        name=name,
        description=f"{verb} orchestration instances in a Durable Task Scheduler task hub.",
        inputSchema={
            "type": "object",
            "properties": {**_TASK_HUB_PROPERTIES, "instanceIds": _INSTANCE_IDS},
            "required": ["taskHubName", "schedulerEndpoint", "instanceIds"],
        },
    )


TOOLS = [
    Tool(
        name="list_schedulers",
        description="List all Durable Task Schedulers (and their task hubs) in an Azure subscription.",
        inputSchema={
            "type": "object",
            "properties": {
                "subscriptionId": {"type": "string", "description": "The ID of the subscription to query for schedulers."},
            },
            "required": ["subscriptionId"],
        },
    ),
    Tool(
        name="list_instances",
        description="List orchestration instances in a Durable Task Scheduler task hub.",
        inputSchema={
            "type": "object",
            "properties": dict(_TASK_HUB_PROPERTIES),
            "required": ["taskHubName", "schedulerEndpoint"],
        },
    ),
    Tool(
        name="create_instance",
        description="Schedule a new orchestration instance in a Durable Task Scheduler task hub.",
        inputSchema={
            "type": "object",
            "properties": {
                **_TASK_HUB_PROPERTIES,
                "orchestrationName": {"type": "string", "description": "The name of the orchestration to start."},
                "input": {"type": "string", "description": "Optional JSON text passed as the orchestration input."},
                "instanceId": {"type": "string", "description": "Optional instance ID. Generated if omitted."},
            },
            "required": ["taskHubName", "schedulerEndpoint", "orchestrationName"],
        },
    ),
    _bulk_tool("delete_instances", "Delete (purge)"),
    _bulk_tool("resume_instances", "Resume suspended"),
    _bulk_tool("suspend_instances", "Suspend running"),
    _bulk_tool("terminate_instances", "Terminate"),
]


def _require(arguments: dict, key: str) -> Any:
    value = arguments.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidArgument(f"Missing required parameter: {key}")
    return value


def json_result(data: Any) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=json.dumps(data, indent=2))])


def error_result(error: DurableTaskToolError) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict(), indent=2))],
        isError=True,
    )


class DurableTaskAdminServer:
    """
    Serve Durable Task Scheduler management tools over MCP.

    Works two ways:

    1. NEW SERVER - Pass a name string to create a new MCP server:

        admin = DurableTaskAdminServer("durable-task-scheduler")
        admin.run()  # SSE on http://0.0.0.0:3000/sse

    2. EXISTING SERVER - Pass an existing Server instance:

        server = Server("my-server")

        @server.list_tools()
        async def list_tools(): ...

        admin = DurableTaskAdminServer(server)
        # list_tools / call_tool now include the task hub tools and
        # chain to the handlers registered above for everything else.

    Args:
        server_or_name: Either a Server instance (existing server) or a string (new server name)
        tools: DurableTaskHubTools to dispatch to (created from settings if omitted)
        settings: Settings (defaults to get_settings())
    """

    def __init__(
        self,
        server_or_name: Union[Server, str, None] = None,
        tools: DurableTaskHubTools | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.tools = tools or DurableTaskHubTools(self.settings)

        if isinstance(server_or_name, Server):
            self._server = server_or_name
            self._owns_server = False
            self.name = server_or_name.name
        else:
            self.name = server_or_name or self.settings.server_name
            self._server = Server(self.name)
            self._owns_server = True

        self._handlers: dict[str, Callable[[dict], Awaitable[Any]]] = {
            "list_schedulers": self._list_schedulers,
            "list_instances": self._list_instances,
            "create_instance": self._create_instance,
            "delete_instances": self._bulk(self.tools.delete_instances),
            "resume_instances": self._bulk(self.tools.resume_instances),
            "suspend_instances": self._bulk(self.tools.suspend_instances),
            "terminate_instances": self._bulk(self.tools.terminate_instances),
        }

        # Save any existing handlers before we register ours
        from mcp.types import ListToolsRequest, CallToolRequest
        self._existing_list_tools = self._server.request_handlers.get(ListToolsRequest)
        self._existing_call_tool = self._server.request_handlers.get(CallToolRequest)

        self._server.list_tools()(self._list_tools)
        self._server.call_tool()(self._call_tool)

    @property
    def server(self) -> Server:
        """The underlying MCP server."""
        return self._server

    def get_tools(self) -> list[Tool]:
        return list(TOOLS)

    async def handle_tool(self, name: str, arguments: dict | None) -> CallToolResult:
        """
        Run one of the task hub tools and wrap its result.

        Errors never escape: they come back as CallToolResult(isError=True)
        whose text is the error's JSON form.
        """
        handler = self._handlers.get(name)
        if handler is None:
            return error_result(InvalidArgument(f"Unknown tool: {name}", operation=name))

        logger.info("Tool call %s", name)
        try:
            result = await handler(arguments or {})
        except DurableTaskToolError as e:
            logger.warning("Tool %s failed: %s", name, e)
            return error_result(e.annotate(name))
        except Exception as e:
            logger.exception("Tool %s raised an unexpected error", name)
            return error_result(UpstreamFailure(f"{type(e).__name__}: {e}", operation=name))
        return json_result(result)

    # === Tool adapters ===

    async def _list_schedulers(self, arguments: dict):
        return await self.tools.list_schedulers(_require(arguments, "subscriptionId"))

    async def _list_instances(self, arguments: dict):
        return await self.tools.list_instances(
            _require(arguments, "taskHubName"),
            _require(arguments, "schedulerEndpoint"),
        )

    async def _create_instance(self, arguments: dict):
        return await self.tools.create_instance(
            _require(arguments, "taskHubName"),
            _require(arguments, "schedulerEndpoint"),
            _require(arguments, "orchestrationName"),
            input=arguments.get("input"),
            instance_id=arguments.get("instanceId"),
        )

    def _bulk(self, method):
        async def handler(arguments: dict):
            return await method(
                _require(arguments, "taskHubName"),
                _require(arguments, "schedulerEndpoint"),
                _require(arguments, "instanceIds"),
            )
        return handler

    # === Internal handlers that chain to existing ones ===

    async def _list_tools(self) -> list[Tool]:
        tools = self.get_tools()

        if self._existing_list_tools:
            from mcp.types import ListToolsRequest
            existing_result = await self._existing_list_tools(ListToolsRequest())
            # Result is wrapped in ServerResult with a root ListToolsResult
            if hasattr(existing_result, 'root') and hasattr(existing_result.root, 'tools'):
                tools.extend(existing_result.root.tools)
            elif hasattr(existing_result, 'tools'):
                tools.extend(existing_result.tools)

        return tools

    async def _call_tool(self, name: str, arguments: dict) -> CallToolResult:
        if name in self._handlers:
            return await self.handle_tool(name, arguments)

        if self._existing_call_tool:
            from mcp.types import CallToolRequest
            existing_result = await self._existing_call_tool(CallToolRequest(
                method="tools/call",
                params={"name": name, "arguments": arguments}
            ))
            if hasattr(existing_result, 'root'):
                return existing_result.root
            return existing_result

        return error_result(InvalidArgument(f"Unknown tool: {name}", operation=name))

    # === Transports ===

    def build_app(self) -> Starlette:
        """Starlette app serving the MCP server over SSE at /sse and /messages/."""
        sse = SseServerTransport("/messages/")

        async def handle_sse(request):
            async with sse.connect_sse(request.scope, request.receive, request._send) as streams:
                await self._server.run(streams[0], streams[1], self._server.create_initialization_options())
            return Response()

        return Starlette(routes=[
            Route("/sse", handle_sse),
            Mount("/messages/", app=sse.handle_post_message),
        ])

    def run(self, transport: str | None = None, host: str | None = None, port: int | None = None):
        """
        Run the MCP server (standalone mode only).

        transport is "sse" (Starlette + uvicorn) or "stdio"; defaults come
        from settings.
        """
        if not self._owns_server:
            raise RuntimeError(
                "run() is only available for standalone servers. "
                "When using an existing server, run your server separately."
            )
        transport = transport or self.settings.transport
        try:
            if transport == "stdio":
                asyncio.run(self._run_stdio())
            elif transport == "sse":
                asyncio.run(self._run_sse(host or self.settings.host, port or self.settings.port))
            else:
                raise InvalidArgument(f"Unknown transport: {transport!r}")
        finally:
            self.tools.close()

    async def _run_stdio(self):
        from mcp.server.stdio import stdio_server

        print(f"MCP Server '{self.name}' - stdio", file=sys.stderr)
        async with stdio_server() as (read, write):
            await self._server.run(read, write, self._server.create_initialization_options())

    async def _run_sse(self, host: str, port: int):
        app = self.build_app()
        print(f"MCP Server '{self.name}' - MCP: http://{host}:{port}/sse", file=sys.stderr)
        await uvicorn.Server(uvicorn.Config(app, host=host, port=port)).serve()
