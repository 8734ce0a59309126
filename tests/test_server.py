import asyncio
import json

from mcp.server import Server
from mcp.types import Tool
import pytest

from mcp_dts_admin.server import TOOLS, DurableTaskAdminServer
from mcp_dts_admin.tools import DurableTaskHubTools

ENDPOINT = "https://orders-scheduler.westus2.durabletask.io"
HUB = {"taskHubName": "orders", "schedulerEndpoint": ENDPOINT}


@pytest.fixture
def admin(settings, factory):
    tools = DurableTaskHubTools(settings, credential_provider=lambda m: None, client_factory=factory)
    yield DurableTaskAdminServer("test-server", tools=tools, settings=settings)
    tools.close()


def call(admin, name, arguments):
    result = asyncio.run(admin.handle_tool(name, arguments))
    return result.isError, json.loads(result.content[0].text)


def test_tool_names():
    assert [t.name for t in TOOLS] == [
        "list_schedulers",
        "list_instances",
        "create_instance",
        "delete_instances",
        "resume_instances",
        "suspend_instances",
        "terminate_instances",
    ]


def test_list_tools_handler(admin):
    tools = asyncio.run(admin._list_tools())
    assert {t.name for t in tools} == {t.name for t in TOOLS}


def test_list_instances_tool(admin, engine):
    engine.add("order-1")

    is_error, data = call(admin, "list_instances", HUB)

    assert not is_error
    assert data == [{"instanceId": "order-1", "name": "order_workflow", "status": "Running"}]


def test_create_then_terminate(admin, engine):
    is_error, created = call(admin, "create_instance",
                             {**HUB, "orchestrationName": "successful_orchestrator", "input": '{"id": 7}'})
    assert not is_error
    assert engine.started[0].input.value == '{"id": 7}'

    is_error, result = call(admin, "terminate_instances", {**HUB, "instanceIds": [created["instanceId"]]})

    assert not is_error
    assert result["succeeded"] == [created["instanceId"]]


def test_invalid_endpoint_returns_structured_error(admin):
    is_error, data = call(admin, "list_instances", {"taskHubName": "orders", "schedulerEndpoint": "not-a-uri"})

    assert is_error
    assert data["error"] == "InvalidArgument"
    assert data["operation"] == "ListInstances"
    assert data["taskHub"] == "orders"


def test_invalid_json_input(admin, engine):
    is_error, data = call(admin, "create_instance", {**HUB, "orchestrationName": "wf", "input": "{bad json"})

    assert is_error
    assert data["error"] == "InvalidArgument"
    assert engine.started == []


def test_partial_failure_payload(admin, engine):
    for i in "ABC":
        engine.add(i)
    engine.fail_ids.add("B")

    is_error, data = call(admin, "suspend_instances", {**HUB, "instanceIds": ["A", "B", "C"]})

    assert is_error
    assert data["error"] == "PartialBatchFailure"
    assert data["instanceIds"] == ["B"]
    assert set(data["failures"]) == {"B"}
    assert data["succeeded"] == ["A", "C"]


def test_missing_argument(admin):
    is_error, data = call(admin, "delete_instances", HUB)

    assert is_error
    assert data == {"error": "InvalidArgument", "message": "Missing required parameter: instanceIds",
                    "operation": "delete_instances"}


def test_unknown_tool(admin):
    is_error, data = call(admin, "drop_task_hub", {})

    assert is_error
    assert data["message"] == "Unknown tool: drop_task_hub"


def test_unexpected_errors_are_wrapped(admin, monkeypatch):
    async def explode(*args, **kwargs):
        raise KeyError("boom")

    monkeypatch.setattr(admin.tools, "list_instances", explode)

    is_error, data = call(admin, "list_instances", HUB)

    assert is_error
    assert data["error"] == "UpstreamFailure"
    assert "KeyError" in data["message"]


def test_existing_server_tools_are_chained(settings, factory):
    server = Server("host")
    extra = Tool(name="echo", description="Echo", inputSchema={"type": "object", "properties": {}})

    @server.list_tools()
    async def list_tools():
        return [extra]

    tools = DurableTaskHubTools(settings, credential_provider=lambda m: None, client_factory=factory)
    admin = DurableTaskAdminServer(server, tools=tools, settings=settings)
    try:
        names = [t.name for t in asyncio.run(admin._list_tools())]
        assert "echo" in names
        assert "list_instances" in names
        with pytest.raises(RuntimeError):
            admin.run()
    finally:
        tools.close()


def test_sse_app_routes(admin):
    app = admin.build_app()
    assert [route.path for route in app.routes] == ["/sse", "/messages"]
