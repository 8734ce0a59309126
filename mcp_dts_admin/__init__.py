"""
mcp_dts_admin - Manage Durable Task Scheduler task hubs from MCP clients

This library exposes Durable Task Scheduler control-plane operations as MCP
tools: discover schedulers and task hubs, list orchestration instances, and
create, purge, suspend, resume or terminate them.

Works two ways:

1. CREATE A NEW SERVER - Pass a name string:

    from mcp_dts_admin import DurableTaskAdminServer

    admin = DurableTaskAdminServer("durable-task-scheduler")
    admin.run()  # SSE on http://0.0.0.0:3000/sse, or admin.run(transport="stdio")


2. ADD TO EXISTING SERVER - Pass a Server instance:

    from mcp.server import Server
    from mcp_dts_admin import DurableTaskAdminServer

    server = Server("my-server")

    @server.list_tools()
    async def list_tools():
        return [...]

    admin = DurableTaskAdminServer(server)  # chains to the handlers above


The operations are also usable without MCP:

    from mcp_dts_admin import DurableTaskHubTools

    tools = DurableTaskHubTools()
    instances = await tools.list_instances("orders", "https://my-scheduler.westus2.durabletask.io")

Components:
- Connection resolver: one short-lived DTS client per call
- Instance enumerator: paged QueryInstances, mapped to OrchestrationInstance
- Bulk dispatcher: concurrent purge/suspend/resume/terminate with per-id results
- Inventory lister: subscription -> schedulers -> task hubs via Resource Manager

Architecture:
    AI Agent <--MCP--> DurableTaskAdminServer <--gRPC--> Durable Task Scheduler
                                              <--HTTPS--> Azure Resource Manager
"""

from .errors import (
    DurableTaskToolError, InvalidArgument, PartialBatchFailure, UpstreamFailure,
)
from .models import OrchestrationInstance, OrchestrationStatus, Scheduler, TaskHub
from .server import DurableTaskAdminServer
from .tools import DurableTaskHubTools

__all__ = [
    "DurableTaskAdminServer",
    "DurableTaskHubTools",
    "DurableTaskToolError",
    "InvalidArgument",
    "OrchestrationInstance",
    "OrchestrationStatus",
    "PartialBatchFailure",
    "Scheduler",
    "TaskHub",
    "UpstreamFailure",
]
