"""
MCP client exercising the task hub tools over SSE.

Usage:
    python client.py <taskHubName> <schedulerEndpoint>                 # list instances
    python client.py <taskHubName> <schedulerEndpoint> --start NAME   # start NAME, then list
    python client.py <taskHubName> <schedulerEndpoint> --terminate    # terminate every Running instance
    python client.py --schedulers <subscriptionId>                    # list schedulers

Start the server first: python -m mcp_dts_admin
"""

import asyncio
import json
import sys

from mcp.client.session import ClientSession
from mcp.client.sse import sse_client

MCP_URL = "http://localhost:3000/sse"


async def call(session: ClientSession, name: str, arguments: dict):
    result = await session.call_tool(name, arguments)
    text = result.content[0].text if result.content else "null"
    if result.isError:
        print(f"❌ {name} failed:\n{text}")
        return None
    return json.loads(text)


async def main(argv: list[str]):
    print(f"Connecting to {MCP_URL}...")

    async with sse_client(MCP_URL) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()
            print("✅ Connected\n")

            tools = await session.list_tools()
            print(f"Tools: {[t.name for t in tools.tools]}\n")

            if argv[:1] == ["--schedulers"]:
                schedulers = await call(session, "list_schedulers", {"subscriptionId": argv[1]})
                for s in schedulers or []:
                    hubs = ", ".join(h["name"] for h in s["taskHubs"]) or "-"
                    print(f"  {s['name']} ({s['resourceGroupName']}) {s['endpoint']}  hubs: {hubs}")
                return

            hub = {"taskHubName": argv[0], "schedulerEndpoint": argv[1]}

            if "--start" in argv:
                name = argv[argv.index("--start") + 1]
                created = await call(session, "create_instance", {**hub, "orchestrationName": name, "input": '"hello"'})
                if created:
                    print(f"🚀 Started {name}: {created['instanceId']}\n")

            instances = await call(session, "list_instances", hub) or []
            for i in instances:
                print(f"  {i['instanceId']}  {i['name']:<30} {i['status']}")
            print(f"\n{len(instances)} instance(s)")

            if "--terminate" in argv:
                running = [i["instanceId"] for i in instances if i["status"] == "Running"]
                if running:
                    result = await call(session, "terminate_instances", {**hub, "instanceIds": running})
                    if result:
                        print(f"\n⚠️ Terminated {len(result['succeeded'])} instance(s)")


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1:]))
