"""
Example: a Durable Task Scheduler worker with one orchestrator and one activity.

Run it, then drive it from any MCP client through the task hub tools, e.g.
create_instance with orchestrationName="successful_orchestrator" and
input='"hello"', followed by list_instances.

Usage:
    1. Start the DTS emulator: docker run -d -p 8080:8080 -p 8082:8082 mcr.microsoft.com/dts/dts-emulator:latest
    2. export DURABLE_TASK_CONNECTION_STRING="Endpoint=http://localhost:8080;TaskHub=default;Authentication=None"
    3. python examples/worker.py
"""

import logging
import os
import threading

from durabletask import task
from durabletask.azuremanaged.worker import DurableTaskSchedulerWorker

from mcp_dts_admin.connection import default_credential_provider, parse_connection_string

logger = logging.getLogger("worker")


def successful_orchestrator(ctx: task.OrchestrationContext, input: str):
    """Calls successful_activity once and returns its result."""
    result = yield ctx.call_activity(successful_activity, input=input)
    return result


def successful_activity(ctx: task.ActivityContext, input: str) -> str:
    return input


def create_worker(connection_string: str) -> DurableTaskSchedulerWorker:
    settings = parse_connection_string(connection_string)
    worker = DurableTaskSchedulerWorker(
        host_address=settings.endpoint,
        taskhub=settings.task_hub,
        token_credential=default_credential_provider(settings.authentication),
        secure_channel=settings.secure_channel,
    )
    worker.add_orchestrator(successful_orchestrator)
    worker.add_activity(successful_activity)
    return worker


def main():
    logging.basicConfig(level=logging.INFO)
    connection_string = os.getenv("DURABLE_TASK_CONNECTION_STRING")
    if not connection_string:
        raise SystemExit("DURABLE_TASK_CONNECTION_STRING is not set")

    worker = create_worker(connection_string)
    logger.info("Worker connecting to %s...", parse_connection_string(connection_string).endpoint)
    worker.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        worker.stop()


if __name__ == "__main__":
    main()
