"""
Lazy enumeration of the orchestration instances in a task hub.

Pages are fetched with the QueryInstances RPC, one page per round-trip, and
the next page is requested only once the consumer has drained the current
one. A task hub can hold any number of instances, so nothing here holds more
than one page in memory and nothing is cached between calls.
"""

import asyncio
from concurrent.futures import Executor
import logging
from typing import AsyncIterator

import durabletask.internal.orchestrator_service_pb2 as pb
from google.protobuf import wrappers_pb2

from .connection import TaskHubHandle
from .errors import UpstreamFailure
from .models import OrchestrationInstance, instance_from_proto

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def build_query(page_size: int, fetch_payloads: bool, continuation_token: str | None = None) -> pb.QueryInstancesRequest:
    req = pb.QueryInstancesRequest(
        query=pb.InstanceQuery(
            maxInstanceCount=page_size,
            fetchInputsAndOutputs=fetch_payloads,
        )
    )
    if continuation_token:
        req.query.continuationToken.CopyFrom(
            wrappers_pb2.StringValue(value=continuation_token)
        )
    return req


async def list_instances(
    handle: TaskHubHandle,
    fetch_payloads: bool = False,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    executor: Executor | None = None,
) -> AsyncIterator[OrchestrationInstance]:
    """
    Yield every instance in the task hub, page by page.

    Entries that cannot be mapped are skipped with a warning; the rest of the
    enumeration continues. A failed page request raises UpstreamFailure.
    Order is whatever the engine returns.
    """
    loop = asyncio.get_event_loop()
    stub = handle.client._stub
    token = None
    page = 0

    while True:
        req = build_query(page_size, fetch_payloads, token)
        try:
            resp = await loop.run_in_executor(executor, stub.QueryInstances, req)
        except Exception as e:
            raise UpstreamFailure(
                f"QueryInstances failed on page {page}: {e}",
                operation="ListInstances",
                task_hub=handle.task_hub,
            ) from e
        page += 1

        for state in resp.orchestrationState:
            try:
                instance = instance_from_proto(state, fetch_payloads)
            except Exception as e:
                logger.warning("Skipping malformed instance %r in task hub %s: %s",
                               getattr(state, "instanceId", None), handle.task_hub, e)
                continue
            yield instance

        next_token = resp.continuationToken.value if resp.HasField("continuationToken") else None
        if not next_token:
            break
        if next_token == token:
            logger.warning("Task hub %s returned the same continuation token twice; stopping after page %d",
                           handle.task_hub, page)
            break
        token = next_token


async def collect_instances(handle: TaskHubHandle, fetch_payloads: bool = False, **kwargs) -> list[OrchestrationInstance]:
    """Materialize list_instances() into a list."""
    return [instance async for instance in list_instances(handle, fetch_payloads, **kwargs)]
