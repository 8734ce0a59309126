"""
Bulk operations over a set of orchestration instances.

Each instance id gets its own engine call. The SDK client is synchronous, so
every call runs on a thread executor and the event loop only awaits. The
per-id tasks are started together, joined with asyncio.gather and cancelled
as a group. Every task records its own outcome; nothing is shared between
them apart from the optional concurrency semaphore.
"""

import asyncio
from concurrent.futures import Executor
from enum import Enum
import logging
from typing import Iterable

from .connection import TaskHubHandle
from .errors import InvalidArgument, PartialBatchFailure
from .models import BulkOperationResult, InstanceOutcome

logger = logging.getLogger(__name__)


class BulkOperation(Enum):
    DELETE = ("Delete", "purge_orchestration")
    RESUME = ("Resume", "resume_orchestration")
    SUSPEND = ("Suspend", "suspend_orchestration")
    TERMINATE = ("Terminate", "terminate_orchestration")

    def __init__(self, label: str, method_name: str):
        self.label = label
        self.method_name = method_name

    # Purge is the engine's name for deleting an instance.
    PURGE = DELETE


def unique_instance_ids(instance_ids: Iterable[str]) -> list[str]:
    """De-duplicate ids, keeping first-seen order. Raises InvalidArgument if empty."""
    if instance_ids is None or isinstance(instance_ids, (str, bytes)):
        raise InvalidArgument("instanceIds must be a list of instance id strings")

    ids: list[str] = []
    seen: set[str] = set()
    for instance_id in instance_ids:
        if not isinstance(instance_id, str) or not instance_id:
            raise InvalidArgument(f"Invalid instance id: {instance_id!r}")
        if instance_id not in seen:
            seen.add(instance_id)
            ids.append(instance_id)
    if not ids:
        raise InvalidArgument("instanceIds must contain at least one instance id")
    return ids


async def apply_bulk(
    operation: BulkOperation,
    handle: TaskHubHandle,
    instance_ids: Iterable[str],
    *,
    max_concurrency: int | None = None,
    executor: Executor | None = None,
    timeout: float | None = None,
) -> BulkOperationResult:
    """
    Apply `operation` to every id concurrently.

    All per-id calls run to completion (or until cancelled); failures are
    collected rather than failing fast. If any id failed, PartialBatchFailure
    is raised carrying the full per-id result. Cancelling the caller, or
    exceeding `timeout` seconds, cancels all in-flight calls. Operations that
    already completed are not rolled back.
    """
    ids = unique_instance_ids(instance_ids)
    if max_concurrency is not None and max_concurrency < 1:
        raise InvalidArgument("max_concurrency must be at least 1")

    method = getattr(handle.client, operation.method_name)
    loop = asyncio.get_event_loop()
    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def _call(instance_id: str):
        if semaphore is None:
            await loop.run_in_executor(executor, method, instance_id)
            return
        async with semaphore:
            await loop.run_in_executor(executor, method, instance_id)

    async def _apply_one(instance_id: str) -> InstanceOutcome:
        try:
            await _call(instance_id)
        except Exception as e:
            logger.warning("%s failed for instance %s in task hub %s: %s",
                           operation.label, instance_id, handle.task_hub, e)
            return InstanceOutcome(instance_id, e)
        return InstanceOutcome(instance_id)

    tasks = [asyncio.ensure_future(_apply_one(instance_id)) for instance_id in ids]
    try:
        outcomes = await asyncio.wait_for(asyncio.gather(*tasks), timeout)
    except (asyncio.CancelledError, asyncio.TimeoutError):
        finished = sum(1 for t in tasks if t.done() and not t.cancelled())
        for t in tasks:
            t.cancel()
        logger.warning("%s on task hub %s cancelled with %d of %d call(s) finished",
                       operation.label, handle.task_hub, finished, len(tasks))
        raise

    result = BulkOperationResult(
        operation=operation.label,
        task_hub=handle.task_hub,
        outcomes=tuple(outcomes),
    )
    if not result.ok:
        raise PartialBatchFailure(result)

    logger.info("%s succeeded for %d instance(s) in task hub %s",
                operation.label, len(ids), handle.task_hub)
    return result
