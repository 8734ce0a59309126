"""
DurableTaskHubTools - the operations exposed as MCP tools.

Each method resolves its own task hub client, does its work on a shared
thread executor (the Durable Task SDK client is synchronous) and returns
JSON-ready data. Failures propagate as DurableTaskToolError subclasses
annotated with the operation and task hub.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
import json
import logging
import uuid
from typing import Any, Iterable

from azure.identity import DefaultAzureCredential
import durabletask.internal.orchestrator_service_pb2 as pb
from google.protobuf import wrappers_pb2

from .config import Settings, get_settings
from .connection import (
    ClientFactory, CredentialProvider, TaskHubHandle, default_credential_provider, resolve,
)
from .dispatcher import BulkOperation, apply_bulk, unique_instance_ids
from .enumerator import collect_instances
from .errors import DurableTaskToolError, InvalidArgument, PartialBatchFailure, UpstreamFailure
from .inventory import collect_schedulers

logger = logging.getLogger(__name__)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def parse_json_input(value: Any) -> str | None:
    """
    Validate an orchestration input and return it as canonical JSON text.

    None means "no input". A string is parsed as JSON, so "42" becomes the
    number 42 and "null" becomes an explicit JSON null. Other Python values are
    taken as already-parsed JSON. Invalid JSON raises InvalidArgument.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            parsed = json.loads(value, parse_constant=_reject_constant)
        except ValueError as e:
            raise InvalidArgument(f"input is not valid JSON: {e}") from None
    else:
        parsed = value
    try:
        return json.dumps(parsed, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"input cannot be serialized as JSON: {e}") from None


class DurableTaskHubTools:
    """
    Task hub and scheduler operations.

        tools = DurableTaskHubTools()
        await tools.list_instances("orders", "https://my-scheduler.westus2.durabletask.io")
        await tools.terminate_instances("orders", "https://...", ["a", "b"])

    Args:
        settings: Settings (defaults to get_settings())
        credential_provider: mechanism name -> azure-identity credential, called once per mechanism
        client_factory: (ConnectionSettings, credential) -> SDK client
        arm_credential: credential for Resource Manager calls
        arm_session: requests.Session used for Resource Manager calls
        executor: thread pool for blocking SDK/HTTP calls
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        credential_provider: CredentialProvider | None = None,
        client_factory: ClientFactory | None = None,
        arm_credential=None,
        arm_session=None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.settings = settings or get_settings()
        self._credential_provider = credential_provider or default_credential_provider
        self._credentials: dict[str, Any] = {}
        self._owns_arm_credential = False
        self._client_factory = client_factory
        self._arm_credential = arm_credential
        self._arm_session = arm_session
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=self.settings.executor_workers)

    def _resolve(self, task_hub_name: str, scheduler_endpoint: str) -> TaskHubHandle:
        return resolve(
            task_hub_name,
            scheduler_endpoint,
            authentication=self.settings.authentication,
            credential_provider=self._get_credential,
            client_factory=self._client_factory,
        )

    def _get_credential(self, mechanism: str):
        # One credential per mechanism, shared by every task hub client.
        if mechanism not in self._credentials:
            self._credentials[mechanism] = self._credential_provider(mechanism)
        return self._credentials[mechanism]

    def _get_arm_credential(self):
        if self._arm_credential is None:
            self._arm_credential = DefaultAzureCredential(exclude_interactive_browser_credential=True)
            self._owns_arm_credential = True
        return self._arm_credential

    async def _run(self, operation: str, task_hub: str | None, coro):
        timeout = self.settings.operation_timeout
        try:
            return await asyncio.wait_for(coro, timeout)
        except DurableTaskToolError as e:
            raise e.annotate(operation, task_hub)
        except asyncio.TimeoutError as e:
            raise UpstreamFailure(f"{operation} timed out after {timeout}s",
                                  operation=operation, task_hub=task_hub) from e

    # === Inventory ===

    async def list_schedulers(self, subscription_id: str) -> list[dict]:
        async def _list():
            schedulers = await collect_schedulers(
                subscription_id,
                credential=self._get_arm_credential(),
                arm_endpoint=self.settings.arm_endpoint,
                api_version=self.settings.arm_api_version,
                session=self._arm_session,
                executor=self._executor,
                timeout=self.settings.arm_timeout,
            )
            return [s.to_dict() for s in schedulers]

        return await self._run("ListSchedulers", None, _list())

    # === Instances ===

    async def list_instances(self, task_hub_name: str, scheduler_endpoint: str) -> list[dict]:
        async def _list():
            with self._resolve(task_hub_name, scheduler_endpoint) as handle:
                instances = await collect_instances(
                    handle, True, page_size=self.settings.query_page_size, executor=self._executor)
            return [i.to_dict() for i in instances]

        return await self._run("ListInstances", task_hub_name, _list())

    async def create_instance(
        self,
        task_hub_name: str,
        scheduler_endpoint: str,
        orchestration_name: str,
        input: Any = None,
        instance_id: str | None = None,
    ) -> dict:
        async def _create():
            payload = parse_json_input(input)
            if not isinstance(orchestration_name, str) or not orchestration_name.strip():
                raise InvalidArgument("orchestrationName must be a non-empty string")
            if instance_id is not None and (not isinstance(instance_id, str) or not instance_id.strip()):
                raise InvalidArgument("instanceId must be a non-empty string when provided")

            req = pb.CreateInstanceRequest(
                name=orchestration_name.strip(),
                instanceId=instance_id or uuid.uuid4().hex,
            )
            if payload is not None:
                req.input.CopyFrom(wrappers_pb2.StringValue(value=payload))

            with self._resolve(task_hub_name, scheduler_endpoint) as handle:
                loop = asyncio.get_event_loop()
                try:
                    resp = await loop.run_in_executor(self._executor, handle.client._stub.StartInstance, req)
                except Exception as e:
                    raise UpstreamFailure(f"StartInstance failed: {e}", instance_ids=[req.instanceId]) from e

            created = resp.instanceId or req.instanceId
            logger.info("Scheduled %s as instance %s in task hub %s", req.name, created, task_hub_name)
            return {"instanceId": created}

        return await self._run("CreateInstance", task_hub_name, _create())

    async def _bulk(self, operation: BulkOperation, tool_name: str, task_hub_name: str,
                    scheduler_endpoint: str, instance_ids: Iterable[str]) -> dict:
        async def _apply():
            ids = unique_instance_ids(instance_ids)
            with self._resolve(task_hub_name, scheduler_endpoint) as handle:
                try:
                    result = await apply_bulk(
                        operation, handle, ids,
                        max_concurrency=self.settings.bulk_max_concurrency,
                        executor=self._executor,
                    )
                except PartialBatchFailure as e:
                    e.operation = tool_name
                    raise
            return result.to_dict()

        return await self._run(tool_name, task_hub_name, _apply())

    async def delete_instances(self, task_hub_name: str, scheduler_endpoint: str, instance_ids: Iterable[str]) -> dict:
        return await self._bulk(BulkOperation.DELETE, "DeleteInstances", task_hub_name, scheduler_endpoint, instance_ids)

    async def resume_instances(self, task_hub_name: str, scheduler_endpoint: str, instance_ids: Iterable[str]) -> dict:
        return await self._bulk(BulkOperation.RESUME, "ResumeInstances", task_hub_name, scheduler_endpoint, instance_ids)

    async def suspend_instances(self, task_hub_name: str, scheduler_endpoint: str, instance_ids: Iterable[str]) -> dict:
        return await self._bulk(BulkOperation.SUSPEND, "SuspendInstances", task_hub_name, scheduler_endpoint, instance_ids)

    async def terminate_instances(self, task_hub_name: str, scheduler_endpoint: str, instance_ids: Iterable[str]) -> dict:
        return await self._bulk(BulkOperation.TERMINATE, "TerminateInstances", task_hub_name, scheduler_endpoint, instance_ids)

    def close(self):
        credentials = [c for c in self._credentials.values() if c is not None]
        if self._owns_arm_credential:
            credentials.append(self._arm_credential)
        for credential in credentials:
            close = getattr(credential, "close", None)
            if callable(close):
                close()
        self._credentials.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
