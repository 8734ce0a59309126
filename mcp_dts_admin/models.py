"""
Serializable records returned by the task hub tools.

Protobuf messages returned by QueryInstances are mapped here into plain
frozen dataclasses. Every record is a snapshot taken at query time; nothing
is cached or mutated afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import durabletask.internal.orchestrator_service_pb2 as pb

from .errors import MalformedInstance


class OrchestrationStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    TERMINATED = "Terminated"
    SUSPENDED = "Suspended"
    CONTINUED_AS_NEW = "ContinuedAsNew"
    CANCELED = "Canceled"
    UNKNOWN = "Unknown"


# Keyed by upper-cased name with underscores removed, so "CONTINUED_AS_NEW",
# "ContinuedAsNew" and "ORCHESTRATION_STATUS_CONTINUED_AS_NEW" all match.
_STATUS_BY_KEY = {
    "PENDING": OrchestrationStatus.PENDING,
    "RUNNING": OrchestrationStatus.RUNNING,
    "COMPLETED": OrchestrationStatus.COMPLETED,
    "FAILED": OrchestrationStatus.FAILED,
    "TERMINATED": OrchestrationStatus.TERMINATED,
    "SUSPENDED": OrchestrationStatus.SUSPENDED,
    "CONTINUEDASNEW": OrchestrationStatus.CONTINUED_AS_NEW,
    "CANCELED": OrchestrationStatus.CANCELED,
    "CANCELLED": OrchestrationStatus.CANCELED,
}

_PROTO_PREFIX = "ORCHESTRATIONSTATUS"


def to_status(value: Any) -> OrchestrationStatus:
    """
    Map an engine status to OrchestrationStatus.

    Accepts the protobuf enum integer, the protobuf enum name, the SDK's
    client.OrchestrationStatus member, or a bare status name. Anything not
    recognized maps to UNKNOWN; this function never raises.
    """
    if isinstance(value, OrchestrationStatus):
        return value
    if isinstance(value, Enum):
        name = value.name
    elif isinstance(value, int) and not isinstance(value, bool):
        try:
            name = pb.OrchestrationStatus.Name(value)
        except ValueError:
            return OrchestrationStatus.UNKNOWN
    elif isinstance(value, str):
        name = value
    else:
        return OrchestrationStatus.UNKNOWN

    key = name.replace("_", "").upper()
    if key.startswith(_PROTO_PREFIX):
        key = key[len(_PROTO_PREFIX):]
    return _STATUS_BY_KEY.get(key, OrchestrationStatus.UNKNOWN)


@dataclass(frozen=True)
class FailureDetails:
    error_message: str
    error_type: str | None = None
    stack_trace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"errorMessage": self.error_message}
        if self.error_type:
            data["errorType"] = self.error_type
        if self.stack_trace:
            data["stackTrace"] = self.stack_trace
        return data


@dataclass(frozen=True)
class OrchestrationInstance:
    instance_id: str
    name: str
    status: OrchestrationStatus
    created_at: datetime | None = None
    last_updated_at: datetime | None = None
    failure_details: FailureDetails | None = None
    serialized_input: str | None = None
    serialized_output: str | None = None
    custom_status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "instanceId": self.instance_id,
            "name": self.name,
            "status": self.status.value,
        }
        if self.created_at is not None:
            data["createdAt"] = self.created_at.isoformat()
        if self.last_updated_at is not None:
            data["lastUpdatedAt"] = self.last_updated_at.isoformat()
        if self.failure_details is not None:
            data["failureDetails"] = self.failure_details.to_dict()
        if self.serialized_input is not None:
            data["input"] = self.serialized_input
        if self.serialized_output is not None:
            data["output"] = self.serialized_output
        if self.custom_status is not None:
            data["customStatus"] = self.custom_status
        return data


def _timestamp(message, field_name: str) -> datetime | None:
    if not message.HasField(field_name):
        return None
    return getattr(message, field_name).ToDatetime().replace(tzinfo=timezone.utc)


def _string_value(message, field_name: str) -> str | None:
    if not message.HasField(field_name):
        return None
    return getattr(message, field_name).value


def instance_from_proto(state: pb.OrchestrationState, fetch_payloads: bool = False) -> OrchestrationInstance:
    """
    Map a QueryInstances result entry to an OrchestrationInstance.

    Without fetch_payloads only identity, name, status and last-updated time
    are mapped. With it, creation time, failure details, input, output and
    custom status are included as well.

    Raises MalformedInstance only if the entry has no instance id.
    """
    instance_id = state.instanceId
    if not instance_id:
        raise MalformedInstance("orchestration state has no instanceId")

    record = dict(
        instance_id=instance_id,
        name=state.name,
        status=to_status(state.orchestrationStatus),
        last_updated_at=_timestamp(state, "lastUpdatedTimestamp"),
    )
    if fetch_payloads:
        failure = None
        if state.HasField("failureDetails"):
            fd = state.failureDetails
            failure = FailureDetails(
                error_message=fd.errorMessage,
                error_type=fd.errorType or None,
                stack_trace=_string_value(fd, "stackTrace"),
            )
        record.update(
            created_at=_timestamp(state, "createdTimestamp"),
            failure_details=failure,
            serialized_input=_string_value(state, "input"),
            serialized_output=_string_value(state, "output"),
            custom_status=_string_value(state, "customStatus"),
        )
    return OrchestrationInstance(**record)


@dataclass(frozen=True)
class TaskHubRef:
    """Lookup key for a task hub. Not an owned resource."""
    name: str
    scheduler_endpoint: str


@dataclass(frozen=True)
class TaskHub:
    name: str
    dashboard_endpoint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "dashboardEndpoint": self.dashboard_endpoint}


@dataclass(frozen=True)
class Scheduler:
    endpoint: str | None
    name: str
    resource_group_name: str | None
    subscription_id: str
    task_hubs: tuple[TaskHub, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "name": self.name,
            "resourceGroupName": self.resource_group_name,
            "subscriptionId": self.subscription_id,
            "taskHubs": [hub.to_dict() for hub in self.task_hubs],
        }


@dataclass(frozen=True)
class InstanceOutcome:
    instance_id: str
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__


@dataclass(frozen=True)
class BulkOperationResult:
    operation: str
    task_hub: str
    outcomes: tuple[InstanceOutcome, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> list[InstanceOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[InstanceOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "operation": self.operation,
            "taskHub": self.task_hub,
            "succeeded": sorted(o.instance_id for o in self.succeeded),
        }
        if self.failed:
            data["failed"] = {o.instance_id: o.error_message for o in self.failed}
        return data
