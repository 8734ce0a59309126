"""
Errors raised by the task hub tools.

Every error carries enough context (operation, task hub, instance ids) for
the MCP server to return a structured error payload instead of a bare string.
"""

from typing import Any, Iterable


class DurableTaskToolError(Exception):
    """Base class for all errors surfaced by mcp_dts_admin."""

    kind = "DurableTaskToolError"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        task_hub: str | None = None,
        instance_ids: Iterable[str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.task_hub = task_hub
        self.instance_ids = sorted(instance_ids) if instance_ids else []

    def annotate(self, operation: str | None = None, task_hub: str | None = None) -> "DurableTaskToolError":
        """Fill in operation/task hub context if a lower layer left them blank."""
        self.operation = self.operation or operation
        self.task_hub = self.task_hub or task_hub
        return self

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.operation:
            data["operation"] = self.operation
        if self.task_hub:
            data["taskHub"] = self.task_hub
        if self.instance_ids:
            data["instanceIds"] = list(self.instance_ids)
        return data

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.task_hub:
            parts.append(f"taskHub={self.task_hub}")
        if self.instance_ids:
            parts.append(f"instanceIds={','.join(self.instance_ids)}")
        return " ".join(parts)


class InvalidArgument(DurableTaskToolError):
    """Malformed input. Raised before any network call is attempted."""

    kind = "InvalidArgument"


class UpstreamFailure(DurableTaskToolError):
    """The orchestration engine or the management API rejected a call."""

    kind = "UpstreamFailure"

    def __init__(
        self,
        message: str,
        *,
        subscription_id: str | None = None,
        scheduler_name: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.subscription_id = subscription_id
        self.scheduler_name = scheduler_name

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.subscription_id:
            data["subscriptionId"] = self.subscription_id
        if self.scheduler_name:
            data["schedulerName"] = self.scheduler_name
        return data


class PartialBatchFailure(DurableTaskToolError):
    """Some instances in a bulk operation failed; the others went through."""

    kind = "PartialBatchFailure"

    def __init__(self, result, **kwargs):
        failed = result.failed
        message = (
            f"{result.operation} failed for {len(failed)} of "
            f"{len(result.outcomes)} instance(s)"
        )
        super().__init__(
            message,
            operation=kwargs.pop("operation", result.operation),
            task_hub=kwargs.pop("task_hub", result.task_hub),
            instance_ids=[o.instance_id for o in failed],
            **kwargs,
        )
        self.result = result

    @property
    def failures(self) -> dict[str, str]:
        """instance id -> error message, for every id that failed."""
        return {o.instance_id: o.error_message for o in self.result.failed}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["failures"] = self.failures
        data["succeeded"] = [o.instance_id for o in self.result.succeeded]
        return data


class MalformedInstance(DurableTaskToolError):
    """An engine record that cannot be mapped to an OrchestrationInstance."""

    kind = "MalformedInstance"
