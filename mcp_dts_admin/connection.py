"""
Task hub connection resolver.

Builds a short-lived Durable Task Scheduler client for one task hub. Nothing
is pooled: every resolve() returns an independent handle, and constructing
it never talks to the scheduler (gRPC channels connect lazily on first call).

Credentials are never handled here directly. The resolver passes the
authentication mechanism name to a credential provider, which returns an
azure-identity credential (or None for the unauthenticated local emulator).
"""

from dataclasses import dataclass
import logging
from typing import Any, Callable
from urllib.parse import urlparse

from azure.identity import DefaultAzureCredential, ManagedIdentityCredential
from durabletask.azuremanaged.client import DurableTaskSchedulerClient

from .errors import InvalidArgument
from .models import TaskHubRef

logger = logging.getLogger(__name__)

AUTHENTICATION_MECHANISMS = ("DefaultAzure", "ManagedIdentity", "None")

CredentialProvider = Callable[[str], Any]
ClientFactory = Callable[["ConnectionSettings", Any], Any]


def normalize_authentication(mechanism: str | None) -> str:
    value = (mechanism or "DefaultAzure").strip()
    for known in AUTHENTICATION_MECHANISMS:
        if value.lower() == known.lower():
            return known
    raise InvalidArgument(
        f"Unsupported authentication mechanism {value!r}; "
        f"expected one of {', '.join(AUTHENTICATION_MECHANISMS)}"
    )


def validate_task_hub_ref(task_hub_name: str, scheduler_endpoint: str) -> TaskHubRef:
    """Check the task hub name and scheduler endpoint, or raise InvalidArgument."""
    name = (task_hub_name or "").strip() if isinstance(task_hub_name, str) else ""
    if not name:
        raise InvalidArgument("taskHubName must be a non-empty string")

    endpoint = scheduler_endpoint.strip() if isinstance(scheduler_endpoint, str) else ""
    if not endpoint:
        raise InvalidArgument("schedulerEndpoint must be a non-empty absolute URI", task_hub=name)
    try:
        parsed = urlparse(endpoint)
        host = parsed.hostname
    except ValueError as e:
        raise InvalidArgument(f"schedulerEndpoint is not a valid URI: {e}", task_hub=name) from None
    if not parsed.scheme or not host:
        raise InvalidArgument(
            f"schedulerEndpoint must be an absolute URI, got {endpoint!r}", task_hub=name
        )
    return TaskHubRef(name=name, scheduler_endpoint=endpoint)


@dataclass(frozen=True)
class ConnectionSettings:
    """Explicit configuration for one task hub client."""
    endpoint: str
    task_hub: str
    authentication: str = "DefaultAzure"

    @property
    def ref(self) -> TaskHubRef:
        return TaskHubRef(name=self.task_hub, scheduler_endpoint=self.endpoint)

    @property
    def secure_channel(self) -> bool:
        return urlparse(self.endpoint).scheme.lower() != "http"

    @property
    def connection_string(self) -> str:
        return build_connection_string(self.task_hub, self.endpoint, self.authentication)


def build_connection_string(task_hub_name: str, scheduler_endpoint: str,
                            authentication: str = "DefaultAzure") -> str:
    """Endpoint=<endpoint>;TaskHub=<task hub>;Authentication=<mechanism>"""
    return f"Endpoint={scheduler_endpoint};TaskHub={task_hub_name};Authentication={authentication}"


def parse_connection_string(text: str) -> ConnectionSettings:
    """
    Parse a scheduler connection string such as
    ``Endpoint=https://x.durabletask.io;TaskHub=orders;Authentication=DefaultAzure``.

    Keys are case-insensitive. Endpoint and TaskHub are required.
    """
    values: dict[str, str] = {}
    for segment in (text or "").split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep:
            raise InvalidArgument(f"Malformed connection string segment: {segment!r}")
        values[key.strip().lower()] = value.strip()

    ref = validate_task_hub_ref(values.get("taskhub", ""), values.get("endpoint", ""))
    return ConnectionSettings(
        endpoint=ref.scheduler_endpoint,
        task_hub=ref.name,
        authentication=normalize_authentication(values.get("authentication")),
    )


def default_credential_provider(mechanism: str):
    if mechanism == "DefaultAzure":
        return DefaultAzureCredential(exclude_interactive_browser_credential=True)
    if mechanism == "ManagedIdentity":
        return ManagedIdentityCredential()
    return None


def default_client_factory(settings: ConnectionSettings, credential) -> DurableTaskSchedulerClient:
    return DurableTaskSchedulerClient(
        host_address=settings.endpoint,
        taskhub=settings.task_hub,
        token_credential=credential,
        secure_channel=settings.secure_channel,
    )


class TaskHubHandle:
    """A client bound to one task hub, used for a single logical operation."""

    def __init__(self, settings: ConnectionSettings, client):
        self.settings = settings
        self.client = client

    @property
    def ref(self) -> TaskHubRef:
        return self.settings.ref

    @property
    def task_hub(self) -> str:
        return self.settings.task_hub

    def close(self):
        # Older SDK clients have no close(); their channel is dropped with the handle.
        close = getattr(self.client, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "TaskHubHandle":
        return self

    def __exit__(self, *exc_info):
        self.close()

    def __repr__(self) -> str:
        return f"TaskHubHandle(task_hub={self.task_hub!r}, endpoint={self.settings.endpoint!r})"


def resolve(
    task_hub_name: str,
    scheduler_endpoint: str,
    *,
    authentication: str = "DefaultAzure",
    credential_provider: CredentialProvider | None = None,
    client_factory: ClientFactory | None = None,
) -> TaskHubHandle:
    """
    Build a fresh TaskHubHandle for (task hub, scheduler endpoint).

    Raises InvalidArgument for an empty task hub name, a relative or malformed
    endpoint, or an unknown authentication mechanism. No network I/O happens
    here.
    """
    ref = validate_task_hub_ref(task_hub_name, scheduler_endpoint)
    settings = ConnectionSettings(
        endpoint=ref.scheduler_endpoint,
        task_hub=ref.name,
        authentication=normalize_authentication(authentication),
    )
    credential = (credential_provider or default_credential_provider)(settings.authentication)
    client = (client_factory or default_client_factory)(settings, credential)
    logger.debug("Resolved client for task hub %s at %s", settings.task_hub, settings.endpoint)
    return TaskHubHandle(settings, client)
