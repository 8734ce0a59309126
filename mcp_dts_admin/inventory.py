"""
Scheduler inventory: subscription -> schedulers -> task hubs.

Read-only discovery against Azure Resource Manager. Scheduler listings are
paginated (nextLink); each scheduler's task hubs are fetched eagerly before
the scheduler is yielded. Failures are raised with the subscription (and
scheduler, when known) attached and are never retried.
"""

import asyncio
from concurrent.futures import Executor
import logging
import re
from typing import Any, AsyncIterator

import requests

from .errors import InvalidArgument, UpstreamFailure
from .models import Scheduler, TaskHub

logger = logging.getLogger(__name__)

ARM_ENDPOINT = "https://management.azure.com"
ARM_API_VERSION = "2024-10-01-preview"
PROVIDER = "Microsoft.DurableTask"

_SUBSCRIPTION_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]{0,63}$")
_RESOURCE_GROUP = re.compile(r"/resourceGroups/([^/]+)", re.IGNORECASE)
_SUBSCRIPTION = re.compile(r"/subscriptions/([^/]+)", re.IGNORECASE)


def validate_subscription_id(subscription_id: str) -> str:
    value = subscription_id.strip() if isinstance(subscription_id, str) else ""
    if not _SUBSCRIPTION_ID.match(value):
        raise InvalidArgument(
            f"subscriptionId must be 1-64 letters, digits or '-', got {subscription_id!r}",
            operation="ListSchedulers",
        )
    return value


def parse_resource_group(resource_id: str) -> str | None:
    match = _RESOURCE_GROUP.search(resource_id or "")
    return match.group(1) if match else None


def parse_subscription(resource_id: str) -> str | None:
    match = _SUBSCRIPTION.search(resource_id or "")
    return match.group(1) if match else None


class ArmClient:
    """Minimal authenticated GET client for Resource Manager list endpoints."""

    def __init__(
        self,
        credential,
        *,
        endpoint: str = ARM_ENDPOINT,
        api_version: str = ARM_API_VERSION,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self._credential = credential
        self._session = session or requests.Session()
        self._owns_session = session is None
        self._token: str | None = None

    @property
    def scope(self) -> str:
        return f"{self.endpoint}/.default"

    def _headers(self) -> dict[str, str]:
        if self._token is None:
            self._token = self._credential.get_token(self.scope).token
        return {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}

    def get_page(self, url: str, **context) -> dict[str, Any]:
        """GET one page. `context` (subscription_id, scheduler_name) is attached to failures."""
        if not url.startswith("http"):
            url = f"{self.endpoint}{url}"
        params = None if "api-version=" in url else {"api-version": self.api_version}
        try:
            headers = self._headers()
        except Exception as e:
            raise UpstreamFailure(f"Could not authenticate to {self.endpoint}: {e}",
                                  operation="ListSchedulers", **context) from e
        try:
            resp = self._session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamFailure(f"GET {url} failed: {e}", operation="ListSchedulers", **context) from e

        if not 200 <= resp.status_code < 300:
            raise UpstreamFailure(
                f"GET {url} returned {resp.status_code}: {resp.text[:500]}",
                operation="ListSchedulers", **context,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamFailure(f"GET {url} returned invalid JSON: {e}",
                                  operation="ListSchedulers", **context) from e

    def iter_items(self, url: str, **context):
        while url:
            page = self.get_page(url, **context)
            yield from page.get("value", [])
            url = page.get("nextLink")

    def close(self):
        if self._owns_session:
            self._session.close()


def scheduler_from_resource(resource: dict[str, Any], task_hubs: list[TaskHub], subscription_id: str) -> Scheduler:
    resource_id = resource.get("id", "")
    properties = resource.get("properties") or {}
    return Scheduler(
        endpoint=properties.get("endpoint"),
        name=resource.get("name", ""),
        resource_group_name=parse_resource_group(resource_id),
        subscription_id=parse_subscription(resource_id) or subscription_id,
        task_hubs=tuple(task_hubs),
    )


def task_hub_from_resource(resource: dict[str, Any]) -> TaskHub:
    properties = resource.get("properties") or {}
    return TaskHub(name=resource.get("name", ""), dashboard_endpoint=properties.get("dashboardUrl"))


def _resolve_scheduler(arm: ArmClient, subscription_id: str, resource: dict[str, Any]) -> Scheduler:
    name = resource.get("name")
    resource_id = resource.get("id")
    context = {"subscription_id": subscription_id, "scheduler_name": name}
    if not name or not resource_id:
        raise UpstreamFailure(f"Scheduler resource is missing its name or id: {resource!r}", **context)
    hubs = [task_hub_from_resource(r) for r in arm.iter_items(f"{resource_id}/taskHubs", **context)]
    return scheduler_from_resource(resource, hubs, subscription_id)


async def list_schedulers(
    subscription_id: str,
    *,
    credential,
    arm_endpoint: str = ARM_ENDPOINT,
    api_version: str = ARM_API_VERSION,
    session: requests.Session | None = None,
    executor: Executor | None = None,
    timeout: float = 30.0,
) -> AsyncIterator[Scheduler]:
    """Yield the subscription's schedulers, each with its task hubs resolved."""
    subscription_id = validate_subscription_id(subscription_id)
    arm = ArmClient(credential, endpoint=arm_endpoint, api_version=api_version,
                    session=session, timeout=timeout)
    loop = asyncio.get_event_loop()
    url = f"/subscriptions/{subscription_id}/providers/{PROVIDER}/schedulers"

    try:
        while url:
            page = await loop.run_in_executor(
                executor, lambda u=url: arm.get_page(u, subscription_id=subscription_id))
            for resource in page.get("value", []):
                scheduler = await loop.run_in_executor(
                    executor, _resolve_scheduler, arm, subscription_id, resource)
                logger.debug("Found scheduler %s with %d task hub(s)", scheduler.name, len(scheduler.task_hubs))
                yield scheduler
            url = page.get("nextLink")
    finally:
        arm.close()


async def collect_schedulers(subscription_id: str, **kwargs) -> list[Scheduler]:
    return [s async for s in list_schedulers(subscription_id, **kwargs)]
