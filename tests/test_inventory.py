import asyncio

import pytest
import requests

from conftest import FakeResponse, FakeSession
from mcp_dts_admin.errors import InvalidArgument, UpstreamFailure
from mcp_dts_admin.inventory import (
    collect_schedulers, parse_resource_group, validate_subscription_id,
)

SUB = "00000000-0000-0000-0000-000000000001"
SCHEDULERS = f"/subscriptions/{SUB}/providers/Microsoft.DurableTask/schedulers"


def scheduler_resource(name, rg="rg-orders"):
    return {
        "id": f"/subscriptions/{SUB}/resourceGroups/{rg}/providers/Microsoft.DurableTask/schedulers/{name}",
        "name": name,
        "properties": {"endpoint": f"https://{name}.westus2.durabletask.io"},
    }


def hubs_path(name, rg="rg-orders"):
    return f"/subscriptions/{SUB}/resourceGroups/{rg}/providers/Microsoft.DurableTask/schedulers/{name}/taskHubs"


def hub_resource(name):
    return {"name": name, "properties": {"dashboardUrl": f"https://dashboard.durabletask.io/{name}"}}


@pytest.mark.parametrize("value", [SUB, "sub-123", "a"])
def test_valid_subscription_ids(value):
    assert validate_subscription_id(value) == value


@pytest.mark.parametrize("value", ["", "   ", "-leading", "has space", "../etc", "a" * 65, None, 123])
def test_invalid_subscription_ids(value):
    with pytest.raises(InvalidArgument):
        validate_subscription_id(value)


def test_parse_resource_group():
    assert parse_resource_group(scheduler_resource("s1")["id"]) == "rg-orders"
    assert parse_resource_group("/subscriptions/x/resourcegroups/lower/providers/y") == "lower"
    assert parse_resource_group("") is None


def test_invalid_subscription_makes_no_request(credential):
    session = FakeSession()

    with pytest.raises(InvalidArgument):
        asyncio.run(collect_schedulers("not valid!", credential=credential, session=session))

    assert session.requests == []
    assert credential.scopes == []


def test_subscription_without_schedulers_is_empty(credential):
    session = FakeSession({
        "/subscriptions/sub-123/providers/Microsoft.DurableTask/schedulers": FakeResponse(200, {"value": []}),
    })

    assert asyncio.run(collect_schedulers("sub-123", credential=credential, session=session)) == []
    assert session.requests[0]["params"] == {"api-version": "2024-10-01-preview"}
    assert session.requests[0]["headers"]["Authorization"] == "Bearer fake-token"
    assert credential.scopes == ["https://management.azure.com/.default"]


def test_lists_schedulers_with_task_hubs_across_pages(credential):
    next_link = f"https://management.azure.com{SCHEDULERS}/page2?api-version=2024-10-01-preview&$skipToken=x"
    session = FakeSession({
        SCHEDULERS: FakeResponse(200, {"value": [scheduler_resource("s1")], "nextLink": next_link}),
        f"{SCHEDULERS}/page2": FakeResponse(200, {"value": [scheduler_resource("s2", rg="rg-two")]}),
        hubs_path("s1"): FakeResponse(200, {"value": [hub_resource("orders"), hub_resource("billing")]}),
        hubs_path("s2", rg="rg-two"): FakeResponse(200, {"value": []}),
    })

    schedulers = asyncio.run(collect_schedulers(SUB, credential=credential, session=session))

    assert [s.name for s in schedulers] == ["s1", "s2"]
    first = schedulers[0]
    assert first.endpoint == "https://s1.westus2.durabletask.io"
    assert first.resource_group_name == "rg-orders"
    assert first.subscription_id == SUB
    assert [h.name for h in first.task_hubs] == ["orders", "billing"]
    assert first.task_hubs[0].dashboard_endpoint == "https://dashboard.durabletask.io/orders"
    assert schedulers[1].resource_group_name == "rg-two"
    assert schedulers[1].task_hubs == ()
    # nextLink already carries the api-version
    page2 = next(r for r in session.requests if "page2" in r["url"])
    assert page2["params"] is None
    # token acquired once per listing
    assert len(credential.scopes) == 1


def test_task_hub_failure_is_attributed_to_scheduler(credential):
    session = FakeSession({
        SCHEDULERS: FakeResponse(200, {"value": [scheduler_resource("s1")]}),
        hubs_path("s1"): FakeResponse(403, {"error": {"code": "AuthorizationFailed"}}, text="forbidden"),
    })

    with pytest.raises(UpstreamFailure) as excinfo:
        asyncio.run(collect_schedulers(SUB, credential=credential, session=session))

    assert excinfo.value.subscription_id == SUB
    assert excinfo.value.scheduler_name == "s1"
    assert "403" in excinfo.value.message


def test_transport_failure_is_surfaced(credential):
    session = FakeSession({SCHEDULERS: requests.ConnectionError("connection refused")})

    with pytest.raises(UpstreamFailure) as excinfo:
        asyncio.run(collect_schedulers(SUB, credential=credential, session=session))

    assert excinfo.value.subscription_id == SUB
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_credential_failure_is_surfaced():
    class BrokenCredential:
        def get_token(self, *scopes):
            raise RuntimeError("no identity available")

    session = FakeSession({SCHEDULERS: FakeResponse(200, {"value": []})})

    with pytest.raises(UpstreamFailure) as excinfo:
        asyncio.run(collect_schedulers(SUB, credential=BrokenCredential(), session=session))

    assert "no identity available" in excinfo.value.message
    assert session.requests == []
