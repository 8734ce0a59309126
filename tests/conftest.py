import sys
import threading
from pathlib import Path
from types import SimpleNamespace

import durabletask.internal.orchestrator_service_pb2 as pb
from google.protobuf import wrappers_pb2
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mcp_dts_admin.config import Settings  # noqa: E402


class FakeEngine:
    """In-memory task hub: instance id -> pb.OrchestrationState."""

    def __init__(self):
        self.lock = threading.Lock()
        self.states: dict[str, pb.OrchestrationState] = {}
        self.queries: list[pb.QueryInstancesRequest] = []
        self.started: list[pb.CreateInstanceRequest] = []
        self.fail_ids: set[str] = set()
        self.query_error: Exception | None = None

    def add(self, instance_id, name="order_workflow", status=pb.ORCHESTRATION_STATUS_RUNNING, **fields):
        with self.lock:
            self.states[instance_id] = pb.OrchestrationState(
                instanceId=instance_id, name=name, orchestrationStatus=status, **fields)

    def set_status(self, instance_id, status):
        with self.lock:
            if instance_id in self.fail_ids:
                raise RuntimeError(f"engine rejected {instance_id}")
            if instance_id not in self.states:
                raise KeyError(f"no such instance: {instance_id}")
            self.states[instance_id].orchestrationStatus = status

    def purge(self, instance_id):
        with self.lock:
            if instance_id in self.fail_ids:
                raise RuntimeError(f"engine rejected {instance_id}")
            self.states.pop(instance_id, None)


class FakeStub:
    def __init__(self, engine: FakeEngine):
        self.engine = engine

    def QueryInstances(self, req):
        engine = self.engine
        engine.queries.append(req)
        if engine.query_error is not None:
            raise engine.query_error
        with engine.lock:
            ids = sorted(engine.states)
            offset = int(req.query.continuationToken.value) if req.query.HasField("continuationToken") else 0
            size = req.query.maxInstanceCount or 100
            page = [engine.states[i] for i in ids[offset:offset + size]]
        resp = pb.QueryInstancesResponse(orchestrationState=page)
        if offset + size < len(ids):
            resp.continuationToken.CopyFrom(wrappers_pb2.StringValue(value=str(offset + size)))
        return resp

    def StartInstance(self, req):
        self.engine.started.append(req)
        self.engine.add(req.instanceId, name=req.name, status=pb.ORCHESTRATION_STATUS_PENDING)
        return pb.CreateInstanceResponse(instanceId=req.instanceId)


class FakeClient:
    """Stands in for DurableTaskSchedulerClient."""

    def __init__(self, engine: FakeEngine, settings=None, credential=None):
        self.engine = engine
        self.settings = settings
        self.credential = credential
        self.calls: list[tuple[str, str]] = []
        self.closed = False
        self._stub = FakeStub(engine)

    def purge_orchestration(self, instance_id):
        self.calls.append(("purge", instance_id))
        self.engine.purge(instance_id)

    def resume_orchestration(self, instance_id):
        self.calls.append(("resume", instance_id))
        self.engine.set_status(instance_id, pb.ORCHESTRATION_STATUS_RUNNING)

    def suspend_orchestration(self, instance_id):
        self.calls.append(("suspend", instance_id))
        self.engine.set_status(instance_id, pb.ORCHESTRATION_STATUS_SUSPENDED)

    def terminate_orchestration(self, instance_id):
        self.calls.append(("terminate", instance_id))
        self.engine.set_status(instance_id, pb.ORCHESTRATION_STATUS_TERMINATED)

    def close(self):
        self.closed = True


class RecordingFactory:
    def __init__(self, engine: FakeEngine):
        self.engine = engine
        self.clients: list[FakeClient] = []

    def __call__(self, settings, credential):
        client = FakeClient(self.engine, settings, credential)
        self.clients.append(client)
        return client


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class FakeSession:
    """requests.Session stand-in: maps URL path (without query) to a response."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests: list[dict] = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        path = url.split("https://management.azure.com", 1)[-1].split("?", 1)[0]
        response = self.routes.get(path)
        if response is None:
            return FakeResponse(404, {"error": {"code": "NotFound"}}, text="not found")
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        pass


class FakeCredential:
    def __init__(self):
        self.scopes = []

    def get_token(self, *scopes):
        self.scopes.extend(scopes)
        return SimpleNamespace(token="fake-token", expires_on=0)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def factory(engine):
    return RecordingFactory(engine)


@pytest.fixture
def settings():
    return Settings(executor_workers=4, operation_timeout=10.0, query_page_size=2)


@pytest.fixture
def credential():
    return FakeCredential()
