import pytest

from p4control.core import client as client_module
from p4control.core.context import Context
from p4control.control.control import SimpleControl
from p4control._tests.fakes import FakeChannel, FakeClient, FakeStub, build_p4info


@pytest.fixture
def p4info():
    return build_p4info()


@pytest.fixture
def context(p4info):
    return Context.load(p4info)


@pytest.fixture
def fake_client(context):
    return FakeClient(context)


@pytest.fixture
def control(fake_client):
    return SimpleControl(fake_client, arbitration_queue_size=0)


@pytest.fixture
def stub(monkeypatch):
    stub = FakeStub()
    monkeypatch.setattr(client_module.grpc, 'insecure_channel', lambda addr: FakeChannel())
    monkeypatch.setattr(client_module.p4runtime_pb2_grpc, 'P4RuntimeStub', lambda channel: stub)
    return stub


@pytest.fixture
def session(stub):
    client = client_module.P4RuntimeClient(0, 'fake:50051', (0, 1))
    yield client
    client.tear_down()
