import time

import google.protobuf.text_format
import grpc
import pytest
from google.rpc import code_pb2, status_pb2
from p4.v1 import p4runtime_pb2

from p4control.core import client as client_module
from p4control.core.client import (P4RuntimeConnectError, P4RuntimeReadException,
                                   P4RuntimeWriteException)
from p4control import INCOMING_QUEUE_SIZE, JOIN_TIMEOUT
from p4control.core.utils import InvalidP4InfoError
from p4control._tests.fakes import FakeChannel, FakeRpcError, arbitration_msg, wait_for


def table_entity(table_id):
    entity = p4runtime_pb2.Entity()
    entity.table_entry.table_id = table_id
    return entity


def test_connect_fails_on_capabilities_error(stub):
    stub.capabilities_error = FakeRpcError()
    with pytest.raises(P4RuntimeConnectError):
        client_module.P4RuntimeClient(0, 'fake:50051', (0, 1))


def test_connect_opens_stream(session, stub):
    assert stub.stream is not None
    assert session.is_connected()
    assert not session.is_master()
    assert session.get_arbitration_data() == (0, (0, 1))


def test_election_id_as_integer(stub):
    client = client_module.P4RuntimeClient(3, 'fake:50051', (1 << 64) + 2)
    try:
        assert client.election_id == (1, 2)
    finally:
        client.tear_down()


def test_write_update_sends_one_update(session, stub):
    update = p4runtime_pb2.Update()
    update.type = p4runtime_pb2.Update.INSERT
    update.entity.CopyFrom(table_entity(1))
    session.write_update(update)

    assert len(stub.writes) == 1
    req = stub.writes[0]
    assert req.device_id == 0
    assert (req.election_id.high, req.election_id.low) == (0, 1)
    assert list(req.updates) == [update]


def test_write_error_carries_device_errors(session, stub):
    status = status_pb2.Status(code=code_pb2.UNKNOWN)
    status.details.add().Pack(p4runtime_pb2.Error(canonical_code=code_pb2.ALREADY_EXISTS,
                                                  message='entry exists'))
    stub.write_error = FakeRpcError(grpc.StatusCode.UNKNOWN, 'write failed',
                                    (('grpc-status-details-bin', status.SerializeToString()),))
    with pytest.raises(P4RuntimeWriteException) as excinfo:
        session.write_update(p4runtime_pb2.Update())
    assert len(excinfo.value.errors) == 1
    assert excinfo.value.errors[0][1].message == 'entry exists'
    assert 'ALREADY_EXISTS' in str(excinfo.value)


def test_write_error_without_details(session, stub):
    stub.write_error = FakeRpcError(grpc.StatusCode.PERMISSION_DENIED, 'not primary')
    with pytest.raises(P4RuntimeWriteException) as excinfo:
        session.write_update(p4runtime_pb2.Update())
    assert excinfo.value.errors == []
    assert 'not primary' in str(excinfo.value)


def test_read_entities_sync_on_empty_stream(session, stub):
    assert session.read_entities_sync([table_entity(1)]) == []
    assert stub.reads[0].device_id == 0


def test_read_entities_sync_keeps_arrival_order(session, stub):
    stub.read_batches = [[table_entity(1), table_entity(2)], [table_entity(3)]]
    entities = session.read_entities_sync([table_entity(0)])
    assert [e.table_entry.table_id for e in entities] == [1, 2, 3]


def test_read_error_is_not_a_clean_end(session, stub):
    stub.read_batches = [[table_entity(1)]]
    stub.read_error = FakeRpcError(grpc.StatusCode.UNAVAILABLE, 'connection lost')
    with pytest.raises(P4RuntimeReadException):
        session.read_entities_sync([table_entity(0)])


def test_read_entities_is_lazy(session, stub):
    stub.read_batches = [[table_entity(1)]]
    stub.read_error = FakeRpcError(grpc.StatusCode.UNAVAILABLE, 'connection lost')
    entities = session.read_entities([table_entity(0)])
    assert stub.reads == []
    assert next(entities).table_entry.table_id == 1
    with pytest.raises(P4RuntimeReadException):
        next(entities)


def test_stream_messages_reach_incoming_queue(session, stub):
    stub.stream.push(arbitration_msg(0, 1))
    msg = session.get_message_queues().incoming.get(timeout=2)
    assert msg.WhichOneof('update') == 'arbitration'


def test_outgoing_queue_is_sent_on_stream(session, stub):
    req = p4runtime_pb2.StreamMessageRequest()
    req.arbitration.device_id = 0
    session.get_message_queues().outgoing.put(req)
    assert wait_for(lambda: stub.stream.sent == [req])


def test_stream_failure_closes_session(session, stub):
    stub.stream.fail(FakeRpcError(grpc.StatusCode.UNAVAILABLE, 'gone'))
    assert session.get_message_queues().incoming.get(timeout=2) is None
    assert wait_for(lambda: not session.is_connected())


def test_tear_down(stub):
    client = client_module.P4RuntimeClient(0, 'fake:50051', (0, 1))
    client.set_mastership_status(True)
    client.tear_down()
    assert stub.stream.cancelled
    assert not client.stream_recv_thread.is_alive()
    assert client.channel.closed


def test_set_fwd_pipe_config_loads_context(session, stub, tmp_path, p4info):
    p4info_path = tmp_path / 'main.p4info.txt'
    p4info_path.write_text(google.protobuf.text_format.MessageToString(p4info))
    bin_path = tmp_path / 'main.json'
    bin_path.write_bytes(b'{}')

    session.set_fwd_pipe_config(str(p4info_path), str(bin_path))

    req = stub.pipeline_configs[0]
    assert req.action == p4runtime_pb2.SetForwardingPipelineConfigRequest.VERIFY_AND_COMMIT
    assert req.config.p4_device_config == b'{}'
    assert session.context.get_table('ingress.ipv4_lpm') is not None


def test_get_p4info(session, stub, p4info):
    assert session.get_p4info() == p4info


def test_tear_down_with_undrained_incoming_queue(stub):
    client = client_module.P4RuntimeClient(0, 'fake:50051', (0, 1))
    for low in range(INCOMING_QUEUE_SIZE + 5):
        stub.stream.push(arbitration_msg(0, low))
    assert wait_for(lambda: client.get_message_queues().incoming.full())

    start = time.time()
    client.tear_down()
    assert time.time() - start < JOIN_TIMEOUT
    assert not client.stream_recv_thread.is_alive()


@pytest.mark.parametrize('content, error', [
    (None, OSError),
    ('tables {', InvalidP4InfoError),
])
def test_p4info_load_failure_closes_channel(monkeypatch, stub, tmp_path, content, error):
    channels = []

    def insecure_channel(addr):
        channels.append(FakeChannel())
        return channels[-1]

    monkeypatch.setattr(client_module.grpc, 'insecure_channel', insecure_channel)
    p4info_path = tmp_path / 'main.p4info.txt'
    if content is not None:
        p4info_path.write_text(content)
    with pytest.raises(error):
        client_module.P4RuntimeClient(0, 'fake:50051', (0, 1), p4info=str(p4info_path))
    assert channels[0].closed
    assert stub.stream is None


def test_zero_timeout_is_not_replaced_by_default(stub):
    client = client_module.P4RuntimeClient(0, 'fake:50051', (0, 1), timeout=5)
    try:
        update = p4runtime_pb2.Update()
        update.type = p4runtime_pb2.Update.INSERT
        update.entity.CopyFrom(table_entity(1))
        client.write_update(update, timeout=0)
        client.read_entities_sync([table_entity(1)], timeout=0)
        client.write_update(update)
        assert stub.timeouts == [0, 0, 5]
    finally:
        client.tear_down()
